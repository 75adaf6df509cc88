"""Core harvesting components."""
