"""
ProfileHarvest - Resumable researcher-profile harvester.

A CLI tool that searches a Profiles directory, enriches every match from its
detail page, and writes a deduplicated dataset that survives restarts.
"""

__version__ = "0.1.0"
__app_name__ = "profileharvest"
