"""CLI command modules."""

from . import dataset, harvest

__all__ = [
    "dataset",
    "harvest",
]
