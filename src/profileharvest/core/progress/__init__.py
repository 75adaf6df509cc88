"""Resumable progress tracking."""

from .state import DEFAULT_CHECKPOINT_INTERVAL, STATE_KEY, ProgressState, SnapshotStore

__all__ = [
    "DEFAULT_CHECKPOINT_INTERVAL",
    "STATE_KEY",
    "ProgressState",
    "SnapshotStore",
]
