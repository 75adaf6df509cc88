"""Orchestrator - run coordination, batching, checkpointing."""

from .records import CompleteRecord, PartialRecord
from .runner import CANDIDATES_KEY, HarvestRunner, RunPhase, RunStats, run_harvest

__all__ = [
    "CANDIDATES_KEY",
    "CompleteRecord",
    "HarvestRunner",
    "PartialRecord",
    "RunPhase",
    "RunStats",
    "run_harvest",
]
