"""Database persistence layer."""

from .db import dispose_engine, get_engine, get_session, get_sync_session, init_db
from .errors import PersistenceError, SinkError, StoreError
from .models import Base, DatasetRecord, HarvestRun, KeyValueEntry
from .repo import RunRepository
from .sink import DatasetSink
from .store import KeyValueStore

__all__ = [
    "dispose_engine",
    "get_engine",
    "get_session",
    "get_sync_session",
    "init_db",
    "PersistenceError",
    "SinkError",
    "StoreError",
    "Base",
    "DatasetRecord",
    "HarvestRun",
    "KeyValueEntry",
    "RunRepository",
    "DatasetSink",
    "KeyValueStore",
]
