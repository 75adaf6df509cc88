"""
Durable key-value store backed by the ``kv_entries`` table.

Holds only the progress snapshot and the cached candidate list, each under
a fixed logical key. Every write is committed before returning.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import StoreError
from .models import KeyValueEntry, utcnow

logger = logging.getLogger(__name__)


class KeyValueStore:
    """get/put/delete over JSON values."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, key: str) -> Any | None:
        """Return the stored value, or None when the key is absent."""
        try:
            entry = self.session.get(KeyValueEntry, key)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to read key '{key}': {e}", cause=e) from e
        return entry.value if entry is not None else None

    def put(self, key: str, value: Any) -> None:
        try:
            entry = self.session.get(KeyValueEntry, key)
            if entry is None:
                self.session.add(KeyValueEntry(key=key, value=value))
            else:
                entry.value = value
                entry.updated_at = utcnow()
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise StoreError(f"Failed to write key '{key}': {e}", cause=e) from e

    def delete(self, key: str) -> bool:
        """Remove a key. Returns False when it was not present."""
        try:
            entry = self.session.get(KeyValueEntry, key)
            if entry is None:
                return False
            self.session.delete(entry)
            self.session.commit()
            return True
        except SQLAlchemyError as e:
            self.session.rollback()
            raise StoreError(f"Failed to delete key '{key}': {e}", cause=e) from e
