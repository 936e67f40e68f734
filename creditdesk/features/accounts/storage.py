"""
creditdesk/features/accounts/storage.py

Durable storage for the application state document.

The store serializes the whole AppState to one JSON document after every
successful mutation and loads it once at start-up. Three backends share the
same contract:
- MemoryStateStorage: process-local, used by tests and STORAGE_BACKEND=memory
- JsonFileStateStorage: a JSON file on local disk (default)
- SqlStateStorage: one row in the state_documents table, keyed by STORAGE_KEY

Read and write failures raise StorageError instead of being swallowed.
"""

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import SQLAlchemyError

from creditdesk.core.config import Settings, settings
from creditdesk.core.database import create_all_tables, get_db_session, state_documents
from creditdesk.core.errors import StorageError

logger = logging.getLogger("creditdesk")


class StateStorage:
    """Interface for state document persistence."""

    def load(self) -> Optional[Dict[str, Any]]:
        """Return the stored document, or None if nothing was saved yet."""
        raise NotImplementedError

    def save(self, document: Dict[str, Any]) -> None:
        raise NotImplementedError

    def clear(self) -> None:
        raise NotImplementedError


class MemoryStateStorage(StateStorage):
    def __init__(self, document: Optional[Dict[str, Any]] = None):
        self._serialized: Optional[str] = json.dumps(document) if document is not None else None

    def load(self) -> Optional[Dict[str, Any]]:
        if self._serialized is None:
            return None
        return json.loads(self._serialized)

    def save(self, document: Dict[str, Any]) -> None:
        # Round-trip through JSON so callers cannot share mutable state with us
        self._serialized = json.dumps(document)

    def clear(self) -> None:
        self._serialized = None


class JsonFileStateStorage(StateStorage):
    def __init__(self, path: str):
        self.path = Path(path)

    def load(self) -> Optional[Dict[str, Any]]:
        if not self.path.exists():
            return None
        try:
            with self.path.open("r", encoding="utf-8") as fh:
                return json.load(fh)
        except (OSError, ValueError) as e:
            raise StorageError(f"Failed to read state from {self.path}: {e}") from e

    def save(self, document: Dict[str, Any]) -> None:
        directory = self.path.parent
        tmp_path = None
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=f".{self.path.name}.", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(document, fh, indent=2)
            os.replace(tmp_path, self.path)
        except (OSError, TypeError, ValueError) as e:
            if tmp_path is not None:
                Path(tmp_path).unlink(missing_ok=True)
            raise StorageError(f"Failed to write state to {self.path}: {e}") from e

    def clear(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to remove state file {self.path}: {e}") from e


class SqlStateStorage(StateStorage):
    """State document kept as one row of state_documents."""

    def __init__(self, key: str, ensure_schema: bool = True):
        self.key = key
        if ensure_schema:
            try:
                create_all_tables()
            except SQLAlchemyError as e:
                raise StorageError(f"Failed to prepare state table: {e}") from e

    def load(self) -> Optional[Dict[str, Any]]:
        try:
            with get_db_session() as session:
                row = session.execute(
                    select(state_documents.c.value).where(state_documents.c.key == self.key)
                ).first()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read state '{self.key}': {e}") from e
        if not row:
            return None
        return json.loads(row.value)

    def save(self, document: Dict[str, Any]) -> None:
        payload = json.dumps(document)
        now = datetime.now(timezone.utc)
        try:
            with get_db_session() as session:
                existing = session.execute(
                    select(state_documents.c.key).where(state_documents.c.key == self.key)
                ).first()
                if existing:
                    session.execute(
                        update(state_documents)
                        .where(state_documents.c.key == self.key)
                        .values(value=payload, updated_at=now)
                    )
                else:
                    session.execute(
                        insert(state_documents).values(key=self.key, value=payload, updated_at=now)
                    )
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to write state '{self.key}': {e}") from e

    def clear(self) -> None:
        try:
            with get_db_session() as session:
                session.execute(delete(state_documents).where(state_documents.c.key == self.key))
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to clear state '{self.key}': {e}") from e


def get_storage(settings_obj: Optional[Settings] = None) -> StateStorage:
    """Build the storage backend selected by STORAGE_BACKEND."""
    cfg = settings_obj or settings
    backend = (cfg.STORAGE_BACKEND or "json").lower()
    if backend == "memory":
        return MemoryStateStorage()
    if backend == "sql":
        return SqlStateStorage(cfg.STORAGE_KEY)
    if backend == "json":
        return JsonFileStateStorage(cfg.STORAGE_PATH)
    raise ValueError(f"Unknown STORAGE_BACKEND: {cfg.STORAGE_BACKEND}")
