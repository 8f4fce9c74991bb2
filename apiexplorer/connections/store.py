from __future__ import annotations
import logging
import threading
import uuid
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import ValidationError

from apiexplorer.connections.models import Connection, NewConnection
from apiexplorer.errors import ConnectionNotFoundError

logger = logging.getLogger(__name__)


class ConnectionStore:
    """
    Ordered collection of saved connections plus the active-connection pointer.

    The store is process-wide and in-memory. Writers build a new list and swap
    it in under the lock, so readers always see a consistent snapshot.
    Connections are immutable; editing one means replacing it in full.
    """

    def __init__(self) -> None:
        self._connections: List[Connection] = []
        self._active_id: Optional[str] = None
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Seeding
    # ------------------------------------------------------------------

    def load_yaml(self, path: str) -> int:
        """
        Add every connection listed under `connections:` in a YAML file.

        Returns the number of connections loaded.

        Raises:
            FileNotFoundError: if the file does not exist.
            ValidationError / yaml.YAMLError: on a malformed entry.
            ValueError: if the document is not a mapping with a `connections` list.
        """
        yaml_path = Path(path)
        if not yaml_path.exists():
            raise FileNotFoundError(f"Connections file not found: {yaml_path}")

        try:
            raw = yaml.safe_load(yaml_path.read_text()) or {}
            if not isinstance(raw, dict):
                raise ValueError("top level must be a mapping")
            listed = raw.get("connections") or []
            if not isinstance(listed, list):
                raise ValueError("`connections` must be a list")
            entries = [NewConnection.model_validate(e) for e in listed]
        except (ValidationError, yaml.YAMLError, ValueError) as exc:
            logger.error("Failed to load connections from %s: %s", yaml_path, exc)
            raise

        for entry in entries:
            self.add(entry, activate=False)
        with self._lock:
            if self._active_id is None and self._connections:
                self._active_id = self._connections[0].id

        logger.info("Loaded %d connection(s) from %s", len(entries), yaml_path.name)
        return len(entries)

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def list(self) -> List[Connection]:
        with self._lock:
            return list(self._connections)

    def get(self, connection_id: str) -> Optional[Connection]:
        with self._lock:
            return next((c for c in self._connections if c.id == connection_id), None)

    def add(self, new: NewConnection, activate: bool = True) -> Connection:
        """Store a connection under a fresh id. The new connection becomes active."""
        connection = Connection(id=str(uuid.uuid4()), **new.model_dump())
        with self._lock:
            self._connections = [*self._connections, connection]
            if activate:
                self._active_id = connection.id
        logger.info("Added connection %s (%s)", connection.id, connection.name)
        return connection

    def replace(self, connection_id: str, new: NewConnection) -> Connection:
        """Full replace of an existing connection; the id is preserved."""
        replacement = Connection(id=connection_id, **new.model_dump())
        with self._lock:
            if self.get(connection_id) is None:
                raise ConnectionNotFoundError(connection_id)
            self._connections = [
                replacement if c.id == connection_id else c for c in self._connections
            ]
        return replacement

    def delete(self, connection_id: str) -> None:
        """
        Remove a connection. Deleting the active connection selects the first
        remaining one, or clears the pointer when none are left.
        """
        with self._lock:
            remaining = [c for c in self._connections if c.id != connection_id]
            if len(remaining) == len(self._connections):
                raise ConnectionNotFoundError(connection_id)
            self._connections = remaining
            if self._active_id == connection_id:
                self._active_id = remaining[0].id if remaining else None
        logger.info("Deleted connection %s", connection_id)

    # ------------------------------------------------------------------
    # Active pointer
    # ------------------------------------------------------------------

    @property
    def active(self) -> Optional[Connection]:
        with self._lock:
            if self._active_id is None:
                return None
            found = self.get(self._active_id)
            if found is None:
                self._active_id = None
            return found

    @property
    def active_id(self) -> Optional[str]:
        active = self.active
        return active.id if active else None

    def set_active(self, connection_id: Optional[str]) -> None:
        with self._lock:
            if connection_id is not None and self.get(connection_id) is None:
                raise ConnectionNotFoundError(connection_id)
            self._active_id = connection_id

    def count(self) -> int:
        with self._lock:
            return len(self._connections)
