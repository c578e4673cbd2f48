"""A set of open databases addressed by handle."""

import logging
from pathlib import Path

from .config import DatabaseConfig
from .database import Database
from .exceptions import InvalidDataError
from .parser import LoadSummary
from .storage import load_database
from .types import DuplicatePolicy

logger = logging.getLogger(__name__)


class Session:
    """Open databases, each under an integer handle, and the active one.

    Handles are never reused within a session.
    """

    def __init__(self, config: DatabaseConfig | None = None) -> None:
        self.config = config or DatabaseConfig()
        self._databases: dict[int, Database] = {}
        self._next_handle = 1
        self.active: int | None = None

    def __len__(self) -> int:
        return len(self._databases)

    def handles(self) -> list[int]:
        return list(self._databases)

    def get(self, handle: int) -> Database:
        try:
            return self._databases[handle]
        except KeyError as e:
            raise InvalidDataError(f"No open database with handle {handle}") from e

    @property
    def active_database(self) -> Database | None:
        return self._databases.get(self.active) if self.active is not None else None

    def find(self, bib_path: Path) -> int | None:
        """Return the handle of the database backed by ``bib_path``, if open."""
        resolved = bib_path.resolve()
        for handle, database in self._databases.items():
            if database.file_path is not None and database.file_path.resolve() == resolved:
                return handle
        return None

    def _register(self, database: Database) -> int:
        handle = self._next_handle
        self._next_handle += 1
        self._databases[handle] = database
        self.active = handle
        return handle

    def new(self, bib_path: Path | None = None) -> int:
        """Add an empty database and make it active."""
        return self._register(Database(bib_path, self.config))

    def open(
        self, bib_path: Path, policy: DuplicatePolicy = DuplicatePolicy.REJECT
    ) -> tuple[int, LoadSummary]:
        """Load ``bib_path`` into a new database and make it active.

        A file that is already open is not read again; its handle is
        activated and an empty summary returned.
        """
        existing = self.find(bib_path)
        if existing is not None:
            logger.warning(f"{bib_path} is already open")
            self.active = existing
            return existing, LoadSummary()

        database, summary = load_database(bib_path, self.config, policy)
        return self._register(database), summary

    def activate(self, handle: int) -> None:
        self.get(handle)
        self.active = handle

    def close(self, handle: int) -> Database:
        """Drop a database from the session; unsaved changes are discarded."""
        database = self.get(handle)
        if database.modified:
            logger.warning(f"Closing {database.name} with unsaved changes")
        del self._databases[handle]

        if self.active == handle:
            remaining = [h for h in self._databases if h < handle] or list(self._databases)
            self.active = max(remaining) if remaining else None
        return database

    def modified_handles(self) -> list[int]:
        return [handle for handle, database in self._databases.items() if database.modified]
