"""Storage diagnostics."""

import logging
import os
from typing import Optional

from sqlalchemy.engine import Engine

from notura.models.schema import StorageInfo
from notura.storage.collection_repository import CollectionRepository
from notura.storage.note_repository import NoteRepository

logger = logging.getLogger(__name__)


def database_file_size(engine: Engine) -> int:
    """Size in bytes of the engine's database file; 0 if in-memory or missing."""
    database: Optional[str] = engine.url.database
    if not database or database == ":memory:":
        return 0
    try:
        return os.path.getsize(database)
    except OSError as e:
        logger.debug(f"Cannot stat database file {database}: {e}")
        return 0


class StorageService:
    """Reports counts and on-disk size of the store."""

    def __init__(
        self,
        engine: Engine,
        note_repository: NoteRepository,
        collection_repository: CollectionRepository,
    ):
        self.engine = engine
        self.notes = note_repository
        self.collections = collection_repository

    def get_storage_info(self) -> StorageInfo:
        """Note and collection totals plus database size.

        Backups are not implemented, so last_backup is always None.
        """
        return StorageInfo(
            total_notes=self.notes.count(),
            total_collections=self.collections.count(),
            database_size=database_file_size(self.engine),
            last_backup=None,
        )
