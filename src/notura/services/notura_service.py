"""Application-facing service for Notura Store.

One ``NoturaService`` per open store. It owns the repositories and the
search/export/diagnostic services built on a single engine, and is the only
surface the UI layer talks to.
"""

import logging
from pathlib import Path
from typing import Any, List, Optional, Sequence, Union

from sqlalchemy.engine import Engine

from notura.exceptions import (
    CollectionNotFoundError,
    ImageNotFoundError,
    NoteNotFoundError,
)
from notura.models.schema import (
    Collection,
    ExportFormat,
    ImageMetadata,
    ImageWithData,
    Note,
    SearchFilters,
    SearchResult,
    StorageInfo,
)
from notura.observability import traced
from notura.services.export_service import ExportService
from notura.services.search_service import SearchService
from notura.services.storage_service import StorageService
from notura.storage.collection_repository import UNSET, CollectionRepository
from notura.storage.image_repository import ImageRepository
from notura.storage.note_repository import NoteRepository

logger = logging.getLogger(__name__)


class NoturaService:
    """Notes, collections, images, search and export over one database."""

    def __init__(
        self,
        engine: Engine,
        images_dir: Optional[Union[str, Path]] = None,
        search_limit: Optional[int] = None,
        highlight_window: Optional[int] = None,
    ):
        """Initialize the service.

        Args:
            engine: Engine returned by ``init_db``.
            images_dir: Directory for image files (defaults to config).
            search_limit: Override for config.search_limit.
            highlight_window: Override for config.highlight_window.
        """
        self.engine = engine
        self.notes = NoteRepository(engine)
        self.collections = CollectionRepository(engine)
        self.images = ImageRepository(
            engine, Path(images_dir) if images_dir else None
        )
        self.search_service = SearchService(
            engine, limit=search_limit, highlight_window=highlight_window
        )
        self.export_service = ExportService(self.notes)
        self.storage_service = StorageService(engine, self.notes, self.collections)

    # =========================================================================
    # Notes
    # =========================================================================

    @traced("create_note")
    def create_note(
        self,
        title: str,
        content: str,
        collection_id: Optional[str] = None,
        tags: Optional[List[str]] = None,
    ) -> Note:
        """Create a note. Content is normalized and counted before storage."""
        return self.notes.create(title, content, collection_id, tags)

    @traced("update_note")
    def update_note(self, id: str, content: str) -> Note:
        """Replace a note's content."""
        return self.notes.update_content(id, content)

    @traced("delete_note")
    def delete_note(self, id: str) -> None:
        """Delete a note, its index entry and its image links."""
        self.notes.delete(id)

    def get_note(self, id: str) -> Note:
        """Retrieve a note by ID.

        Raises:
            NoteNotFoundError: If no such note exists.
        """
        note = self.notes.get(id)
        if note is None:
            raise NoteNotFoundError(id)
        return note

    @traced("list_notes")
    def list_notes(self) -> List[Note]:
        """Non-archived notes, most recently updated first."""
        return self.notes.get_all()

    @traced("move_note")
    def move_note_to_collection(
        self, note_id: str, collection_id: Optional[str] = None
    ) -> Note:
        """Move a note into a collection, or out of any with None."""
        return self.notes.move_to_collection(note_id, collection_id)

    @traced("archive_note")
    def set_note_archived(self, id: str, archived: bool) -> Note:
        return self.notes.set_archived(id, archived)

    @traced("tag_note")
    def set_note_tags(self, id: str, tags: Sequence[str]) -> Note:
        return self.notes.set_tags(id, tags)

    # =========================================================================
    # Collections
    # =========================================================================

    @traced("create_collection")
    def create_collection(
        self,
        name: str,
        description: Optional[str] = None,
        parent_id: Optional[str] = None,
        color: Optional[str] = None,
        icon: Optional[str] = None,
    ) -> Collection:
        """Create a collection at the end of its siblings."""
        return self.collections.create(name, description, parent_id, color, icon)

    @traced("update_collection")
    def update_collection(
        self,
        id: str,
        name: str,
        description: Optional[str] = None,
        parent_id: Any = UNSET,
        color: Any = UNSET,
        icon: Any = UNSET,
    ) -> Collection:
        """Rename a collection; optionally re-parent or restyle it."""
        return self.collections.update(
            id, name, description, parent_id=parent_id, color=color, icon=icon
        )

    @traced("delete_collection")
    def delete_collection(self, id: str) -> None:
        """Delete a childless collection; its notes lose their collection."""
        self.collections.delete(id)

    def get_collection(self, id: str) -> Collection:
        """Retrieve a collection by ID.

        Raises:
            CollectionNotFoundError: If no such collection exists.
        """
        collection = self.collections.get(id)
        if collection is None:
            raise CollectionNotFoundError(id)
        return collection

    @traced("list_collections")
    def list_collections(self) -> List[Collection]:
        return self.collections.get_all()

    # =========================================================================
    # Search
    # =========================================================================

    @traced("search")
    def search(
        self, query: str, filters: Optional[SearchFilters] = None
    ) -> List[SearchResult]:
        """Ranked full-text search over non-archived notes."""
        return self.search_service.search(query, filters)

    def rebuild_search_index(self) -> int:
        """Repopulate the search index from the notes table."""
        return self.search_service.rebuild_index()

    # =========================================================================
    # Export / Import
    # =========================================================================

    @traced("export_notes")
    def export_notes(self, format: Union[str, ExportFormat], ids: Sequence[str]) -> str:
        return self.export_service.export_notes(format, ids)

    @traced("import_notes")
    def import_notes(self, source: str) -> List[Note]:
        return self.export_service.import_notes(source)

    @traced("import_file")
    def import_file(self, path: Union[str, Path]) -> List[Note]:
        return self.export_service.import_file(path)

    # =========================================================================
    # Images
    # =========================================================================

    @traced("save_image")
    def save_image(
        self,
        data: bytes,
        filename: str,
        original_name: str,
        mime_type: str,
        note_id: Optional[str] = None,
    ) -> ImageMetadata:
        """Store image bytes and metadata, optionally linked to a note."""
        return self.images.save(data, filename, original_name, mime_type, note_id)

    @traced("get_image")
    def get_image(self, id: str) -> ImageWithData:
        """Image metadata plus a base64 data URL."""
        return self.images.get_with_data(id)

    def get_image_metadata(self, id: str) -> ImageMetadata:
        """Image metadata without reading the file.

        Raises:
            ImageNotFoundError: If no such image exists.
        """
        image = self.images.get(id)
        if image is None:
            raise ImageNotFoundError(id)
        return image

    @traced("list_images")
    def list_images(self) -> List[ImageMetadata]:
        return self.images.get_all()

    @traced("list_images_for_note")
    def list_images_for_note(self, note_id: str) -> List[ImageMetadata]:
        return self.images.get_for_note(note_id)

    @traced("delete_image")
    def delete_image(self, id: str) -> None:
        self.images.delete(id)

    @traced("set_image_association")
    def set_image_association(
        self, image_id: str, note_id: str, is_used: bool
    ) -> None:
        """Link or unlink an image and a note. Idempotent."""
        self.images.set_association(image_id, note_id, is_used)

    # =========================================================================
    # Diagnostics
    # =========================================================================

    def get_storage_info(self) -> StorageInfo:
        return self.storage_service.get_storage_info()
