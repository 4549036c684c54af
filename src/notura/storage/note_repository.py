"""Repository for note storage and retrieval."""

import datetime
import logging
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import func, literal_column, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from notura.exceptions import (
    CollectionNotFoundError,
    ErrorCode,
    NoteNotFoundError,
    StorageError,
    ValidationError,
)
from notura.models.db_models import DBCollection, DBNote, begin_immediate
from notura.models.schema import (
    Note,
    ensure_timezone_aware,
    generate_id,
    parse_tags,
    serialize_tags,
    utc_now,
)
from notura.services.content import char_count, normalize, word_count
from notura.storage.base import Repository

logger = logging.getLogger(__name__)

# (title, content, collection_id, tags)
NoteDraft = Tuple[str, str, Optional[str], Sequence[str]]


def next_updated_at(previous: Optional[datetime.datetime]) -> datetime.datetime:
    """Return a timestamp strictly greater than ``previous``.

    Falls back to previous + 1 microsecond when the clock has not advanced
    (coarse clocks, back-to-back writes, or a clock stepping backwards).
    """
    now = utc_now()
    if previous is None:
        return now
    previous = ensure_timezone_aware(previous)
    if now <= previous:
        return previous + datetime.timedelta(microseconds=1)
    return now


class NoteRepository(Repository[Note]):
    """Repository for notes.

    Every write normalizes content and recomputes word/character counts in
    the same transaction. The FTS5 index is maintained by triggers on the
    notes table, so it commits (or rolls back) together with the note row.
    """

    def __init__(self, engine: Engine):
        super().__init__(engine)
        logger.info(f"NoteRepository initialized: db_url={engine.url}")

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(
        self,
        title: str,
        content: str,
        collection_id: Optional[str] = None,
        tags: Optional[Sequence[str]] = None,
    ) -> Note:
        """Create a note. The id and both timestamps are assigned here.

        Raises:
            ValidationError: If the title is blank.
            CollectionNotFoundError: If collection_id does not exist.
            StorageError: If the database write fails.
        """
        return self.create_many([(title, content, collection_id, tags or [])])[0]

    def create_many(
        self, drafts: Iterable[NoteDraft], drop_unknown_collections: bool = False
    ) -> List[Note]:
        """Create several notes in one transaction (all or nothing).

        Args:
            drafts: (title, content, collection_id, tags) tuples.
            drop_unknown_collections: Create notes whose collection does not
                exist without a collection instead of failing. Checked inside
                the write transaction.

        Raises:
            CollectionNotFoundError: For a missing collection, unless dropped.
        """
        drafts = list(drafts)
        for title, _content, _collection_id, _tags in drafts:
            self._validate_title(title)

        try:
            with self.session_factory() as session:
                begin_immediate(session)
                db_notes = []
                for title, content, collection_id, tags in drafts:
                    if collection_id is not None:
                        if not drop_unknown_collections:
                            self._require_collection(session, collection_id)
                        elif session.get(DBCollection, collection_id) is None:
                            logger.warning(
                                f"Dropping unknown collection {collection_id} from note \"{title}\""
                            )
                            collection_id = None
                    db_notes.append(self._insert(session, title, content, collection_id, tags))
                session.commit()
                notes = [self._db_to_model(db_note) for db_note in db_notes]
        except SQLAlchemyError as e:
            raise StorageError(
                f"Failed to create note: {e}",
                operation="create_note",
                code=ErrorCode.STORAGE_WRITE_FAILED,
                original_error=e,
            ) from e

        for note in notes:
            logger.info(f"Created note {note.id} ({note.word_count} words)")
        return notes

    def update_content(self, id: str, content: str) -> Note:
        """Replace a note's content, recompute counts and advance updated_at.

        Raises:
            NoteNotFoundError: If the note does not exist.
        """
        sanitized = normalize(content)

        def apply(session: Session, db_note: DBNote) -> None:
            db_note.content = sanitized
            db_note.word_count = word_count(sanitized)
            db_note.character_count = char_count(sanitized)

        return self._mutate(id, apply, operation="update_note")

    def move_to_collection(self, id: str, collection_id: Optional[str]) -> Note:
        """Assign a note to a collection, or to no collection with None.

        Raises:
            NoteNotFoundError: If the note does not exist.
            CollectionNotFoundError: If the target collection does not exist.
        """
        def apply(session: Session, db_note: DBNote) -> None:
            if collection_id is not None:
                self._require_collection(session, collection_id)
            db_note.collection_id = collection_id

        return self._mutate(id, apply, operation="move_note")

    def set_archived(self, id: str, archived: bool) -> Note:
        """Archive or unarchive a note. Archived notes stay indexed."""
        def apply(session: Session, db_note: DBNote) -> None:
            db_note.is_archived = archived

        return self._mutate(id, apply, operation="archive_note")

    def set_tags(self, id: str, tags: Sequence[str]) -> Note:
        """Replace a note's tag list."""
        serialized = serialize_tags(tags)

        def apply(session: Session, db_note: DBNote) -> None:
            db_note.tags = serialized

        return self._mutate(id, apply, operation="tag_note")

    def delete(self, id: str) -> None:
        """Delete a note.

        Search index entries are removed by trigger and note_images rows by
        foreign key cascade, in the same transaction.

        Raises:
            NoteNotFoundError: If the note does not exist.
        """
        try:
            with self.session_factory() as session:
                db_note = session.get(DBNote, id)
                if db_note is None:
                    raise NoteNotFoundError(id)
                session.delete(db_note)
                session.commit()
        except SQLAlchemyError as e:
            raise StorageError(
                f"Failed to delete note: {e}",
                operation="delete_note",
                code=ErrorCode.STORAGE_DELETE_FAILED,
                original_error=e,
            ) from e
        logger.info(f"Deleted note {id}")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, id: str) -> Optional[Note]:
        """Get a note by ID (archived notes included)."""
        with self.session_factory() as session:
            db_note = session.get(DBNote, id)
            if db_note is None:
                return None
            return self._db_to_model(db_note)

    def get_all(self) -> List[Note]:
        """Get all non-archived notes, most recently updated first."""
        with self.session_factory() as session:
            result = session.execute(
                select(DBNote)
                .where(DBNote.is_archived.is_(False))
                .order_by(DBNote.updated_at.desc())
            )
            return [self._db_to_model(db_note) for db_note in result.scalars().all()]

    def get_by_ids(self, ids: Sequence[str]) -> List[Note]:
        """Get notes by ID in creation order, whatever order ids are given in.

        Unknown ids are skipped.
        """
        if not ids:
            return []
        with self.session_factory() as session:
            result = session.execute(
                select(DBNote)
                .where(DBNote.id.in_(list(ids)))
                .order_by(DBNote.created_at, literal_column("notes.rowid"))
            )
            return [self._db_to_model(db_note) for db_note in result.scalars().all()]

    def count(self) -> int:
        """Count all notes, archived included."""
        with self.session_factory() as session:
            return session.execute(select(func.count()).select_from(DBNote)).scalar() or 0

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_title(title: str) -> None:
        if not title or not title.strip():
            raise ValidationError("Title cannot be empty", field="title", value=title)

    @staticmethod
    def _require_collection(session: Session, collection_id: str) -> None:
        if session.get(DBCollection, collection_id) is None:
            raise CollectionNotFoundError(collection_id)

    @staticmethod
    def _insert(
        session: Session,
        title: str,
        content: str,
        collection_id: Optional[str],
        tags: Sequence[str],
    ) -> DBNote:
        sanitized = normalize(content)
        now = utc_now()
        db_note = DBNote(
            id=generate_id(),
            title=title,
            content=sanitized,
            collection_id=collection_id,
            tags=serialize_tags(tags),
            created_at=now,
            updated_at=now,
            word_count=word_count(sanitized),
            character_count=char_count(sanitized),
            is_archived=False,
        )
        session.add(db_note)
        session.flush()
        return db_note

    def _mutate(
        self,
        id: str,
        apply: Callable[[Session, DBNote], None],
        operation: str,
    ) -> Note:
        """Read-modify-write a note under the write lock.

        ``updated_at`` is derived from the stored value inside the same
        transaction, so it strictly increases even with concurrent writers.
        """
        try:
            with self.session_factory() as session:
                begin_immediate(session)
                db_note = session.get(DBNote, id)
                if db_note is None:
                    raise NoteNotFoundError(id)
                apply(session, db_note)
                db_note.updated_at = next_updated_at(db_note.updated_at)
                session.commit()
                note = self._db_to_model(db_note)
        except SQLAlchemyError as e:
            raise StorageError(
                f"Failed to {operation.replace('_', ' ')}: {e}",
                operation=operation,
                code=ErrorCode.STORAGE_WRITE_FAILED,
                original_error=e,
            ) from e
        logger.debug(f"{operation} {id} -> updated_at={note.updated_at.isoformat()}")
        return note

    @staticmethod
    def _db_to_model(db_note: DBNote) -> Note:
        return Note(
            id=db_note.id,
            title=db_note.title,
            content=db_note.content,
            collection_id=db_note.collection_id,
            tags=parse_tags(db_note.tags),
            created_at=ensure_timezone_aware(db_note.created_at),
            updated_at=ensure_timezone_aware(db_note.updated_at),
            word_count=db_note.word_count,
            character_count=db_note.character_count,
            is_archived=bool(db_note.is_archived),
        )
