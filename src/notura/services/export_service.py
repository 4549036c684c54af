"""Export notes to Markdown/JSON and import them back."""

import json
import logging
from pathlib import Path
from typing import List, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic import ValidationError as PydanticValidationError

from notura.exceptions import (
    ErrorCode,
    NoNotesSelectedError,
    StorageError,
    UnsupportedFormatError,
)
from notura.models.schema import ExportFormat, Note, parse_tags
from notura.services.content import normalize
from notura.storage.note_repository import NoteDraft, NoteRepository

logger = logging.getLogger(__name__)

# Separator between exported notes; import splits on its core
MARKDOWN_SEPARATOR = "\n\n---\n\n"
MARKDOWN_SPLIT = "\n---\n"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


class ImportedNote(BaseModel):
    """A note object as found in a JSON export.

    Only title and content are required. Ids, timestamps, counts and the
    archived flag of the source are ignored on import.
    """

    model_config = ConfigDict(extra="ignore")

    title: str
    content: str
    collection_id: Optional[str] = None
    tags: List[str] = Field(default_factory=list)

    @field_validator("tags", mode="before")
    @classmethod
    def _tags_from_text(cls, v):
        # Older exports store tags as JSON text
        if v is None:
            return []
        if isinstance(v, str):
            return parse_tags(v)
        return v


_IMPORTED_NOTES = TypeAdapter(List[ImportedNote])


def export_markdown(notes: Sequence[Note]) -> str:
    """Render notes as one Markdown document, separated by rules."""
    parts = []
    for note in notes:
        parts.append(f"# {note.title}\n\n")
        parts.append(f"*Created: {note.created_at.strftime(TIMESTAMP_FORMAT)}*\n")
        parts.append(f"*Updated: {note.updated_at.strftime(TIMESTAMP_FORMAT)}*\n\n")
        if note.tags:
            parts.append(f"*Tags: {', '.join(note.tags)}*\n\n")
        parts.append(note.content)
        parts.append(MARKDOWN_SEPARATOR)
    return "".join(parts)


def export_json(notes: Sequence[Note]) -> str:
    """Render notes as a pretty-printed JSON array."""
    return json.dumps(
        [note.model_dump(mode="json") for note in notes],
        indent=2,
        ensure_ascii=False,
    )


def parse_markdown_sections(source: str) -> List[NoteDraft]:
    """Split a Markdown document into note drafts.

    Sections are separated by ``---`` rules. The first non-blank line, minus
    leading ``#`` marks, is the title; the whole section is the content.
    """
    drafts: List[NoteDraft] = []
    # Windows line endings must not hide the separators
    source = normalize(source)
    for position, section in enumerate(source.split(MARKDOWN_SPLIT), start=1):
        if not section.strip():
            continue
        first_line = next(line for line in section.splitlines() if line.strip())
        title = first_line.strip().lstrip("#").strip()
        if not title:
            title = f"Imported Note {position}"
        drafts.append((title, section, None, []))
    return drafts


class ExportService:
    """Translates stored notes to and from portable text formats."""

    def __init__(self, note_repository: NoteRepository):
        self.notes = note_repository

    def export_notes(self, format: Union[str, ExportFormat], ids: Sequence[str]) -> str:
        """Export the selected notes, oldest first, as Markdown or JSON.

        Raises:
            NoNotesSelectedError: If ids is empty.
            UnsupportedFormatError: If format is not markdown or json.
        """
        if not ids:
            raise NoNotesSelectedError()
        try:
            export_format = ExportFormat(format)
        except ValueError:
            raise UnsupportedFormatError(str(format)) from None

        notes = self.notes.get_by_ids(ids)
        logger.info(f"Exporting {len(notes)} notes as {export_format.value}")
        if export_format is ExportFormat.MARKDOWN:
            return export_markdown(notes)
        return export_json(notes)

    def import_notes(self, source: str) -> List[Note]:
        """Import notes from a JSON export, or from Markdown otherwise.

        All notes of one call are created in a single transaction.
        """
        drafts = self._parse_json(source)
        if drafts is None:
            drafts = parse_markdown_sections(source)
            logger.debug(f"Parsed {len(drafts)} Markdown sections")

        if not drafts:
            return []
        # Collections missing at write time are dropped, not fatal
        notes = self.notes.create_many(drafts, drop_unknown_collections=True)
        logger.info(f"Imported {len(notes)} notes")
        return notes

    def import_file(self, path: Union[str, Path]) -> List[Note]:
        """Read a UTF-8 file and import its notes.

        Raises:
            StorageError: If the file cannot be read.
        """
        path = Path(path)
        try:
            source = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise StorageError(
                f"Failed to read file: {e}",
                operation="import_file",
                path=str(path),
                code=ErrorCode.STORAGE_READ_FAILED,
                original_error=e,
            ) from e
        return self.import_notes(source)

    def _parse_json(self, source: str) -> Optional[List[NoteDraft]]:
        """Drafts from a JSON export, or None when source is not one."""
        try:
            imported = _IMPORTED_NOTES.validate_json(source)
        except PydanticValidationError:
            return None
        return [
            (item.title, item.content, item.collection_id, item.tags)
            for item in imported
        ]
