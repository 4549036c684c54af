"""Repository for images: bytes on disk, metadata and note links in SQLite."""
import base64
import logging
import re
import time
from pathlib import Path
from typing import List, Optional

from sqlalchemy import delete, insert, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from notura.config import config
from notura.exceptions import (
    ErrorCode,
    ImageNotFoundError,
    NoteNotFoundError,
    StorageError,
)
from notura.models.db_models import DBImage, DBNote, note_images
from notura.models.schema import (
    ImageMetadata,
    ImageWithData,
    ensure_timezone_aware,
    generate_id,
    utc_now,
)
from notura.storage.base import Repository

logger = logging.getLogger(__name__)

DEFAULT_EXTENSION = "png"
_EXTENSION_CLEAN = re.compile(r"[^A-Za-z0-9]")


def _storage_extension(original_name: str, filename: str) -> str:
    """Pick a filesystem-safe extension for the stored file."""
    for name in (original_name, filename):
        suffix = _EXTENSION_CLEAN.sub("", Path(name or "").suffix)[:10]
        if suffix:
            return suffix.lower()
    return DEFAULT_EXTENSION


class ImageRepository(Repository[ImageMetadata]):
    """Repository for images attached to notes.

    Bytes are written to ``images_dir`` under a generated name before the
    metadata row is committed. The metadata row is the source of truth: a
    crash between the two steps can leave an orphan file, never a row
    without a file written by this process.
    """

    def __init__(self, engine: Engine, images_dir: Optional[Path] = None):
        super().__init__(engine)
        self.images_dir = Path(images_dir) if images_dir else config.get_images_dir()
        self.images_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"ImageRepository initialized: images_dir={self.images_dir}")

    def save(
        self,
        data: bytes,
        filename: str,
        original_name: str,
        mime_type: str,
        note_id: Optional[str] = None,
    ) -> ImageMetadata:
        """Store image bytes and metadata, optionally linking to a note.

        Args:
            data: Raw image bytes.
            filename: Name suggested by the caller; only used for its
                extension when original_name has none.
            original_name: Name of the file as the user picked it.
            mime_type: MIME type recorded for display.
            note_id: Note to associate the image with.

        Raises:
            NoteNotFoundError: If note_id does not exist.
            StorageError: If the file or the metadata cannot be written.
        """
        if note_id is not None and not self._note_exists(note_id):
            raise NoteNotFoundError(note_id)

        image_id = generate_id()
        now = utc_now()
        stored_name = (
            f"{image_id}_{int(time.time())}.{_storage_extension(original_name, filename)}"
        )
        file_path = self.images_dir / stored_name

        try:
            file_path.write_bytes(data)
        except OSError as e:
            raise StorageError(
                f"Failed to save image file: {e}",
                operation="save_image",
                path=str(file_path),
                code=ErrorCode.STORAGE_WRITE_FAILED,
                original_error=e,
            ) from e

        try:
            with self.session_factory() as session:
                db_image = DBImage(
                    id=image_id,
                    filename=stored_name,
                    original_name=original_name,
                    file_path=str(file_path),
                    size=len(data),
                    mime_type=mime_type,
                    created_at=now,
                )
                session.add(db_image)
                session.flush()
                if note_id is not None:
                    session.execute(
                        insert(note_images).values(
                            note_id=note_id, image_id=image_id, created_at=now
                        )
                    )
                session.commit()
                image = self._db_to_model(db_image)
        except SQLAlchemyError as e:
            self._remove_file(file_path)
            raise StorageError(
                f"Failed to save image metadata: {e}",
                operation="save_image",
                code=ErrorCode.STORAGE_WRITE_FAILED,
                original_error=e,
            ) from e

        logger.info(f"Saved image {image_id} ({len(data)} bytes, {mime_type})")
        return image

    def get(self, id: str) -> Optional[ImageMetadata]:
        """Get image metadata by ID."""
        with self.session_factory() as session:
            db_image = session.get(DBImage, id)
            if db_image is None:
                return None
            return self._db_to_model(db_image)

    def get_with_data(self, id: str) -> ImageWithData:
        """Get image metadata plus a ``data:<mime>;base64,...`` URL.

        Raises:
            ImageNotFoundError: If no such image exists.
            StorageError: If the file cannot be read.
        """
        image = self.get(id)
        if image is None:
            raise ImageNotFoundError(id)
        try:
            raw = Path(image.file_path).read_bytes()
        except OSError as e:
            raise StorageError(
                f"Failed to read image file: {e}",
                operation="get_image",
                path=image.file_path,
                code=ErrorCode.STORAGE_READ_FAILED,
                original_error=e,
            ) from e
        encoded = base64.b64encode(raw).decode("ascii")
        return ImageWithData(
            **image.model_dump(),
            data_url=f"data:{image.mime_type};base64,{encoded}",
        )

    def get_all(self) -> List[ImageMetadata]:
        """Get all images, newest first."""
        with self.session_factory() as session:
            result = session.execute(
                select(DBImage).order_by(DBImage.created_at.desc())
            )
            return [self._db_to_model(db) for db in result.scalars().all()]

    def get_for_note(self, note_id: str) -> List[ImageMetadata]:
        """Get images associated with a note, newest first."""
        with self.session_factory() as session:
            result = session.execute(
                select(DBImage)
                .join(note_images, note_images.c.image_id == DBImage.id)
                .where(note_images.c.note_id == note_id)
                .order_by(DBImage.created_at.desc())
            )
            return [self._db_to_model(db) for db in result.scalars().all()]

    def delete(self, id: str) -> None:
        """Delete an image file and its metadata.

        The file is unlinked only after the metadata delete commits, so a
        failed commit never leaves a row pointing at a missing file. Failing
        to remove the file is logged. Note associations cascade with the row.

        Raises:
            ImageNotFoundError: If no such image exists.
        """
        try:
            with self.session_factory() as session:
                db_image = session.get(DBImage, id)
                if db_image is None:
                    raise ImageNotFoundError(id)
                file_path = Path(db_image.file_path)
                session.delete(db_image)
                session.commit()
        except SQLAlchemyError as e:
            raise StorageError(
                f"Failed to delete image from database: {e}",
                operation="delete_image",
                code=ErrorCode.STORAGE_DELETE_FAILED,
                original_error=e,
            ) from e
        self._remove_file(file_path)
        logger.info(f"Deleted image {id}")

    def set_association(self, image_id: str, note_id: str, is_used: bool) -> None:
        """Link (is_used=True) or unlink an image and a note. Idempotent.

        Raises:
            ImageNotFoundError / NoteNotFoundError: When linking to a missing
                image or note.
        """
        try:
            with self.session_factory() as session:
                if is_used:
                    if session.get(DBImage, image_id) is None:
                        raise ImageNotFoundError(image_id)
                    if session.get(DBNote, note_id) is None:
                        raise NoteNotFoundError(note_id)
                    session.execute(
                        sqlite_insert(note_images)
                        .values(note_id=note_id, image_id=image_id, created_at=utc_now())
                        .on_conflict_do_nothing(index_elements=["note_id", "image_id"])
                    )
                else:
                    session.execute(
                        delete(note_images).where(
                            note_images.c.note_id == note_id,
                            note_images.c.image_id == image_id,
                        )
                    )
                session.commit()
        except SQLAlchemyError as e:
            raise StorageError(
                f"Failed to update image association: {e}",
                operation="set_image_association",
                code=ErrorCode.STORAGE_WRITE_FAILED,
                original_error=e,
            ) from e

    def _note_exists(self, note_id: str) -> bool:
        with self.session_factory() as session:
            return session.get(DBNote, note_id) is not None

    @staticmethod
    def _remove_file(file_path: Path) -> None:
        try:
            file_path.unlink()
        except OSError as e:
            logger.warning(f"Failed to delete image file {file_path}: {e}")

    @staticmethod
    def _db_to_model(db_image: DBImage) -> ImageMetadata:
        return ImageMetadata(
            id=db_image.id,
            filename=db_image.filename,
            original_name=db_image.original_name,
            file_path=db_image.file_path,
            size=db_image.size,
            mime_type=db_image.mime_type,
            created_at=ensure_timezone_aware(db_image.created_at),
        )
