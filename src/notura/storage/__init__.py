"""Storage layer for Notura Store."""

from notura.storage.base import Repository
from notura.storage.collection_repository import CollectionRepository
from notura.storage.fts_index import FtsIndex
from notura.storage.image_repository import ImageRepository
from notura.storage.note_repository import NoteRepository

__all__ = [
    "Repository",
    "NoteRepository",
    "CollectionRepository",
    "ImageRepository",
    "FtsIndex",
]
