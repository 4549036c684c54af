"""Custom exceptions for Notura Store.

Provides a structured exception hierarchy with error codes and
machine-readable error information. Every operation boundary raises one of
these so callers get a descriptive error instead of a driver exception.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Error codes for machine-readable error identification."""

    # Note errors (1xxx)
    NOTE_NOT_FOUND = 1001

    # Collection errors (2xxx)
    COLLECTION_NOT_FOUND = 2001
    COLLECTION_HAS_CHILDREN = 2002
    COLLECTION_CYCLE = 2003

    # Image errors (3xxx)
    IMAGE_NOT_FOUND = 3001

    # Storage errors (4xxx)
    STORAGE_READ_FAILED = 4001
    STORAGE_WRITE_FAILED = 4002
    STORAGE_DELETE_FAILED = 4003

    # Search errors (5xxx)
    SEARCH_FAILED = 5001

    # Export/import errors (6xxx)
    EXPORT_NO_SELECTION = 6001
    EXPORT_UNSUPPORTED_FORMAT = 6002

    # Validation errors (7xxx)
    VALIDATION_FAILED = 7001


class NoturaError(Exception):
    """Base exception for all Notura errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a dictionary for serialization."""
        return {
            "error": self.__class__.__name__,
            "code": self.code.value,
            "code_name": self.code.name,
            "message": self.message,
            "details": self.details
        }

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"[{self.code.name}] {self.message} ({detail_str})"
        return f"[{self.code.name}] {self.message}"


class NotFoundError(NoturaError):
    """Raised when the target of an operation does not exist."""


class NoteNotFoundError(NotFoundError):
    """Raised when a note cannot be found."""

    def __init__(self, note_id: str, message: Optional[str] = None):
        super().__init__(
            message or f"Note with id {note_id} not found",
            code=ErrorCode.NOTE_NOT_FOUND,
            details={"note_id": note_id}
        )
        self.note_id = note_id


class CollectionNotFoundError(NotFoundError):
    """Raised when a collection cannot be found."""

    def __init__(self, collection_id: str, message: Optional[str] = None):
        super().__init__(
            message or f"Collection with id {collection_id} not found",
            code=ErrorCode.COLLECTION_NOT_FOUND,
            details={"collection_id": collection_id}
        )
        self.collection_id = collection_id


class ImageNotFoundError(NotFoundError):
    """Raised when an image cannot be found."""

    def __init__(self, image_id: str, message: Optional[str] = None):
        super().__init__(
            message or f"Image with id {image_id} not found",
            code=ErrorCode.IMAGE_NOT_FOUND,
            details={"image_id": image_id}
        )
        self.image_id = image_id


class ConstraintError(NoturaError):
    """Raised when an operation would break a structural invariant."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, code=code, details=details)


class CollectionHasChildrenError(ConstraintError):
    """Raised when deleting a collection that still has child collections."""

    def __init__(self, collection_id: str, child_count: int):
        super().__init__(
            "Cannot delete collection with child collections",
            code=ErrorCode.COLLECTION_HAS_CHILDREN,
            details={"collection_id": collection_id, "child_count": child_count}
        )
        self.collection_id = collection_id
        self.child_count = child_count


class UnsupportedFormatError(NoturaError):
    """Raised for an export format other than markdown or json."""

    def __init__(self, format: str):
        super().__init__(
            f"Unsupported export format: {format}",
            code=ErrorCode.EXPORT_UNSUPPORTED_FORMAT,
            details={"format": format[:50]}
        )
        self.format = format


class NoNotesSelectedError(NoturaError):
    """Raised when an export is requested with an empty id list."""

    def __init__(self):
        super().__init__(
            "No notes selected for export",
            code=ErrorCode.EXPORT_NO_SELECTION,
        )


class StorageError(NoturaError):
    """Raised for storage/persistence errors."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        path: Optional[str] = None,
        code: ErrorCode = ErrorCode.STORAGE_READ_FAILED,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if path:
            # Don't expose full paths in error messages
            details["path_hint"] = path.replace("\\", "/").split("/")[-1]
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.operation = operation
        self.path = path
        self.original_error = original_error


class SearchError(NoturaError):
    """Raised for search-related errors."""

    def __init__(
        self,
        message: str,
        query: Optional[str] = None,
        code: ErrorCode = ErrorCode.SEARCH_FAILED
    ):
        details = {}
        if query:
            details["query"] = query[:100]  # Truncate for safety

        super().__init__(message, code=code, details=details)
        self.query = query


class ValidationError(NoturaError):
    """Raised for general validation errors."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED
    ):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)[:100]

        super().__init__(message, code=code, details=details)
        self.field = field
        self.value = value
