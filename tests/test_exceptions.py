"""Tests for the exception hierarchy and error codes."""
from pathlib import Path

import pytest

import notura
from notura.exceptions import (
    CollectionHasChildrenError,
    ErrorCode,
    NoteNotFoundError,
    StorageError,
)


class TestErrorCodes:
    """Tests for ErrorCode."""

    def test_codes_are_unique(self):
        values = [code.value for code in ErrorCode]
        assert len(values) == len(set(values))

    @pytest.mark.parametrize("code", list(ErrorCode), ids=lambda c: c.name)
    def test_every_code_is_raised_somewhere(self, code):
        """No code is defined without a raise site in the package."""
        package_dir = Path(notura.__file__).parent
        sources = [
            path.read_text(encoding="utf-8")
            for path in package_dir.rglob("*.py")
            if path.name != "exceptions.py"
        ]
        # Default codes are assigned inside exceptions.py itself
        sources.append(
            (package_dir / "exceptions.py").read_text(encoding="utf-8").split("class NoturaError", 1)[1]
        )
        assert any(f"ErrorCode.{code.name}" in source for source in sources)


class TestNoturaError:
    """Tests for structured error details."""

    def test_to_dict(self):
        error = NoteNotFoundError("abc")
        assert error.to_dict() == {
            "error": "NoteNotFoundError",
            "code": 1001,
            "code_name": "NOTE_NOT_FOUND",
            "message": "Note with id abc not found",
            "details": {"note_id": "abc"},
        }

    def test_str_includes_code_and_details(self):
        error = CollectionHasChildrenError("c1", 2)
        assert str(error).startswith("[COLLECTION_HAS_CHILDREN]")
        assert "child_count=2" in str(error)

    def test_storage_error_hides_full_path(self):
        error = StorageError("boom", path="/home/user/secret/data.db")
        assert error.details["path_hint"] == "data.db"
