"""Tests for exporting and importing notes."""
import json

import pytest

from notura.exceptions import (
    ErrorCode,
    NoNotesSelectedError,
    StorageError,
    UnsupportedFormatError,
    ValidationError,
)
from notura.services.export_service import export_markdown, parse_markdown_sections
from notura.storage import note_repository as note_repository_module


class TestExport:
    """Tests for export_notes."""

    def test_markdown_layout(self, service):
        note = service.create_note("Shopping", "milk\neggs", tags=["home", "todo"])
        output = service.export_notes("markdown", [note.id])
        created = note.created_at.strftime("%Y-%m-%d %H:%M:%S")
        updated = note.updated_at.strftime("%Y-%m-%d %H:%M:%S")
        assert output == (
            "# Shopping\n\n"
            f"*Created: {created}*\n"
            f"*Updated: {updated}*\n\n"
            "*Tags: home, todo*\n\n"
            "milk\neggs"
            "\n\n---\n\n"
        )

    def test_markdown_omits_empty_tags(self, service):
        note = service.create_note("Plain", "body")
        assert "*Tags:" not in service.export_notes("markdown", [note.id])

    def test_json_export(self, service):
        note = service.create_note("Title", "content", tags=["a"])
        data = json.loads(service.export_notes("json", [note.id]))
        assert len(data) == 1
        assert data[0]["id"] == note.id
        assert data[0]["tags"] == ["a"]
        assert data[0]["word_count"] == 1
        assert data[0]["is_archived"] is False

    def test_export_orders_by_creation(self, service):
        first = service.create_note("First", "1")
        second = service.create_note("Second", "2")
        data = json.loads(service.export_notes("json", [second.id, first.id]))
        assert [n["title"] for n in data] == ["First", "Second"]

    def test_empty_selection(self, service):
        with pytest.raises(NoNotesSelectedError) as exc:
            service.export_notes("json", [])
        assert exc.value.message == "No notes selected for export"
        assert exc.value.code == ErrorCode.EXPORT_NO_SELECTION

    def test_unsupported_format(self, service):
        note = service.create_note("T", "c")
        with pytest.raises(UnsupportedFormatError) as exc:
            service.export_notes("pdf", [note.id])
        assert exc.value.message == "Unsupported export format: pdf"


class TestJsonImport:
    """Tests for importing JSON exports."""

    def test_round_trip(self, service):
        originals = [
            service.create_note("One", "first body", tags=["x"]),
            service.create_note("Two", "second body here", tags=[]),
        ]
        exported = service.export_notes("json", [n.id for n in originals])
        imported = service.import_notes(exported)

        assert [(n.title, n.content, n.tags) for n in imported] == [
            (n.title, n.content, n.tags) for n in originals
        ]
        for old, new in zip(originals, imported):
            assert new.id != old.id
            assert new.created_at >= old.created_at
            assert new.word_count == old.word_count
            assert new.character_count == old.character_count

    def test_counts_recomputed_from_content(self, service):
        source = json.dumps([{
            "title": "T", "content": "a b\r\nc", "word_count": 999,
            "character_count": 999, "is_archived": True,
        }])
        [note] = service.import_notes(source)
        assert note.content == "a b\nc"
        assert note.word_count == 3
        assert note.character_count == 5
        assert note.is_archived is False

    def test_tags_as_json_text(self, service):
        source = json.dumps([{"title": "T", "content": "c", "tags": '["old", "format"]'}])
        [note] = service.import_notes(source)
        assert note.tags == ["old", "format"]

    def test_unknown_collection_dropped(self, service):
        work = service.create_collection("Work")
        source = json.dumps([
            {"title": "Kept", "content": "c", "collection_id": work.id},
            {"title": "Dropped", "content": "c", "collection_id": "elsewhere"},
        ])
        kept, dropped = service.import_notes(source)
        assert kept.collection_id == work.id
        assert dropped.collection_id is None

    def test_collection_deleted_during_import_is_dropped(self, service, monkeypatch):
        """A collection removed just before the write transaction is not fatal."""
        work = service.create_collection("Work")
        source = json.dumps([{"title": "Late", "content": "c", "collection_id": work.id}])
        real_begin = note_repository_module.begin_immediate

        def delete_then_begin(session):
            monkeypatch.setattr(note_repository_module, "begin_immediate", real_begin)
            service.delete_collection(work.id)
            real_begin(session)

        monkeypatch.setattr(note_repository_module, "begin_immediate", delete_then_begin)
        [note] = service.import_notes(source)
        assert note.collection_id is None
        assert service.get_note(note.id).collection_id is None

    def test_blank_title_aborts_whole_import(self, service):
        source = json.dumps([
            {"title": "Fine", "content": "c"},
            {"title": "", "content": "c"},
        ])
        with pytest.raises(ValidationError):
            service.import_notes(source)
        assert service.list_notes() == []

    def test_empty_array(self, service):
        assert service.import_notes("[]") == []


class TestMarkdownImport:
    """Tests for importing Markdown."""

    def test_sections_become_notes(self, service):
        source = "# Alpha\n\nfirst body\n---\n## Beta\nsecond body\n---\n\n"
        alpha, beta = service.import_notes(source)
        assert alpha.title == "Alpha"
        assert alpha.content == "# Alpha\n\nfirst body"
        assert beta.title == "Beta"
        assert beta.collection_id is None
        assert beta.tags == []

    def test_markdown_export_round_trip(self, service):
        note = service.create_note("Recipe", "flour and water")
        imported = service.import_notes(service.export_notes("markdown", [note.id]))
        assert [n.title for n in imported] == ["Recipe"]
        assert "flour and water" in imported[0].content

    def test_heading_marks_only_gets_placeholder(self):
        drafts = parse_markdown_sections("real\n---\n#\nbody")
        assert [d[0] for d in drafts] == ["real", "Imported Note 2"]

    def test_crlf_separators_split_sections(self):
        drafts = parse_markdown_sections("# Alpha\r\nfirst\r\n---\r\n# Beta\r\nsecond\r\n")
        assert [d[0] for d in drafts] == ["Alpha", "Beta"]
        assert drafts[0][1] == "# Alpha\nfirst"

    def test_leading_blank_lines_skipped_for_title(self):
        [(title, content, collection_id, tags)] = parse_markdown_sections("\n\n# Late title\nx")
        assert title == "Late title"
        assert collection_id is None
        assert tags == []

    def test_invalid_json_is_markdown(self, service):
        [note] = service.import_notes('{"title": "not a list"}')
        assert note.title == '{"title": "not a list"}'

    def test_export_markdown_empty(self):
        assert export_markdown([]) == ""


class TestImportFile:
    """Tests for import_file."""

    def test_reads_utf8_file(self, service, tmp_path):
        path = tmp_path / "notes.md"
        path.write_text("# Über\nbody", encoding="utf-8")
        [note] = service.import_file(path)
        assert note.title == "Über"

    def test_missing_file(self, service, tmp_path):
        with pytest.raises(StorageError) as exc:
            service.import_file(tmp_path / "nope.json")
        assert exc.value.code == ErrorCode.STORAGE_READ_FAILED
