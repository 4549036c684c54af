"""Tests for content normalization and derived counts."""
import pytest

from notura.services.content import char_count, normalize, word_count


class TestNormalize:
    """Tests for normalize()."""

    def test_mixed_line_endings_and_null(self):
        """CRLF and lone CR become LF; null characters are removed."""
        raw = "Line 1\r\nLine 2\rLine 3\nLine 4\0Null byte"
        assert normalize(raw) == "Line 1\nLine 2\nLine 3\nLine 4Null byte"

    @pytest.mark.parametrize("raw", [
        "plain",
        "a\r\n\r\nb",
        "\r\r\n\n",
        "x\0\0y\r",
        "",
    ])
    def test_idempotent(self, raw):
        """Normalizing twice gives the same result as once."""
        once = normalize(raw)
        assert normalize(once) == once
        assert "\r" not in once
        assert "\0" not in once

    def test_crlf_is_one_newline(self):
        """A CRLF pair collapses to a single LF, not two."""
        assert normalize("a\r\nb") == "a\nb"


class TestCounts:
    """Tests for word_count() and char_count()."""

    def test_sample_sentence(self):
        text = "This is a test note with some content."
        assert word_count(text) == 8
        assert char_count(text) == 38

    def test_blank_text_has_no_words(self):
        assert word_count("") == 0
        assert word_count("   \n\t  ") == 0

    def test_any_whitespace_separates_words(self):
        assert word_count("one\ttwo\nthree   four") == 4

    def test_characters_are_code_points(self):
        """Multi-byte characters count once each."""
        assert char_count("héllo wörld") == 11
        assert char_count("日本語") == 3
