"""Content normalization and derived counts for note bodies."""


def normalize(raw: str) -> str:
    """Sanitize raw note content.

    Strips null characters and converts CRLF and lone CR line endings to LF.
    Pure and idempotent.

    Examples:
        >>> normalize("Line 1\\r\\nLine 2\\rLine 3\\nLine 4\\0Null byte")
        'Line 1\\nLine 2\\nLine 3\\nLine 4Null byte'
    """
    return raw.replace("\0", "").replace("\r\n", "\n").replace("\r", "\n")


def word_count(text: str) -> int:
    """Count whitespace-delimited tokens. Empty or blank text yields 0."""
    return len(text.split())


def char_count(text: str) -> int:
    """Count Unicode code points (not bytes)."""
    return len(text)
