"""Service for full-text search over notes."""

import logging
import re
from typing import List, Optional

from sqlalchemy.engine import Engine

from notura.config import config
from notura.models.schema import SearchFilters, SearchResult
from notura.storage.fts_index import FtsIndex

logger = logging.getLogger(__name__)


def extract_highlights(content: str, query: str, window: int = 30) -> List[str]:
    """Context windows around the first occurrence of each query term.

    Each whitespace-separated term is located case-insensitively in the raw
    content. The match plus up to ``window`` characters on either side
    (clamped to the content bounds) is wrapped as ``...<context>...``.
    Terms that do not occur contribute nothing.

    Examples:
        >>> extract_highlights("I like Python a lot", "python", window=2)
        ['...e Python a...']
    """
    highlights = []
    for term in query.split():
        match = re.search(re.escape(term), content, re.IGNORECASE)
        if match is None:
            continue
        start = max(0, match.start() - window)
        end = min(len(content), match.end() + window)
        highlights.append(f"...{content[start:end]}...")
    return highlights


class SearchService:
    """Ranked full-text search with excerpts and highlights."""

    def __init__(
        self,
        engine: Engine,
        limit: Optional[int] = None,
        highlight_window: Optional[int] = None,
        snippet_tokens: Optional[int] = None,
    ):
        """Initialize the search service.

        Args:
            engine: Engine of an initialized store.
            limit: Maximum results per search (defaults to config.search_limit).
            highlight_window: Characters of context on each side of a
                highlight (defaults to config.highlight_window).
            snippet_tokens: Tokens per FTS5 excerpt (defaults to
                config.snippet_tokens).
        """
        self.limit = limit or config.search_limit
        self.highlight_window = (
            config.highlight_window if highlight_window is None else highlight_window
        )
        self.index = FtsIndex(engine, snippet_tokens or config.snippet_tokens)

    def search(
        self, query: str, filters: Optional[SearchFilters] = None
    ) -> List[SearchResult]:
        """Search non-archived notes, best match first.

        An empty or whitespace-only query returns no results without touching
        the database.
        """
        if not query or not query.strip():
            return []

        if filters is not None and filters.content_type:
            logger.warning(
                f"Search filter content_type={filters.content_type!r} is not "
                "supported and was ignored"
            )

        rows = self.index.search(query, limit=self.limit, filters=filters)
        return [
            SearchResult(
                note_id=row["id"],
                title=row["title"],
                excerpt=row["excerpt"],
                highlights=extract_highlights(
                    row["content"] or "", query, self.highlight_window
                ),
                relevance_score=row["rank"],
                last_modified=row["updated_at"],
            )
            for row in rows
        ]

    def rebuild_index(self) -> int:
        """Rebuild the search index and re-enable FTS5 if it was disabled."""
        count = self.index.rebuild()
        self.index.reset_availability()
        logger.info(f"Search index rebuilt: {count} notes")
        return count
