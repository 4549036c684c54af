"""FTS5 full-text search index for notes.

Encapsulates FTS5 querying, filter clauses, graceful degradation and
recovery logic. The index itself is kept in sync by triggers created in
``notura.models.db_models.init_fts5``.
"""
import logging
import re
import sqlite3
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import DateTime, Float, String, Text, bindparam, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DatabaseError as SQLAlchemyDatabaseError
from sqlalchemy.exc import OperationalError as SQLAlchemyOperationalError

from notura.exceptions import ErrorCode, SearchError
from notura.models.db_models import get_session_factory, rebuild_fts_index
from notura.models.schema import SearchFilters, ensure_timezone_aware
from notura.utils import escape_like_pattern

logger = logging.getLogger(__name__)

FTS5_KEYWORDS = {"AND", "OR", "NOT", "NEAR"}

# Column index of ``content`` in notes_fts(title, content, tags)
CONTENT_COLUMN = 1

_RESULT_COLUMNS = dict(
    id=String,
    title=Text,
    content=Text,
    updated_at=DateTime(timezone=True),
    excerpt=Text,
    rank=Float,
)


class FtsIndex:
    """FTS5 full-text search index with graceful degradation.

    Ranking uses the FTS5 ``rank`` column (BM25). Lower values are better
    matches, so results are ordered ascending and the raw value is handed to
    callers unchanged. The LIKE fallback follows the same convention.

    Args:
        engine: SQLAlchemy engine used for database access.
        snippet_tokens: Maximum tokens in an FTS5 snippet excerpt.
    """

    def __init__(self, engine: Engine, snippet_tokens: int = 32) -> None:
        self.engine = engine
        self._session_factory = get_session_factory(engine)
        self.snippet_tokens = snippet_tokens
        self.available: bool = True

    # ------------------------------------------------------------------
    # Public query API
    # ------------------------------------------------------------------

    def search(
        self,
        query: str,
        limit: int = 50,
        filters: Optional[SearchFilters] = None,
        literal: Optional[bool] = None,
        _recovered: bool = False,
    ) -> List[Dict[str, Any]]:
        """Full-text search over non-archived notes.

        Args:
            query: Search query. Plain words are matched term by term; FTS5
                syntax (operators, quoted phrases, prefix*) is passed through.
            limit: Maximum results.
            filters: Optional collection/tag/date restrictions.
            literal: None = auto-detect, True = escape, False = preserve syntax.

        Returns:
            List of result dicts (id, title, content, updated_at, excerpt,
            rank, search_mode), best match first.
        """
        if not self.available:
            logger.debug("FTS5 unavailable, using fallback search")
            return self._fallback_text_search(query, limit, filters)

        if literal is None:
            literal = self._should_escape(query)

        match_query = self._escape_query(query) if literal else query
        if not match_query:
            return []

        where, params = self._filter_clauses(filters)
        sql = text(f"""
            SELECT n.id AS id, n.title AS title, n.content AS content,
                   n.updated_at AS updated_at,
                   snippet(notes_fts, {CONTENT_COLUMN}, '<mark>', '</mark>', '...',
                           {int(self.snippet_tokens)}) AS excerpt,
                   notes_fts.rank AS rank
            FROM notes_fts
            JOIN notes n ON notes_fts.rowid = n.rowid
            WHERE notes_fts MATCH :query AND n.is_archived = 0{where}
            ORDER BY notes_fts.rank
            LIMIT :limit
        """).bindparams(*params).columns(**_RESULT_COLUMNS)

        results: List[Dict[str, Any]] = []
        with self._session_factory() as session:
            try:
                rows = session.execute(
                    sql, {"query": match_query, "limit": limit}
                ).fetchall()
            except (sqlite3.OperationalError, SQLAlchemyOperationalError) as e:
                logger.warning(
                    f"FTS5 query failed for '{query}': {e}. Using fallback search."
                )
                return self._fallback_text_search(query, limit, filters)

            except (sqlite3.DatabaseError, SQLAlchemyDatabaseError) as e:
                error_msg = str(e).lower()
                if "malformed" in error_msg or "corrupt" in error_msg:
                    logger.error(
                        f"FTS5 corruption detected: {e}. Attempting auto-rebuild..."
                    )
                    # One rebuild per search; corruption surviving it disables FTS5
                    if not _recovered and self._attempt_recovery():
                        logger.info("FTS5 rebuilt successfully, retrying search")
                        return self.search(
                            query, limit, filters, literal, _recovered=True
                        )
                    logger.error(
                        "FTS5 recovery failed. Disabling FTS5 for this session."
                    )
                    self.available = False
                    return self._fallback_text_search(query, limit, filters)
                logger.error(f"FTS5 database error: {e}. Using fallback search.")
                return self._fallback_text_search(query, limit, filters)

        for row in rows:
            results.append({
                "id": row.id,
                "title": row.title,
                "content": row.content,
                "updated_at": ensure_timezone_aware(row.updated_at),
                "excerpt": row.excerpt or "",
                "rank": float(row.rank),
                "search_mode": "fts5",
            })
        return results

    def rebuild(self) -> int:
        """Rebuild the FTS5 index from the notes table."""
        return rebuild_fts_index(self.engine)

    def integrity_check(self) -> bool:
        """Run the FTS5 integrity check; False if the index is damaged."""
        try:
            with self._session_factory() as session:
                session.execute(
                    text("INSERT INTO notes_fts(notes_fts) VALUES('integrity-check')")
                )
                session.commit()
            return True
        except (sqlite3.DatabaseError, SQLAlchemyDatabaseError) as e:
            logger.error(f"FTS5 integrity check failed: {e}")
            return False

    def reset_availability(self) -> bool:
        """Re-enable FTS5 after manual repair."""
        self.available = self.integrity_check()
        if self.available:
            logger.info("FTS5 availability reset - FTS5 is now enabled")
        return self.available

    # ------------------------------------------------------------------
    # Query escaping helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _should_escape(query: str) -> bool:
        """Auto-detect whether a query needs FTS5 escaping."""
        words = query.split()
        if any(word in FTS5_KEYWORDS for word in words):
            return False
        if query.count('"') >= 2:
            return False
        if re.search(r"\b\w+\*", query):
            return False
        if re.search(r"\b\w+:", query):
            return False
        return True

    @staticmethod
    def _escape_query(query: str) -> str:
        """Quote each term so it is matched literally (implicit AND).

        Terms without any word character cannot match a token and are dropped.
        """
        terms = []
        for term in query.split():
            term = re.sub(r"[*^]", "", term)
            if not any(ch.isalnum() for ch in term):
                continue
            terms.append('"' + term.replace('"', '""') + '"')
        return " ".join(terms)

    # ------------------------------------------------------------------
    # Filters
    # ------------------------------------------------------------------

    @staticmethod
    def _filter_clauses(filters: Optional[SearchFilters]) -> Tuple[str, list]:
        """SQL fragments (against alias ``n``) and typed bind params."""
        if filters is None:
            return "", []

        clauses: List[str] = []
        params: list = []
        if filters.collections:
            clauses.append("n.collection_id IN :collections")
            params.append(
                bindparam("collections", value=list(filters.collections), expanding=True)
            )
        if filters.tags:
            # CASE keeps json_each away from rows whose tags are not valid JSON
            clauses.append(
                "CASE WHEN json_valid(n.tags) THEN EXISTS ("
                "SELECT 1 FROM json_each(n.tags) WHERE json_each.value IN :tags"
                ") ELSE 0 END"
            )
            params.append(bindparam("tags", value=list(filters.tags), expanding=True))
        if filters.date_range is not None:
            clauses.append("n.updated_at >= :start AND n.updated_at <= :end")
            params.append(
                bindparam("start", value=filters.date_range.start, type_=DateTime(timezone=True))
            )
            params.append(
                bindparam("end", value=filters.date_range.end, type_=DateTime(timezone=True))
            )

        if not clauses:
            return "", []
        return "".join(f" AND {clause}" for clause in clauses), params

    # ------------------------------------------------------------------
    # Fallback & recovery
    # ------------------------------------------------------------------

    def _fallback_text_search(
        self, query: str, limit: int = 50, filters: Optional[SearchFilters] = None
    ) -> List[Dict[str, Any]]:
        """LIKE-based fallback when FTS5 is unavailable or rejects the query."""
        escaped_query = escape_like_pattern(query.strip())
        search_term = f"%{escaped_query}%"
        where, params = self._filter_clauses(filters)
        results: List[Dict[str, Any]] = []

        try:
            with self._session_factory() as session:
                sql = text(f"""
                    SELECT n.id AS id, n.title AS title, n.content AS content,
                           n.updated_at AS updated_at
                    FROM notes n
                    WHERE (n.title LIKE :term ESCAPE '\\' OR n.content LIKE :term ESCAPE '\\')
                      AND n.is_archived = 0{where}
                    ORDER BY n.updated_at DESC
                    LIMIT :limit
                """).bindparams(*params).columns(
                    id=String, title=Text, content=Text,
                    updated_at=DateTime(timezone=True),
                )
                rows = session.execute(
                    sql, {"term": search_term, "limit": limit}
                ).fetchall()
        except (sqlite3.DatabaseError, SQLAlchemyDatabaseError) as e:
            raise SearchError(
                f"Fallback text search failed: {e}",
                query=query,
                code=ErrorCode.SEARCH_FAILED,
            ) from e

        needle = query.strip().lower()
        for row in rows:
            title_match = needle in (row.title or "").lower()
            results.append({
                "id": row.id,
                "title": row.title,
                "content": row.content,
                "updated_at": ensure_timezone_aware(row.updated_at),
                "excerpt": self._fallback_excerpt(row.content or "", query.strip()),
                "rank": -2.0 if title_match else -1.0,
                "search_mode": "fallback",
            })
        # Title hits first, keeping recency order within each group
        results.sort(key=lambda r: r["rank"])

        logger.debug(
            f"Fallback search returned {len(results)} results for query '{query}'"
        )
        return results

    def _fallback_excerpt(self, content: str, query: str, window: int = 60) -> str:
        """Excerpt around the first occurrence with the same markers as FTS5."""
        match = re.search(re.escape(query), content, re.IGNORECASE) if query else None
        if match is None:
            return content[: window * 2] + ("..." if len(content) > window * 2 else "")
        start = max(0, match.start() - window)
        end = min(len(content), match.end() + window)
        prefix = "..." if start > 0 else ""
        suffix = "..." if end < len(content) else ""
        return (
            f"{prefix}{content[start:match.start()]}<mark>{match.group(0)}</mark>"
            f"{content[match.end():end]}{suffix}"
        )

    def _attempt_recovery(self) -> bool:
        """Attempt to recover FTS5 by rebuilding the index."""
        try:
            count = self.rebuild()
            logger.info(f"FTS5 index rebuilt with {count} notes")
            return True
        except (sqlite3.DatabaseError, SQLAlchemyDatabaseError) as e:
            logger.error(f"FTS5 rebuild failed: {e}")
            return False
