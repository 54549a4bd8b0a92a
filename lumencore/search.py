"""
Query-time retrieval and context packing.

Keyword search runs through an ordered chain of strategies: FTS5 ranked
match first, then a case-insensitive substring match. A strategy that cannot
serve a query (index missing, empty match expression) is skipped, as is one
whose query the engine rejects. The caller never sees which one answered.
"""

import logging
import re
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol, Sequence

from .config import LumenConfig
from .document_store import MEMORY_COLUMNS, MemoryDatabase, StoreRegistry, row_to_memory
from .errors import QueryRejected
from .memory import ScopedStores
from .scopes import ORDER_BY, fan_out, permitted_scopes, where_clause
from .types import Memory, validate_category

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_LIMIT = 10
CHARS_PER_TOKEN = 4
NO_MEMORIES = "No memories stored yet."

_QUOTES_RE = re.compile(r"['\"]")


def query_terms(query: str) -> list[str]:
    """Whitespace-separated terms with quote characters removed."""
    return _QUOTES_RE.sub("", query).split()


def to_match_expression(query: str) -> str:
    """
    FTS5 MATCH expression: each term as a quoted phrase, OR-ed together.

    Quoting keeps FTS5 operators in user text inert; OR makes any term
    sufficient for a match.
    """
    return " OR ".join(f'"{term}"' for term in query_terms(query))


def _like_pattern(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


@dataclass(frozen=True)
class SearchFilters:
    """Per-scope filters applied by every strategy."""
    scope: str
    project_id: str
    categories: Optional[tuple[str, ...]] = None


class SearchStrategy(Protocol):
    """One way of answering a keyword query against a single store."""

    name: str

    def supports(self, db: MemoryDatabase, query: str) -> bool: ...

    def run(
        self,
        db: MemoryDatabase,
        query: str,
        filters: SearchFilters,
        limit: int,
    ) -> list[Memory]: ...


class FullTextSearch:
    """Ranked FTS5 match over title, content and tags."""

    name = "fts"

    def supports(self, db: MemoryDatabase, query: str) -> bool:
        return db.fts_available and bool(to_match_expression(query))

    def run(self, db, query, filters, limit):
        clause, params = where_clause(
            filters.scope, filters.project_id, filters.categories, prefix="m."
        )
        columns = ", ".join(f"m.{c.strip()}" for c in MEMORY_COLUMNS.split(","))
        try:
            rows = db.fetch_all(f"""
                SELECT {columns}, bm25(memories_fts) AS rank
                FROM memories m
                JOIN memories_fts ON m.rowid = memories_fts.rowid
                WHERE memories_fts MATCH ?{clause}
                ORDER BY rank
                LIMIT ?
            """, (to_match_expression(query), *params, limit), passthrough=(sqlite3.OperationalError,))
        except sqlite3.OperationalError as e:
            raise QueryRejected(str(e)) from e
        return [row_to_memory(row) for row in rows]


class SubstringSearch:
    """Case-insensitive LIKE match; any query term in title, content or tags."""

    name = "substring"

    def supports(self, db: MemoryDatabase, query: str) -> bool:
        return True

    def run(self, db, query, filters, limit):
        terms = query_terms(query) or [query]
        term_clauses = []
        params: list = []
        for term in terms:
            pattern = _like_pattern(term)
            term_clauses.append(
                "(title LIKE ? ESCAPE '\\' OR content LIKE ? ESCAPE '\\' OR tags LIKE ? ESCAPE '\\')"
            )
            params.extend([pattern, pattern, pattern])
        clause, filter_params = where_clause(filters.scope, filters.project_id, filters.categories)
        rows = db.fetch_all(f"""
            SELECT {MEMORY_COLUMNS} FROM memories
            WHERE ({' OR '.join(term_clauses)}){clause}
            ORDER BY {ORDER_BY}
            LIMIT ?
        """, (*params, *filter_params, limit))
        return [row_to_memory(row) for row in rows]


class SearchService:
    """Keyword search and context digests for one project."""

    def __init__(
        self,
        config: LumenConfig,
        registry: StoreRegistry,
        project_path: str | Path,
        strategies: Optional[Sequence[SearchStrategy]] = None,
    ):
        self._config = config
        self._stores = ScopedStores(config, registry, project_path)
        self._strategies: tuple[SearchStrategy, ...] = tuple(
            strategies if strategies is not None else (FullTextSearch(), SubstringSearch())
        )

    @property
    def project_id(self) -> str:
        return self._stores.project_id

    def _keyword_search(
        self,
        db: MemoryDatabase,
        query: str,
        filters: SearchFilters,
        limit: int,
    ) -> list[Memory]:
        for strategy in self._strategies:
            if not strategy.supports(db, query):
                continue
            try:
                return strategy.run(db, query, filters, limit)
            except QueryRejected as e:
                logger.debug("%s search rejected %r, falling back: %s", strategy.name, query, e)
        return []

    def _filtered(self, db: MemoryDatabase, filters: SearchFilters, limit: Optional[int]) -> list[Memory]:
        clause, params = where_clause(filters.scope, filters.project_id, filters.categories)
        sql = f"SELECT {MEMORY_COLUMNS} FROM memories WHERE 1=1{clause} ORDER BY {ORDER_BY}"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        return [row_to_memory(row) for row in db.fetch_all(sql, params)]

    def search(
        self,
        query: Optional[str] = None,
        category: Optional[str] = None,
        scope: Optional[str] = None,
        limit: int = DEFAULT_SEARCH_LIMIT,
    ) -> list[Memory]:
        """
        Find memories matching ``query`` (any term), or filter only when no query.

        Results from all scopes are merged and ordered by importance then
        recency. Full-text rank only decides which rows each store returns.
        """
        if category is not None:
            validate_category(category)
        categories = (category,) if category else None

        def query_scope(s: str) -> list[Memory]:
            db = self._stores.store_for(s)
            filters = SearchFilters(scope=s, project_id=self.project_id, categories=categories)
            if query:
                return self._keyword_search(db, query, filters, limit)
            return self._filtered(db, filters, limit)

        return fan_out(permitted_scopes(self._config, scope), query_scope, limit)

    def get_context(
        self,
        categories: Optional[Sequence[str]] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """
        Digest of the most important memories within a character budget.

        The budget is ``max_tokens * 4`` characters. Blocks are taken greedily
        in importance/recency order, project scope before global. The first
        block that does not fit ends packing, so the result is always a run of
        whole blocks.
        """
        if max_tokens is None:
            max_tokens = self._config.max_context_tokens
        max_chars = max_tokens * CHARS_PER_TOKEN
        categories = tuple(categories) if categories else None

        blocks: list[str] = []
        used = 0
        for scope in permitted_scopes(self._config):
            filters = SearchFilters(scope=scope, project_id=self.project_id, categories=categories)
            exhausted = False
            for memory in self._filtered(self._stores.store_for(scope), filters, None):
                block = format_context_block(memory)
                if used + len(block) > max_chars:
                    exhausted = True
                    break
                blocks.append(block)
                used += len(block)
            if exhausted:
                break

        return "".join(blocks) or NO_MEMORIES


def format_context_block(memory: Memory) -> str:
    tags = f" [{', '.join(memory.tags)}]" if memory.tags else ""
    return f"## {memory.category.upper()}: {memory.title}{tags}\n{memory.content}\n\n"
