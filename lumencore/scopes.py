"""
Scope fan-out shared by MemoryService and SearchService.

A query over "all permitted scopes" runs once per scope store, then the
results are merged, re-sorted by importance then recency, and truncated.
Both services go through fan_out() so their orderings cannot drift apart.
"""

from typing import Callable, Iterable, Optional, Sequence

from .config import LumenConfig
from .types import SCOPE_GLOBAL, SCOPE_PROJECT, Memory, validate_category, validate_scope


# SQL ordering that matches rank_key()
ORDER_BY = "importance DESC, updated_at DESC"


def permitted_scopes(config: LumenConfig, scope: Optional[str] = None) -> tuple[str, ...]:
    """The requested scope, or every scope the policy allows (project first)."""
    if scope is not None:
        validate_scope(scope)
        return (scope,)
    if config.allows_global:
        return (SCOPE_PROJECT, SCOPE_GLOBAL)
    return (SCOPE_PROJECT,)


def rank_key(memory: Memory) -> tuple[int, str]:
    """Sort key for reverse=True: most important first, then most recently updated."""
    return (memory.importance, memory.updated_at)


def fan_out(
    scopes: Iterable[str],
    query: Callable[[str], list[Memory]],
    limit: Optional[int] = None,
) -> list[Memory]:
    """Run ``query`` for each scope, merge, re-rank and truncate to ``limit``."""
    merged: list[Memory] = []
    for scope in scopes:
        merged.extend(query(scope))
    merged.sort(key=rank_key, reverse=True)
    if limit is not None:
        return merged[:limit]
    return merged


def where_clause(
    scope: str,
    project_id: str,
    categories: Optional[Sequence[str]] = None,
    prefix: str = "",
) -> tuple[str, list]:
    """
    Filter conditions for one scope store.

    Project stores are always filtered to ``project_id`` so another
    project's records are never returned. Global stores are not
    project-filtered.

    Args:
        prefix: Table alias prefix for joined queries (e.g. "m.")

    Returns:
        (" AND ..." clause, params)
    """
    clause = ""
    params: list = []
    if scope == SCOPE_PROJECT:
        clause += f" AND {prefix}project_id = ?"
        params.append(project_id)
    if categories:
        for category in categories:
            validate_category(category)
        placeholders = ", ".join("?" * len(categories))
        clause += f" AND {prefix}category IN ({placeholders})"
        params.extend(categories)
    return clause, params
