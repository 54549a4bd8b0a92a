"""
Data types for project memory.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

from .errors import InvalidMemory


SCOPE_PROJECT = "project"
SCOPE_GLOBAL = "global"
SCOPES = (SCOPE_PROJECT, SCOPE_GLOBAL)

CATEGORIES = ("decision", "pattern", "concept", "note", "task")

# Policy values for LumenConfig.memory_scope
POLICY_PROJECT_ONLY = "project-only"
POLICY_PROJECT_AND_GLOBAL = "project-and-global"
POLICIES = (POLICY_PROJECT_ONLY, POLICY_PROJECT_AND_GLOBAL)

# project_id stored on global-scope records
GLOBAL_PROJECT_ID = "global"

MIN_IMPORTANCE = 1
MAX_IMPORTANCE = 5

# Fixed width so that string order is chronological order
_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def utc_now() -> str:
    """Current UTC timestamp in canonical format: YYYY-MM-DDTHH:MM:SS.ffffffZ."""
    return datetime.now(timezone.utc).strftime(_TIMESTAMP_FORMAT)


def parse_utc_timestamp(ts: str) -> datetime:
    """Parse a stored timestamp string to a timezone-aware UTC datetime."""
    ts = ts.replace("Z", "+00:00")
    dt = datetime.fromisoformat(ts)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def next_timestamp(previous: str) -> str:
    """Current time, or one microsecond after ``previous`` if the clock has not moved past it."""
    now = utc_now()
    if now > previous:
        return now
    bumped = parse_utc_timestamp(previous) + timedelta(microseconds=1)
    return bumped.strftime(_TIMESTAMP_FORMAT)


def validate_scope(scope: str) -> None:
    if scope not in SCOPES:
        raise InvalidMemory(f"Invalid scope {scope!r} (expected one of: {', '.join(SCOPES)})")


def validate_category(category: str) -> None:
    if category not in CATEGORIES:
        raise InvalidMemory(
            f"Invalid category {category!r} (expected one of: {', '.join(CATEGORIES)})"
        )


def validate_importance(importance: int) -> None:
    """Importance must be an integer 1-5. Out-of-range values are rejected, never clamped."""
    if isinstance(importance, bool) or not isinstance(importance, int):
        raise InvalidMemory(f"Importance must be an integer, got {importance!r}")
    if not MIN_IMPORTANCE <= importance <= MAX_IMPORTANCE:
        raise InvalidMemory(
            f"Importance must be between {MIN_IMPORTANCE} and {MAX_IMPORTANCE}, got {importance}"
        )


@dataclass(frozen=True)
class Memory:
    """
    A memory record as stored in a project or global store.

    This is a read-only snapshot. To modify a memory, use
    MemoryService.update(), which returns a fresh Memory.

    Attributes:
        id: Random UUID, assigned on create
        project_id: Project identifier, or "global" for global-scope records
        scope: "project" or "global"; always matches the store it lives in
        category: One of CATEGORIES
        title: Short descriptive title
        content: Free text
        tags: Ordered tags (duplicates allowed)
        importance: Priority 1-5 (5 is highest)
        created_at: ISO timestamp, set once
        updated_at: ISO timestamp, bumped on every change
    """
    id: str
    project_id: str
    scope: str
    category: str
    title: str
    content: str
    tags: list[str] = field(default_factory=list)
    importance: int = 3
    created_at: str = ""
    updated_at: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "scope": self.scope,
            "category": self.category,
            "title": self.title,
            "content": self.content,
            "tags": list(self.tags),
            "importance": self.importance,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass
class CreateMemoryInput:
    """Arguments for MemoryService.create(). Unset optionals take defaults."""
    category: str
    title: str
    content: str
    tags: Optional[list[str]] = None
    importance: Optional[int] = None
    scope: str = SCOPE_PROJECT

    def validate(self) -> None:
        validate_category(self.category)
        validate_scope(self.scope)
        if self.importance is not None:
            validate_importance(self.importance)


@dataclass
class UpdateMemoryInput:
    """
    Arguments for MemoryService.update().

    Only fields that are not None are changed. An empty tag list is a
    change (clears the tags).
    """
    id: str
    title: Optional[str] = None
    content: Optional[str] = None
    tags: Optional[list[str]] = None
    importance: Optional[int] = None

    def validate(self) -> None:
        if self.importance is not None:
            validate_importance(self.importance)

    def changes(self) -> dict:
        """Column -> new value for every field present in this update."""
        changes = {}
        if self.title is not None:
            changes["title"] = self.title
        if self.content is not None:
            changes["content"] = self.content
        if self.tags is not None:
            changes["tags"] = list(self.tags)
        if self.importance is not None:
            changes["importance"] = self.importance
        return changes
