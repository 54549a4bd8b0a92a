"""
MCP stdio server for lumencore: persistent project memory for AI agents.

Exposes LumenCore operations as MCP tools so coding agents (Claude Code,
etc.) can save and recall project knowledge across sessions.

Usage:
    lumencore serve [PROJECT]                          # stdio server (via CLI)
    claude mcp add lumencore -- lumencore serve        # Claude Code integration

All LumenCore calls are serialized through a single asyncio.Lock.
"""

import asyncio
import atexit
import logging
import os
import signal
from typing import Annotated, Literal, Optional

from mcp.server.fastmcp import FastMCP
from mcp.types import ToolAnnotations
from pydantic import Field

from .api import LumenCore
from .cli import render_list, render_recall, render_resource
from .errors import LumenCoreError
from .types import CreateMemoryInput, UpdateMemoryInput

logger = logging.getLogger(__name__)

Category = Literal["decision", "pattern", "concept", "note", "task"]
Scope = Literal["project", "global"]

# ---------------------------------------------------------------------------
# Server setup
# ---------------------------------------------------------------------------

mcp = FastMCP(
    "lumencore",
    instructions=(
        "Persistent project memory. "
        "Save decisions, patterns, concepts, notes and tasks as you learn them. "
        "Call get_context at the start of a session to load what is already known."
    ),
)

_core: Optional[LumenCore] = None
_lock = asyncio.Lock()


def _get_core() -> LumenCore:
    """Lazy-init LumenCore for LUMENCORE_PROJECT (or the project root of the cwd).

    Must be called inside ``async with _lock``.
    """
    global _core
    if _core is None:
        _core = LumenCore(os.environ.get("LUMENCORE_PROJECT") or None)
    return _core


def _close_core() -> None:
    global _core
    if _core is not None:
        _core.close()
        _core = None


# ---------------------------------------------------------------------------
# Tool annotations
# ---------------------------------------------------------------------------

_READ_ONLY = ToolAnnotations(readOnlyHint=True, destructiveHint=False)
_WRITE = ToolAnnotations(destructiveHint=False, idempotentHint=False)
_IDEMPOTENT = ToolAnnotations(idempotentHint=True, destructiveHint=False)
_DESTRUCTIVE = ToolAnnotations(destructiveHint=True, idempotentHint=True)


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


@mcp.tool(
    description=(
        "Store a new memory. Use this to save important project knowledge: "
        "decision (architectural choices), pattern (code conventions), "
        "concept (domain knowledge), note (observations), task (work items)."
    ),
    annotations=_WRITE,
)
async def remember(
    category: Annotated[Category, Field(description="Type of memory.")],
    title: Annotated[str, Field(description="Short descriptive title for the memory.")],
    content: Annotated[str, Field(description="Full content of the memory.")],
    tags: Annotated[Optional[list[str]], Field(
        description="Optional tags for categorization.",
    )] = None,
    importance: Annotated[Optional[int], Field(
        description="Priority score 1-5 (5 is highest). Defaults to the configured importance.",
        ge=1, le=5,
    )] = None,
    scope: Annotated[Scope, Field(
        description="project (this project only) or global (all projects).",
    )] = "project",
) -> str:
    """Store a memory."""
    async with _lock:
        try:
            memory = _get_core().create(CreateMemoryInput(
                category=category,
                title=title,
                content=content,
                tags=tags,
                importance=importance,
                scope=scope,
            ))
        except LumenCoreError as e:
            return f"Error: {e}"
    logger.info("remember %s %s %s", memory.scope, memory.category, memory.id)
    return (
        "Memory stored successfully.\n"
        f"ID: {memory.id}\n"
        f"Title: {memory.title}\n"
        f"Category: {memory.category}\n"
        f"Scope: {memory.scope}"
    )


@mcp.tool(
    description="Search and retrieve memories by keyword query or filters.",
    annotations=_READ_ONLY,
)
async def recall(
    query: Annotated[Optional[str], Field(
        description="Search query; any word may match.",
    )] = None,
    category: Annotated[Optional[Category], Field(description="Filter by category.")] = None,
    limit: Annotated[int, Field(description="Maximum number of results.", ge=1)] = 10,
) -> str:
    """Search memory."""
    async with _lock:
        try:
            memories = _get_core().search(query=query, category=category, limit=limit)
        except LumenCoreError as e:
            return f"Error: {e}"
    if not memories:
        return "No memories found matching your query."
    return render_recall(memories)


@mcp.tool(
    description="Delete a memory by its ID.",
    annotations=_DESTRUCTIVE,
)
async def forget(
    id: Annotated[str, Field(description="The ID of the memory to delete.")],
) -> str:
    """Delete a memory."""
    async with _lock:
        try:
            deleted = _get_core().delete(id)
        except LumenCoreError as e:
            return f"Error: {e}"
    if deleted:
        logger.info("forget %s", id)
        return f"Memory {id} deleted successfully."
    return f"Memory {id} not found."


@mcp.tool(
    description="List memories, most important first, with optional category filter.",
    annotations=_READ_ONLY,
)
async def list_memories(
    category: Annotated[Optional[Category], Field(description="Filter by category.")] = None,
    limit: Annotated[int, Field(description="Maximum number of results.", ge=1)] = 50,
) -> str:
    """List memories."""
    async with _lock:
        try:
            memories = _get_core().list(category=category, limit=limit)
        except LumenCoreError as e:
            return f"Error: {e}"
    if not memories:
        return "No memories stored yet."
    return render_list(memories)


@mcp.tool(
    description=(
        "Get a summary of project knowledge for session bootstrapping. "
        "Call this at the start of a session to load relevant context."
    ),
    annotations=_READ_ONLY,
)
async def get_context(
    categories: Annotated[Optional[list[Category]], Field(
        description="Which categories to include. Default: all.",
    )] = None,
    max_tokens: Annotated[Optional[int], Field(
        description="Approximate token budget for the context. Default: configured maximum.",
        ge=1,
    )] = None,
) -> str:
    """Context digest."""
    async with _lock:
        try:
            return _get_core().get_context(categories=categories, max_tokens=max_tokens)
        except LumenCoreError as e:
            return f"Error: {e}"


@mcp.tool(
    description=(
        "Update the title, content, tags or importance of an existing memory. "
        "Only the fields given are changed."
    ),
    annotations=_IDEMPOTENT,
)
async def update_memory(
    id: Annotated[str, Field(description="The ID of the memory to update.")],
    title: Annotated[Optional[str], Field(description="New title.")] = None,
    content: Annotated[Optional[str], Field(description="New content.")] = None,
    tags: Annotated[Optional[list[str]], Field(description="Replacement tag list.")] = None,
    importance: Annotated[Optional[int], Field(description="New priority 1-5.", ge=1, le=5)] = None,
) -> str:
    """Update a memory."""
    async with _lock:
        try:
            memory = _get_core().update(UpdateMemoryInput(
                id=id, title=title, content=content, tags=tags, importance=importance,
            ))
        except LumenCoreError as e:
            return f"Error: {e}"
    if memory is None:
        return f"Memory {id} not found."
    logger.info("update %s", id)
    return f"Memory {id} updated.\nTitle: {memory.title}\nImportance: {memory.importance}"


@mcp.tool(
    description="Count stored memories for this project (and globally, if enabled).",
    annotations=_READ_ONLY,
)
async def memory_stats() -> str:
    """Memory statistics."""
    async with _lock:
        try:
            core = _get_core()
            stats = core.get_stats()
        except LumenCoreError as e:
            return f"Error: {e}"
    lines = [f"Project memories: {stats['project']}"]
    if core.config.allows_global:
        lines.append(f"Global memories: {stats['global']}")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Resources
# ---------------------------------------------------------------------------

async def _read_resource(category: Optional[str]) -> str:
    async with _lock:
        try:
            memories = _get_core().list(category=category, limit=50)
        except LumenCoreError as e:
            return f"Error: {e}"
    if not memories:
        return "No memories found."
    return render_resource(memories)


@mcp.resource(
    "memory://decisions",
    name="Architectural Decisions",
    description="Browse all architectural decisions",
    mime_type="text/plain",
)
async def decisions_resource() -> str:
    return await _read_resource("decision")


@mcp.resource(
    "memory://patterns",
    name="Code Patterns",
    description="Browse code patterns and conventions",
    mime_type="text/plain",
)
async def patterns_resource() -> str:
    return await _read_resource("pattern")


@mcp.resource(
    "memory://concepts",
    name="Domain Concepts",
    description="Browse domain concepts and glossary",
    mime_type="text/plain",
)
async def concepts_resource() -> str:
    return await _read_resource("concept")


@mcp.resource(
    "memory://recent",
    name="Recent Memories",
    description="Memories of every category, most important first",
    mime_type="text/plain",
)
async def recent_resource() -> str:
    return await _read_resource(None)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def _shutdown(code: int) -> None:
    # Store handles must be closed before the process goes away
    _close_core()
    os._exit(code)


def main():
    """Run the MCP stdio server."""
    # anyio's stdin reader shields the blocking readline from cancellation,
    # so Ctrl+C would not take effect; exit directly instead.
    signal.signal(signal.SIGINT, lambda *_: _shutdown(130))
    signal.signal(signal.SIGTERM, lambda *_: _shutdown(0))
    atexit.register(_close_core)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
