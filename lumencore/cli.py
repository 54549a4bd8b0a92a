"""
CLI interface for project memory.

Usage:
    lumencore setup
    lumencore remember decision "Use SQLite" "Embedded, zero-config, FTS5 built in"
    lumencore recall "sqlite"
    lumencore serve
"""

import json
import os
import shutil
from pathlib import Path
from typing import Optional

import typer
from typing_extensions import Annotated

from .config import LumenConfig, get_config_manager
from .errors import LumenCoreError
from .logging_config import configure_ops_log, enable_debug_mode
from .paths import find_project_root
from .types import (
    MAX_IMPORTANCE,
    MIN_IMPORTANCE,
    POLICIES,
    SCOPE_GLOBAL,
    SCOPE_PROJECT,
    CreateMemoryInput,
    Memory,
)

if os.environ.get("LUMENCORE_VERBOSE") == "1":
    enable_debug_mode()


# -----------------------------------------------------------------------------
# Output Formatting (shared with the MCP server)
# -----------------------------------------------------------------------------

def _tag_suffix(memory: Memory) -> str:
    return f" [{', '.join(memory.tags)}]" if memory.tags else ""


def render_recall(memories: list[Memory]) -> str:
    """Full search results: heading, metadata line, content."""
    formatted = "\n\n---\n\n".join(
        f"## {m.category.upper()}: {m.title}{_tag_suffix(m)}\n"
        f"ID: {m.id} | Importance: {m.importance} | Scope: {m.scope}\n"
        f"{m.content}"
        for m in memories
    )
    return f"Found {len(memories)} memories:\n\n{formatted}"


def render_list(memories: list[Memory]) -> str:
    """One summary line per memory."""
    formatted = "\n".join(
        f"- [{m.category}] {m.title} (ID: {m.id}, importance: {m.importance})"
        for m in memories
    )
    return f"Found {len(memories)} memories:\n\n{formatted}"


def render_resource(memories: list[Memory]) -> str:
    return "\n\n---\n\n".join(
        f"## {m.title}{_tag_suffix(m)}\n{m.content}" for m in memories
    )


def _render_json(memories: list[Memory]) -> str:
    return json.dumps([m.to_dict() for m in memories], indent=2, ensure_ascii=False)


# -----------------------------------------------------------------------------
# App and global options
# -----------------------------------------------------------------------------

_json_output = False


def _version_callback(value: bool):
    if value:
        from importlib.metadata import version
        print(f"lumencore {version('lumencore')}")
        raise typer.Exit()


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


def _json_callback(value: bool):
    global _json_output
    _json_output = value


app = typer.Typer(
    name="lumencore",
    help="Persistent memory for AI agents.",
    no_args_is_help=True,
    rich_markup_mode=None,
)


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    output_json: Annotated[bool, typer.Option(
        "--json", "-j",
        help="Output as JSON",
        callback=_json_callback,
        is_eager=True,
    )] = False,
    version: Annotated[Optional[bool], typer.Option(
        "--version",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    )] = None,
):
    """Persistent memory for AI agents."""


ProjectOption = Annotated[
    Optional[Path],
    typer.Option(
        "--project", "-p",
        envvar="LUMENCORE_PROJECT",
        help="Project directory (default: project root of the current directory)",
    )
]

CategoryOption = Annotated[
    Optional[str],
    typer.Option(
        "--category", "-c",
        help="Filter by category (decision, pattern, concept, note, task)",
    )
]


# Cores opened by this process; closed at exit and before reset deletes files
_open_cores: list = []


def _close_cores() -> None:
    while _open_cores:
        _open_cores.pop().close()


def _get_core(project: Optional[Path]):
    """Open LumenCore for ``project``, exiting cleanly when unconfigured."""
    import atexit
    from .api import LumenCore

    try:
        core = LumenCore(project)
    except (LumenCoreError, ValueError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    if not _open_cores:
        atexit.register(_close_cores)
    _open_cores.append(core)
    return core


# -----------------------------------------------------------------------------
# Configuration commands
# -----------------------------------------------------------------------------

@app.command()
def setup(
    scope: Annotated[Optional[str], typer.Option(
        "--scope",
        help="Memory scope policy: project-only or project-and-global",
    )] = None,
    data_dir: Annotated[Optional[Path], typer.Option(
        "--data-dir",
        help="Where memory stores are kept",
    )] = None,
    importance: Annotated[Optional[int], typer.Option(
        "--importance",
        help=f"Default importance for new memories ({MIN_IMPORTANCE}-{MAX_IMPORTANCE})",
    )] = None,
    max_tokens: Annotated[Optional[int], typer.Option(
        "--max-tokens",
        help="Default token budget for context digests",
    )] = None,
    yes: Annotated[bool, typer.Option(
        "--yes", "-y",
        help="Don't prompt; use defaults for anything not given",
    )] = False,
):
    """Configure scope policy, data directory and defaults."""
    manager = get_config_manager()
    current = LumenConfig()
    if manager.is_configured():
        try:
            current = manager.load()
        except ValueError as e:
            typer.echo(f"Existing config is invalid ({e}); starting from defaults.", err=True)

    def ask(value, prompt: str, default):
        if value is not None:
            return value
        if yes:
            return default
        return typer.prompt(prompt, default=default, type=type(default))

    config = LumenConfig(
        memory_scope=ask(scope, f"Memory scope ({' / '.join(POLICIES)})", current.memory_scope),
        data_dir=Path(ask(
            str(data_dir) if data_dir is not None else None,
            "Data directory",
            str(current.data_dir),
        )).expanduser(),
        default_importance=ask(importance, "Default importance", current.default_importance),
        max_context_tokens=ask(max_tokens, "Max context tokens", current.max_context_tokens),
    )
    try:
        path = manager.save(config)
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    typer.echo(f"Saved configuration to {path}")
    typer.echo(f"  Memory Scope: {config.memory_scope}")
    typer.echo(f"  Data Directory: {config.data_dir}")
    typer.echo("\nIntegration with Claude Code:")
    typer.echo("  claude mcp add lumencore -- lumencore serve")


@app.command()
def status(
    project: ProjectOption = None,
):
    """Show current configuration and statistics."""
    manager = get_config_manager()
    if not manager.is_configured():
        typer.echo("Status: Not configured")
        typer.echo('\nRun "lumencore setup" to configure LumenCore.')
        return

    core = _get_core(project)
    config = core.config
    typer.echo("Status: Configured")
    typer.echo("\nConfiguration:")
    typer.echo(f"  Config File: {manager.config_path}")
    typer.echo(f"  Memory Scope: {config.memory_scope}")
    typer.echo(f"  Data Directory: {config.data_dir}")
    typer.echo(f"  Default Importance: {config.default_importance}")
    typer.echo(f"  Max Context Tokens: {config.max_context_tokens}")

    try:
        stats = core.get_stats()
    except LumenCoreError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    typer.echo("\nMemory Statistics:")
    typer.echo(f"  Current Project: {core.project_path}")
    typer.echo(f"  Project ID: {core.project_id}")
    typer.echo(f"  Project Memories: {stats['project']}")
    if config.allows_global:
        typer.echo(f"  Global Memories: {stats['global']}")


@app.command()
def reset(
    force: Annotated[bool, typer.Option(
        "--force", "-f",
        help="Confirm deletion of all data and configuration",
    )] = False,
):
    """Delete all memory stores and the configuration."""
    manager = get_config_manager()
    if not manager.is_configured():
        typer.echo("LumenCore is not configured. Nothing to reset.")
        return
    if not force:
        typer.echo("This will delete all LumenCore data and configuration.")
        typer.echo("Run with --force to confirm.")
        return

    try:
        config = manager.load()
    except ValueError:
        config = None

    # Store handles must be closed before their files are deleted
    _close_cores()
    if config is not None and config.data_dir.exists():
        shutil.rmtree(config.data_dir)
        typer.echo(f"Deleted data directory: {config.data_dir}")

    manager.reset()
    typer.echo("Deleted configuration")
    config_dir = manager.config_dir
    if config_dir.exists() and not any(config_dir.iterdir()):
        config_dir.rmdir()
    typer.echo('\nReset complete. Run "lumencore setup" to reconfigure.')


# -----------------------------------------------------------------------------
# Memory commands
# -----------------------------------------------------------------------------

@app.command()
def remember(
    category: Annotated[str, typer.Argument(help="decision, pattern, concept, note or task")],
    title: Annotated[str, typer.Argument(help="Short descriptive title")],
    content: Annotated[str, typer.Argument(help="Full content of the memory")],
    tag: Annotated[Optional[list[str]], typer.Option(
        "--tag", "-t",
        help="Tag (repeatable)",
    )] = None,
    importance: Annotated[Optional[int], typer.Option(
        "--importance", "-i",
        help=f"Priority {MIN_IMPORTANCE}-{MAX_IMPORTANCE} (default: configured importance)",
    )] = None,
    global_scope: Annotated[bool, typer.Option(
        "--global", "-g",
        help="Store in the global scope (shared by all projects)",
    )] = False,
    project: ProjectOption = None,
):
    """Store a new memory."""
    core = _get_core(project)
    try:
        memory = core.create(CreateMemoryInput(
            category=category,
            title=title,
            content=content,
            tags=tag,
            importance=importance,
            scope=SCOPE_GLOBAL if global_scope else SCOPE_PROJECT,
        ))
    except LumenCoreError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    if _json_output:
        typer.echo(json.dumps(memory.to_dict(), indent=2, ensure_ascii=False))
    else:
        typer.echo(f"Stored {memory.scope} {memory.category}: {memory.id}")


@app.command()
def recall(
    query: Annotated[Optional[str], typer.Argument(help="Search query text")] = None,
    category: CategoryOption = None,
    limit: Annotated[int, typer.Option("--limit", "-n", help="Maximum results to return")] = 10,
    project: ProjectOption = None,
):
    """Search memories by keyword (any word may match)."""
    core = _get_core(project)
    try:
        memories = core.search(query=query, category=category, limit=limit)
    except LumenCoreError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    if _json_output:
        typer.echo(_render_json(memories))
    elif not memories:
        typer.echo("No memories found matching your query.")
    else:
        typer.echo(render_recall(memories))


@app.command("list")
def list_memories(
    category: CategoryOption = None,
    limit: Annotated[int, typer.Option("--limit", "-n", help="Maximum results to return")] = 50,
    project: ProjectOption = None,
):
    """List memories, most important first."""
    core = _get_core(project)
    try:
        memories = core.list(category=category, limit=limit)
    except LumenCoreError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    if _json_output:
        typer.echo(_render_json(memories))
    elif not memories:
        typer.echo("No memories stored yet.")
    else:
        typer.echo(render_list(memories))


@app.command()
def forget(
    id: Annotated[str, typer.Argument(help="ID of the memory to delete")],
    project: ProjectOption = None,
):
    """Delete a memory by ID."""
    core = _get_core(project)
    try:
        deleted = core.delete(id)
    except LumenCoreError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    if deleted:
        typer.echo(f"Memory {id} deleted.")
    else:
        typer.echo(f"Memory {id} not found.", err=True)
        raise typer.Exit(1)


@app.command()
def context(
    category: Annotated[Optional[list[str]], typer.Option(
        "--category", "-c",
        help="Include only these categories (repeatable)",
    )] = None,
    max_tokens: Annotated[Optional[int], typer.Option(
        "--max-tokens",
        help="Approximate token budget (default: configured maximum)",
    )] = None,
    project: ProjectOption = None,
):
    """Print the context digest an agent sees at session start."""
    core = _get_core(project)
    try:
        typer.echo(core.get_context(categories=category, max_tokens=max_tokens))
    except LumenCoreError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


# -----------------------------------------------------------------------------
# Server
# -----------------------------------------------------------------------------

@app.command()
def serve(
    project: Annotated[Optional[Path], typer.Argument(
        help="Project directory (default: $LUMENCORE_PROJECT or the current project root)",
    )] = None,
):
    """Start the MCP stdio server for AI agent integration."""
    manager = get_config_manager()
    if not manager.is_configured():
        typer.echo('LumenCore is not configured. Run "lumencore setup" first.', err=True)
        raise typer.Exit(1)

    if project is not None:
        os.environ["LUMENCORE_PROJECT"] = str(project.expanduser().resolve())
    elif not os.environ.get("LUMENCORE_PROJECT"):
        os.environ["LUMENCORE_PROJECT"] = str(find_project_root())

    configure_ops_log(manager.load().data_dir)
    from .mcp import main as mcp_main
    mcp_main()


@app.command("mcp", hidden=True)
def mcp_cmd(
    project: Annotated[Optional[Path], typer.Argument()] = None,
):
    """Alias for serve."""
    serve(project)


# -----------------------------------------------------------------------------

def main():
    try:
        app()
    except SystemExit:
        raise  # Let typer handle exit codes
    except KeyboardInterrupt:
        raise SystemExit(130)  # Standard exit code for Ctrl+C
    except Exception as e:
        # Log full traceback to file, show clean message to user
        from .errors import log_exception
        log_path = log_exception(e, context="lumencore CLI")
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
