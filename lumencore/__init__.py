"""
LumenCore

Persistent memory for AI coding-assistant sessions: decisions, patterns,
concepts, notes and tasks, scoped to a project or shared globally, with
keyword search and a token-budgeted context digest.

Quick Start:
    from lumencore import LumenCore, CreateMemoryInput

    with LumenCore() as core:  # project root of the current directory
        core.create(CreateMemoryInput("pattern", "Service layer", "Views never touch SQL"))
        results = core.search("sql")
        print(core.get_context(max_tokens=1000))

CLI Usage:
    lumencore setup
    lumencore status
    lumencore serve          # MCP stdio server

Storage:
    {data_dir}/projects/{project_id}/memories.db   - one SQLite store per project
    {data_dir}/global/memories.db                  - shared global store

Environment Variables:
    LUMENCORE_CONFIG_DIR   - Override the config directory
    LUMENCORE_PROJECT      - Project path used by the MCP server
    LUMENCORE_VERBOSE      - Set to 1 for debug logging
"""

from .api import LumenCore
from .config import ConfigManager, LumenConfig
from .document_store import StoreRegistry
from .errors import (
    InvalidMemory,
    LumenCoreError,
    NotConfigured,
    ScopeDisabled,
    StorageUnavailable,
)
from .types import CATEGORIES, SCOPES, CreateMemoryInput, Memory, UpdateMemoryInput

__version__ = "0.1.0"
__all__ = [
    "LumenCore",
    "LumenConfig",
    "ConfigManager",
    "StoreRegistry",
    "Memory",
    "CreateMemoryInput",
    "UpdateMemoryInput",
    "CATEGORIES",
    "SCOPES",
    "LumenCoreError",
    "NotConfigured",
    "ScopeDisabled",
    "StorageUnavailable",
    "InvalidMemory",
]
