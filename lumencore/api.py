"""
Core API for project memory.

LumenCore is the composition root: it resolves configuration, owns the store
registry, and wires the memory and search services for one project.

Example:
    with LumenCore("/path/to/project") as core:
        core.create(CreateMemoryInput("decision", "Use SQLite", "Embedded, zero-config"))
        print(core.get_context())
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Sequence

from .config import ConfigManager, LumenConfig, get_config_manager
from .document_store import StoreRegistry
from .memory import DEFAULT_LIST_LIMIT, MemoryService
from .paths import find_project_root
from .search import DEFAULT_SEARCH_LIMIT, SearchService
from .types import SCOPE_PROJECT, CreateMemoryInput, Memory, UpdateMemoryInput

logger = logging.getLogger(__name__)


class LumenCore:
    """
    Persistent memory for one project, plus the shared global store.
    """

    def __init__(
        self,
        project_path: Optional[str | Path] = None,
        *,
        config: Optional[LumenConfig] = None,
        config_manager: Optional[ConfigManager] = None,
        registry: Optional[StoreRegistry] = None,
    ) -> None:
        """
        Args:
            project_path: Project directory. Defaults to the project root
                containing the current directory.
            config: Pre-resolved configuration (skips config file loading).
            config_manager: Source of configuration when ``config`` is not
                given. Defaults to the process-wide manager.
            registry: Store handle cache. A private one is created if omitted.

        Raises:
            NotConfigured: If no config is injected and none has been saved
        """
        if config is None:
            config = (config_manager or get_config_manager()).load()
        self._config = config
        self._project_path = (
            Path(project_path).expanduser().resolve() if project_path is not None
            else find_project_root()
        )
        self._registry = registry if registry is not None else StoreRegistry()
        self._memories = MemoryService(config, self._registry, self._project_path)
        self._search = SearchService(config, self._registry, self._project_path)
        logger.debug("LumenCore for %s (project %s)", self._project_path, self.project_id)

    @property
    def config(self) -> LumenConfig:
        return self._config

    @property
    def project_path(self) -> Path:
        return self._project_path

    @property
    def project_id(self) -> str:
        return self._memories.project_id

    @property
    def registry(self) -> StoreRegistry:
        return self._registry

    # -- Write operations --

    def create(self, input: CreateMemoryInput) -> Memory:
        return self._memories.create(input)

    def update(self, input: UpdateMemoryInput) -> Optional[Memory]:
        return self._memories.update(input)

    def delete(self, id: str) -> bool:
        return self._memories.delete(id)

    # -- Query operations --

    def get(self, id: str, scope: str = SCOPE_PROJECT) -> Optional[Memory]:
        return self._memories.get(id, scope)

    def list(
        self,
        category: Optional[str] = None,
        scope: Optional[str] = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> list[Memory]:
        return self._memories.list(category=category, scope=scope, limit=limit)

    def search(
        self,
        query: Optional[str] = None,
        category: Optional[str] = None,
        scope: Optional[str] = None,
        limit: int = DEFAULT_SEARCH_LIMIT,
    ) -> list[Memory]:
        return self._search.search(query=query, category=category, scope=scope, limit=limit)

    def get_context(
        self,
        categories: Optional[Sequence[str]] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        return self._search.get_context(categories=categories, max_tokens=max_tokens)

    def get_stats(self) -> dict:
        return self._memories.get_stats()

    # -- Lifecycle --

    def close(self) -> None:
        """Close every open store handle."""
        self._registry.close_all()

    def __enter__(self) -> "LumenCore":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
