"""
Record-level operations on memories, with scope routing.

Project-scope records go to the project's own store, global-scope records to
the single global store. Lookups that don't know a record's scope try the
project store first and fall back to the global store when policy allows.
"""

from __future__ import annotations

import json
import logging
import uuid
from pathlib import Path
from typing import Optional

from .config import LumenConfig
from .document_store import MEMORY_COLUMNS, MemoryDatabase, StoreRegistry, row_to_memory
from .errors import ScopeDisabled
from .paths import get_project_id, global_db_path, project_db_path
from .scopes import ORDER_BY, fan_out, permitted_scopes, where_clause
from .types import (
    GLOBAL_PROJECT_ID,
    SCOPE_GLOBAL,
    SCOPE_PROJECT,
    CreateMemoryInput,
    Memory,
    UpdateMemoryInput,
    next_timestamp,
    utc_now,
    validate_category,
    validate_scope,
)

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 50


class ScopedStores:
    """Resolves a scope name to the store handle for one project."""

    def __init__(self, config: LumenConfig, registry: StoreRegistry, project_path: str | Path):
        self.config = config
        self.registry = registry
        self.project_path = Path(project_path)
        self.project_id = get_project_id(project_path)

    def store_for(self, scope: str) -> MemoryDatabase:
        if scope == SCOPE_GLOBAL:
            return self.registry.acquire(global_db_path(self.config.data_dir))
        return self.registry.acquire(project_db_path(self.config.data_dir, self.project_path))


class MemoryService:
    """CRUD on memory records for one project."""

    def __init__(self, config: LumenConfig, registry: StoreRegistry, project_path: str | Path):
        self._config = config
        self._stores = ScopedStores(config, registry, project_path)

    @property
    def project_id(self) -> str:
        return self._stores.project_id

    def create(self, input: CreateMemoryInput) -> Memory:
        """
        Store a new memory in the store selected by its scope.

        Raises:
            ScopeDisabled: Global scope requested under the project-only policy
            InvalidMemory: Category, scope or importance outside its domain
        """
        input.validate()
        if input.scope == SCOPE_GLOBAL and not self._config.allows_global:
            raise ScopeDisabled(
                'Global memories are disabled. Run "lumencore setup" to enable them.'
            )

        now = utc_now()
        memory = Memory(
            id=str(uuid.uuid4()),
            project_id=GLOBAL_PROJECT_ID if input.scope == SCOPE_GLOBAL else self.project_id,
            scope=input.scope,
            category=input.category,
            title=input.title,
            content=input.content,
            tags=list(input.tags) if input.tags is not None else [],
            importance=(
                input.importance if input.importance is not None
                else self._config.default_importance
            ),
            created_at=now,
            updated_at=now,
        )

        self._stores.store_for(memory.scope).execute(f"""
            INSERT INTO memories ({MEMORY_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            memory.id,
            memory.project_id,
            memory.scope,
            memory.category,
            memory.title,
            memory.content,
            json.dumps(memory.tags, ensure_ascii=False),
            memory.importance,
            memory.created_at,
            memory.updated_at,
        ))
        logger.debug("Created %s memory %s (%s)", memory.scope, memory.id, memory.category)
        return memory

    def _get_in(self, scope: str, id: str) -> Optional[Memory]:
        row = self._stores.store_for(scope).fetch_one(
            f"SELECT {MEMORY_COLUMNS} FROM memories WHERE id = ?", (id,)
        )
        return row_to_memory(row) if row is not None else None

    def get(self, id: str, scope: str = SCOPE_PROJECT) -> Optional[Memory]:
        """
        Get a memory by ID.

        Looks in ``scope`` first; under the project-and-global policy the
        other scope is checked before giving up.

        Returns:
            Memory if found, None otherwise
        """
        validate_scope(scope)
        memory = self._get_in(scope, id)
        if memory is None and self._config.allows_global:
            other = SCOPE_GLOBAL if scope == SCOPE_PROJECT else SCOPE_PROJECT
            memory = self._get_in(other, id)
        return memory

    def update(self, input: UpdateMemoryInput) -> Optional[Memory]:
        """
        Change the mutable fields present in ``input``.

        id, scope, category, project_id and created_at never change. An
        update with no fields returns the current record untouched.

        Returns:
            The updated Memory, or None if no such memory exists
        """
        input.validate()
        memory = self.get(input.id, SCOPE_PROJECT)
        if memory is None:
            return None

        changes = input.changes()
        if not changes:
            return memory

        if "tags" in changes:
            changes["tags"] = json.dumps(changes["tags"], ensure_ascii=False)
        changes["updated_at"] = next_timestamp(memory.updated_at)

        assignments = ", ".join(f"{column} = ?" for column in changes)
        self._stores.store_for(memory.scope).execute(
            f"UPDATE memories SET {assignments} WHERE id = ?",
            (*changes.values(), input.id),
        )
        return self._get_in(memory.scope, input.id)

    def delete(self, id: str) -> bool:
        """
        Delete a memory from whichever store holds it.

        Returns:
            True if a record was removed, False if none existed
        """
        if self._stores.store_for(SCOPE_PROJECT).execute(
            "DELETE FROM memories WHERE id = ?", (id,)
        ) > 0:
            return True
        if self._config.allows_global:
            return self._stores.store_for(SCOPE_GLOBAL).execute(
                "DELETE FROM memories WHERE id = ?", (id,)
            ) > 0
        return False

    def list(
        self,
        category: Optional[str] = None,
        scope: Optional[str] = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> list[Memory]:
        """
        List memories, most important then most recent first.

        Without ``scope``, every scope the policy permits is included.
        """
        if category is not None:
            validate_category(category)
        categories = [category] if category else None

        def query(s: str) -> list[Memory]:
            clause, params = where_clause(s, self.project_id, categories)
            rows = self._stores.store_for(s).fetch_all(f"""
                SELECT {MEMORY_COLUMNS} FROM memories
                WHERE 1=1{clause}
                ORDER BY {ORDER_BY}
                LIMIT ?
            """, (*params, limit))
            return [row_to_memory(row) for row in rows]

        return fan_out(permitted_scopes(self._config, scope), query, limit)

    def get_stats(self) -> dict:
        """
        Count memories.

        Returns:
            {"project": records for this project, "global": all global
            records (0 unless the policy allows global scope)}
        """
        project = self._stores.store_for(SCOPE_PROJECT).fetch_one(
            "SELECT COUNT(*) FROM memories WHERE project_id = ?", (self.project_id,)
        )[0]
        global_count = 0
        if self._config.allows_global:
            global_count = self._stores.store_for(SCOPE_GLOBAL).fetch_one(
                "SELECT COUNT(*) FROM memories"
            )[0]
        return {"project": project, "global": global_count}
