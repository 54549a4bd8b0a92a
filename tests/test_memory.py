"""Tests for memory CRUD, listing and scope routing."""

import sqlite3
import typing
from unittest.mock import patch

import pytest

from conftest import make_config, remember
from lumencore.api import LumenCore
from lumencore.document_store import MEMORY_COLUMNS
from lumencore.errors import InvalidMemory, ScopeDisabled, StorageUnavailable
from lumencore.memory import MemoryService
from lumencore.paths import get_project_id, global_db_path, project_db_path
from lumencore.types import GLOBAL_PROJECT_ID, Memory, UpdateMemoryInput


class TestCreate:

    def test_create_then_get(self, core):
        memory = remember(
            core, title="Use SQLite", content="Embedded store",
            category="decision", tags=["db", "storage"], importance=5,
        )
        assert core.get(memory.id) == memory
        assert memory.scope == "project"
        assert memory.project_id == core.project_id
        assert memory.tags == ["db", "storage"]
        assert memory.created_at == memory.updated_at

    def test_defaults(self, core):
        memory = remember(core)
        assert memory.importance == 3
        assert memory.tags == []

    def test_default_importance_from_config(self, data_dir, project_dir, registry):
        core = LumenCore(
            project_dir, config=make_config(data_dir, default_importance=4), registry=registry
        )
        assert remember(core).importance == 4

    def test_ids_are_unique(self, core):
        assert remember(core).id != remember(core).id

    def test_duplicate_tags_kept_in_order(self, core):
        memory = remember(core, tags=["b", "a", "b"])
        assert core.get(memory.id).tags == ["b", "a", "b"]

    @pytest.mark.parametrize("kwargs", [
        {"category": "musing"},
        {"importance": 0},
        {"importance": 6},
        {"scope": "team"},
    ])
    def test_invalid_input_rejected(self, core, kwargs):
        with pytest.raises(InvalidMemory):
            remember(core, **kwargs)

    def test_global_under_project_only_writes_nothing(self, core, data_dir):
        with pytest.raises(ScopeDisabled):
            remember(core, scope="global")
        assert len(core.registry) == 0
        assert not global_db_path(data_dir).exists()

    def test_global_record(self, shared_core, data_dir):
        memory = remember(shared_core, scope="global")
        assert memory.scope == "global"
        assert memory.project_id == GLOBAL_PROJECT_ID
        assert global_db_path(data_dir).exists()
        assert shared_core.get(memory.id, "global") == memory

    def test_project_record_lands_in_project_store(self, core, data_dir, project_dir):
        remember(core)
        assert project_db_path(data_dir, project_dir).exists()


class TestGet:

    def test_unknown_id(self, core):
        assert core.get("no-such-id") is None

    def test_falls_back_to_other_scope(self, shared_core):
        project = remember(shared_core)
        global_ = remember(shared_core, scope="global")
        assert shared_core.get(global_.id, "project") == global_
        assert shared_core.get(project.id, "global") == project

    def test_no_fallback_under_project_only(self, data_dir, project_dir, registry, shared_core):
        global_ = remember(shared_core, scope="global")
        core = LumenCore(project_dir, config=make_config(data_dir), registry=registry)
        assert core.get(global_.id) is None


class TestUpdate:

    def test_partial_update(self, core):
        memory = remember(core, title="Old", content="Body", tags=["x"], importance=2)
        updated = core.update(UpdateMemoryInput(id=memory.id, title="New"))
        assert updated.title == "New"
        assert updated.content == "Body"
        assert updated.tags == ["x"]
        assert updated.importance == 2
        assert updated.created_at == memory.created_at
        assert updated.updated_at > memory.updated_at
        assert core.get(memory.id) == updated

    def test_clear_tags(self, core):
        memory = remember(core, tags=["x", "y"])
        assert core.update(UpdateMemoryInput(id=memory.id, tags=[])).tags == []

    def test_no_fields_is_a_no_op(self, core):
        memory = remember(core)
        assert core.update(UpdateMemoryInput(id=memory.id)) == memory

    def test_unknown_id(self, core):
        assert core.update(UpdateMemoryInput(id="missing", title="x")) is None

    def test_invalid_importance(self, core):
        memory = remember(core)
        with pytest.raises(InvalidMemory):
            core.update(UpdateMemoryInput(id=memory.id, importance=7))
        assert core.get(memory.id) == memory

    def test_updated_at_strictly_advances_on_a_frozen_clock(self, core):
        memory = remember(core)
        with patch("lumencore.types.utc_now", return_value=memory.updated_at):
            first = core.update(UpdateMemoryInput(id=memory.id, content="one"))
            second = core.update(UpdateMemoryInput(id=memory.id, content="two"))
        assert memory.updated_at < first.updated_at < second.updated_at

    def test_unknown_id_does_not_open_global_store(self, core, data_dir):
        assert core.update(UpdateMemoryInput(id="missing", title="x")) is None
        assert not global_db_path(data_dir).exists()

    def test_update_global_record(self, shared_core):
        memory = remember(shared_core, scope="global")
        updated = shared_core.update(UpdateMemoryInput(id=memory.id, importance=5))
        assert updated.scope == "global"
        assert shared_core.get(memory.id, "global").importance == 5


class TestDelete:

    def test_delete_once(self, core):
        memory = remember(core)
        assert core.delete(memory.id) is True
        assert core.get(memory.id) is None
        assert core.delete(memory.id) is False

    def test_delete_global(self, shared_core):
        memory = remember(shared_core, scope="global")
        assert shared_core.delete(memory.id) is True
        assert shared_core.get(memory.id, "global") is None


class TestList:

    def test_ordered_by_importance(self, core):
        for importance in (3, 5, 4):
            remember(core, title=f"i{importance}", importance=importance)
        assert [m.importance for m in core.list()] == [5, 4, 3]

    def test_recency_breaks_ties(self, core):
        older = remember(core, title="older")
        newer = remember(core, title="newer")
        assert [m.id for m in core.list()] == [newer.id, older.id]

    def test_update_bumps_recency(self, core):
        older = remember(core, title="older")
        remember(core, title="newer")
        core.update(UpdateMemoryInput(id=older.id, content="touched"))
        assert core.list()[0].id == older.id

    def test_category_filter(self, core):
        remember(core, category="decision")
        remember(core, category="pattern")
        assert [m.category for m in core.list(category="pattern")] == ["pattern"]

    def test_limit(self, core):
        for i in range(5):
            remember(core, title=str(i))
        assert len(core.list(limit=2)) == 2

    def test_merges_scopes(self, shared_core):
        project = remember(shared_core, title="project", importance=3)
        global_ = remember(shared_core, title="global", importance=3, scope="global")
        important = remember(shared_core, title="important", importance=5)
        assert [m.id for m in shared_core.list()] == [important.id, global_.id, project.id]

    def test_scope_filter(self, shared_core):
        remember(shared_core)
        global_ = remember(shared_core, scope="global")
        assert [m.id for m in shared_core.list(scope="global")] == [global_.id]

    def test_project_only_hides_global(self, data_dir, project_dir, registry, shared_core):
        remember(shared_core, scope="global")
        core = LumenCore(project_dir, config=make_config(data_dir), registry=registry)
        assert core.list() == []

    def test_other_projects_rows_are_filtered(self, core):
        mine = remember(core)
        # A stray row for a different project inside this project's store
        store = core.registry.acquire(project_db_path(core.config.data_dir, core.project_path))
        store.execute(
            f"INSERT INTO memories ({MEMORY_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            ("stray", "someone-else", "project", "note", "Stray", "Content", "[]", 5,
             mine.created_at, mine.updated_at),
        )
        assert [m.id for m in core.list()] == [mine.id]
        assert core.get_stats()["project"] == 1

    def test_projects_are_isolated(self, data_dir, tmp_path, registry, core):
        remember(core)
        other = LumenCore(tmp_path / "other", config=make_config(data_dir), registry=registry)
        assert other.list() == []
        assert other.project_id == get_project_id(tmp_path / "other")


class TestStats:

    def test_project_only(self, core):
        remember(core)
        remember(core)
        assert core.get_stats() == {"project": 2, "global": 0}

    def test_project_and_global(self, shared_core):
        remember(shared_core)
        remember(shared_core, scope="global")
        remember(shared_core, scope="global")
        assert shared_core.get_stats() == {"project": 1, "global": 2}

    def test_global_counts_hidden_under_project_only(self, data_dir, project_dir, registry, shared_core):
        remember(shared_core, scope="global")
        core = LumenCore(project_dir, config=make_config(data_dir), registry=registry)
        assert core.get_stats()["global"] == 0



def test_locked_store_surfaces_as_storage_unavailable(core, data_dir, project_dir):
    memory = remember(core)
    store = core.registry.acquire(project_db_path(data_dir, project_dir))
    store.fetch_one("PRAGMA busy_timeout=50")
    other = sqlite3.connect(str(store.path), isolation_level=None)
    try:
        other.execute("BEGIN EXCLUSIVE")
        with pytest.raises(StorageUnavailable):
            core.delete(memory.id)
    finally:
        other.execute("ROLLBACK")
        other.close()
    assert core.delete(memory.id) is True


def test_operation_signatures_resolve():
    hints = typing.get_type_hints(LumenCore.search)
    assert hints["return"] == list[Memory]
    assert typing.get_type_hints(LumenCore.list)["return"] == list[Memory]
    assert typing.get_type_hints(MemoryService.get_stats)["return"] is dict
