"""
Shared pytest fixtures for lumencore tests.

Every test gets its own config directory and data directory under tmp_path,
so nothing touches the real ~/.config or ~/.local/share.
"""

import time
from pathlib import Path

import pytest

from lumencore.api import LumenCore
from lumencore.config import LumenConfig, reset_config_manager
from lumencore.document_store import StoreRegistry
from lumencore.types import (
    POLICY_PROJECT_AND_GLOBAL,
    POLICY_PROJECT_ONLY,
    CreateMemoryInput,
)


@pytest.fixture(autouse=True)
def isolated_config_dir(tmp_path, monkeypatch):
    """Point LUMENCORE_CONFIG_DIR at a temp dir and drop the cached manager."""
    config_dir = tmp_path / "config"
    monkeypatch.setenv("LUMENCORE_CONFIG_DIR", str(config_dir))
    monkeypatch.delenv("LUMENCORE_PROJECT", raising=False)
    reset_config_manager()
    yield config_dir
    reset_config_manager()


@pytest.fixture
def data_dir(tmp_path) -> Path:
    return tmp_path / "data"


@pytest.fixture
def project_dir(tmp_path) -> Path:
    """A directory that looks like a project root."""
    project = tmp_path / "project"
    (project / ".git").mkdir(parents=True)
    return project


def make_config(data_dir: Path, policy: str = POLICY_PROJECT_ONLY, **kwargs) -> LumenConfig:
    return LumenConfig(memory_scope=policy, data_dir=data_dir, **kwargs)


@pytest.fixture
def registry():
    reg = StoreRegistry()
    yield reg
    reg.close_all()


@pytest.fixture
def core(data_dir, project_dir, registry):
    """LumenCore under the project-only policy."""
    return LumenCore(project_dir, config=make_config(data_dir), registry=registry)


@pytest.fixture
def shared_core(data_dir, project_dir, registry):
    """LumenCore under the project-and-global policy."""
    return LumenCore(
        project_dir,
        config=make_config(data_dir, POLICY_PROJECT_AND_GLOBAL),
        registry=registry,
    )


def remember(core, title="Title", content="Content", category="note", **kwargs):
    """Create a memory, pausing so consecutive records get distinct timestamps."""
    memory = core.create(CreateMemoryInput(category=category, title=title, content=content, **kwargs))
    time.sleep(0.002)
    return memory
