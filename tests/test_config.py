"""Tests for TOML configuration and the cached ConfigManager."""

import tomllib

import pytest
import tomli_w

from lumencore.config import (
    CONFIG_FILENAME,
    ConfigManager,
    LumenConfig,
    get_config_manager,
    load_config,
    save_config,
)
from lumencore.errors import NotConfigured
from lumencore.types import POLICY_PROJECT_AND_GLOBAL, POLICY_PROJECT_ONLY


def test_defaults():
    config = LumenConfig()
    assert config.memory_scope == POLICY_PROJECT_ONLY
    assert config.default_importance == 3
    assert config.max_context_tokens == 4000
    assert not config.allows_global


def test_load_without_config_raises_not_configured(tmp_path):
    manager = ConfigManager(tmp_path / "cfg")
    assert not manager.is_configured()
    with pytest.raises(NotConfigured):
        manager.load()


def test_save_and_load(tmp_path):
    config = LumenConfig(
        memory_scope=POLICY_PROJECT_AND_GLOBAL,
        data_dir=tmp_path / "data",
        default_importance=4,
        max_context_tokens=1000,
    )
    path = save_config(config, tmp_path / "cfg")
    assert path.name == CONFIG_FILENAME

    loaded, migrated = load_config(tmp_path / "cfg")
    assert loaded == config
    assert not migrated


def test_saved_file_layout(tmp_path):
    save_config(LumenConfig(data_dir=tmp_path / "data"), tmp_path)
    with open(tmp_path / CONFIG_FILENAME, "rb") as f:
        data = tomllib.load(f)
    assert data["lumencore"]["version"] == 1
    assert data["memory"]["scope"] == "project-only"
    assert data["memory"]["data_dir"] == str(tmp_path / "data")


def test_load_is_cached_until_reset(tmp_path):
    manager = ConfigManager(tmp_path)
    manager.save(LumenConfig(data_dir=tmp_path / "data"))

    first = manager.load()
    # Changes on disk are not seen while the cache holds
    save_config(LumenConfig(data_dir=tmp_path / "other"), tmp_path)
    assert manager.load() is first

    manager.reset()
    assert not manager.is_configured()
    with pytest.raises(NotConfigured):
        manager.load()


def test_missing_keys_fall_back_to_defaults(tmp_path):
    with open(tmp_path / CONFIG_FILENAME, "wb") as f:
        tomli_w.dump({"lumencore": {"version": 1}, "memory": {"scope": "project-and-global"}}, f)
    config, _ = load_config(tmp_path)
    assert config.allows_global
    assert config.default_importance == 3
    assert config.max_context_tokens == 4000


def test_older_version_is_migrated_and_resaved(tmp_path):
    with open(tmp_path / CONFIG_FILENAME, "wb") as f:
        tomli_w.dump({"lumencore": {"version": 0}, "memory": {"default_importance": 5}}, f)
    manager = ConfigManager(tmp_path)
    config = manager.load()
    assert config.default_importance == 5

    with open(tmp_path / CONFIG_FILENAME, "rb") as f:
        assert tomllib.load(f)["lumencore"]["version"] == 1


def test_newer_version_rejected(tmp_path):
    with open(tmp_path / CONFIG_FILENAME, "wb") as f:
        tomli_w.dump({"lumencore": {"version": 99}}, f)
    with pytest.raises(ValueError, match="newer"):
        load_config(tmp_path)


def test_invalid_scope_rejected(tmp_path):
    with pytest.raises(ValueError, match="Invalid memory scope"):
        save_config(LumenConfig(memory_scope="everywhere", data_dir=tmp_path), tmp_path)


def test_process_wide_manager_uses_env_dir(isolated_config_dir):
    manager = get_config_manager()
    assert manager is get_config_manager()
    assert manager.config_dir == isolated_config_dir
