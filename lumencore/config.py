"""
Configuration management for lumencore.

The configuration is stored as a TOML file in the config directory. It
specifies where memory stores live and the scope policy. Loaded lazily once
per process through ConfigManager, and cached until an explicit reset.
"""

import threading
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import tomli_w

from .errors import NotConfigured
from .paths import get_config_dir, get_default_data_dir
from .types import (
    MAX_IMPORTANCE,
    MIN_IMPORTANCE,
    POLICIES,
    POLICY_PROJECT_AND_GLOBAL,
    POLICY_PROJECT_ONLY,
)


CONFIG_FILENAME = "lumencore.toml"
CONFIG_VERSION = 1

DEFAULT_IMPORTANCE = 3
DEFAULT_MAX_CONTEXT_TOKENS = 4000


@dataclass(frozen=True)
class LumenConfig:
    """Resolved configuration, read-only to the core."""
    memory_scope: str = POLICY_PROJECT_ONLY
    data_dir: Path = field(default_factory=get_default_data_dir)
    default_importance: int = DEFAULT_IMPORTANCE
    max_context_tokens: int = DEFAULT_MAX_CONTEXT_TOKENS

    @property
    def allows_global(self) -> bool:
        return self.memory_scope == POLICY_PROJECT_AND_GLOBAL

    def validate(self) -> None:
        """
        Raises:
            ValueError: If a setting is outside its domain
        """
        if self.memory_scope not in POLICIES:
            raise ValueError(
                f"Invalid memory scope {self.memory_scope!r} (expected one of: {', '.join(POLICIES)})"
            )
        if not MIN_IMPORTANCE <= self.default_importance <= MAX_IMPORTANCE:
            raise ValueError(
                f"default_importance must be between {MIN_IMPORTANCE} and {MAX_IMPORTANCE}"
            )
        if self.max_context_tokens < 1:
            raise ValueError("max_context_tokens must be positive")


def load_config(config_dir: Path) -> tuple[LumenConfig, bool]:
    """
    Load configuration from a config directory.

    Returns:
        (config, migrated) where migrated is True when the file was written by
        an older version and has been merged with current defaults

    Raises:
        FileNotFoundError: If config doesn't exist
        ValueError: If config is invalid
    """
    config_path = config_dir / CONFIG_FILENAME

    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    version = data.get("lumencore", {}).get("version", 1)
    if version > CONFIG_VERSION:
        raise ValueError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    defaults = LumenConfig()
    memory = data.get("memory", {})
    config = LumenConfig(
        memory_scope=memory.get("scope", defaults.memory_scope),
        data_dir=Path(memory.get("data_dir", str(defaults.data_dir))).expanduser(),
        default_importance=int(memory.get("default_importance", defaults.default_importance)),
        max_context_tokens=int(memory.get("max_context_tokens", defaults.max_context_tokens)),
    )
    config.validate()
    return config, version < CONFIG_VERSION


def save_config(config: LumenConfig, config_dir: Path) -> Path:
    """
    Save configuration to the config directory.

    Creates the directory if it doesn't exist. Returns the file path.
    """
    config.validate()
    config_dir.mkdir(parents=True, exist_ok=True)

    data = {
        "lumencore": {
            "version": CONFIG_VERSION,
        },
        "memory": {
            "scope": config.memory_scope,
            "data_dir": str(config.data_dir),
            "default_importance": config.default_importance,
            "max_context_tokens": config.max_context_tokens,
        },
    }

    config_path = config_dir / CONFIG_FILENAME
    with open(config_path, "wb") as f:
        tomli_w.dump(data, f)
    return config_path


class ConfigManager:
    """
    Lazy, cached access to the saved configuration.

    load() reads the TOML file once and returns the same LumenConfig
    until reset() or save() replaces it.
    """

    def __init__(self, config_dir: Optional[Path] = None):
        self._config_dir = Path(config_dir) if config_dir is not None else get_config_dir()
        self._config: Optional[LumenConfig] = None

    @property
    def config_dir(self) -> Path:
        return self._config_dir

    @property
    def config_path(self) -> Path:
        return self._config_dir / CONFIG_FILENAME

    def is_configured(self) -> bool:
        return self.config_path.exists()

    def load(self) -> LumenConfig:
        """
        Raises:
            NotConfigured: If no configuration has been saved yet
            ValueError: If the saved configuration is invalid
        """
        if self._config is not None:
            return self._config
        try:
            config, migrated = load_config(self._config_dir)
        except FileNotFoundError:
            raise NotConfigured(
                'LumenCore is not configured. Run "lumencore setup" first.'
            ) from None
        if migrated:
            save_config(config, self._config_dir)
        self._config = config
        return config

    def save(self, config: LumenConfig) -> Path:
        path = save_config(config, self._config_dir)
        self._config = config
        return path

    def reset(self) -> None:
        """Delete the config file and drop the cached copy."""
        if self.config_path.exists():
            self.config_path.unlink()
        self._config = None


_manager: Optional[ConfigManager] = None
_manager_lock = threading.Lock()


def get_config_manager() -> ConfigManager:
    """Process-wide ConfigManager for the default config directory."""
    global _manager
    with _manager_lock:
        if _manager is None:
            _manager = ConfigManager()
        return _manager


def reset_config_manager() -> None:
    """Forget the process-wide ConfigManager (tests, or after the config dir changes)."""
    global _manager
    with _manager_lock:
        _manager = None
