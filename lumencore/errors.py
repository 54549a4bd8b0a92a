"""
Error types and error logging for lumencore.

Typed failures propagate to the caller unmodified. The CLI logs full stack
traces for debugging while showing clean messages to users.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path


class LumenCoreError(Exception):
    """Base class for all lumencore failures."""


class NotConfigured(LumenCoreError):
    """No configuration has been saved yet."""


class ScopeDisabled(LumenCoreError):
    """A global-scope write was attempted under the project-only policy."""


class StorageUnavailable(LumenCoreError):
    """A store directory or database file could not be created or opened."""


class InvalidMemory(LumenCoreError, ValueError):
    """A memory field is outside its domain (category, scope, importance)."""


class QueryRejected(LumenCoreError):
    """The full-text engine refused a query. Handled inside the search service."""


def _error_log_path() -> Path:
    """Resolve error log path, respecting LUMENCORE_CONFIG_DIR."""
    from .paths import get_config_dir
    return get_config_dir() / "lumencore-errors.log"


def log_exception(exc: Exception, context: str = "") -> Path:
    """
    Log exception with full traceback to file.

    Args:
        exc: The exception that occurred
        context: Optional context string (e.g., command name)

    Returns:
        Path to the error log file
    """
    log_path = _error_log_path()
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a") as f:
            f.write(f"\n{'='*60}\n")
            f.write(f"[{timestamp}]")
            if context:
                f.write(f" {context}")
            f.write(f" {type(exc).__name__}: {exc}\n")
            f.writelines(traceback.format_exception(exc))
    except OSError:
        pass  # Unwritable error log must not mask the original error
    return log_path
