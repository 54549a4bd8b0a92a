"""
Logging configuration for lumencore.

The library only emits DEBUG records; nothing is shown unless debug mode is
enabled. The MCP server also keeps a persistent operations log.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path


def enable_debug_mode():
    """Enable debug-level logging to stderr."""
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Add stderr handler if not already present
    if not any(isinstance(h, logging.StreamHandler) and getattr(h, "stream", None) is sys.stderr
               for h in root_logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%H:%M:%S"
        ))
        root_logger.addHandler(handler)

    logging.getLogger("lumencore").setLevel(logging.DEBUG)


def configure_ops_log(data_dir):
    """Configure a persistent operations log in the data directory.

    Writes to {data_dir}/lumencore-ops.log using a rotating file handler
    (1MB max, 3 backups). Returns the handler so it can be removed on shutdown.
    """
    log_path = Path(data_dir) / "lumencore-ops.log"
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        str(log_path),
        maxBytes=1_000_000,
        backupCount=3,
    )
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))

    lumen_logger = logging.getLogger("lumencore")
    lumen_logger.addHandler(handler)
    # Ensure INFO gets through even when debug mode is off
    if lumen_logger.level == logging.NOTSET or lumen_logger.level > logging.INFO:
        lumen_logger.setLevel(logging.INFO)

    return handler
