"""Tests for debug logging and the server operations log."""

import logging
import sys

from lumencore.logging_config import configure_ops_log, enable_debug_mode


def test_ops_log_records_info(tmp_path):
    handler = configure_ops_log(tmp_path / "data")
    logger = logging.getLogger("lumencore.mcp")
    try:
        logger.info("remember project note abc")
        handler.flush()
        text = (tmp_path / "data" / "lumencore-ops.log").read_text()
        assert "INFO remember project note abc" in text
    finally:
        logging.getLogger("lumencore").removeHandler(handler)
        logging.getLogger("lumencore").setLevel(logging.NOTSET)
        handler.close()


def test_debug_mode_adds_one_stderr_handler():
    root = logging.getLogger()
    before = list(root.handlers)
    level = root.level
    try:
        enable_debug_mode()
        enable_debug_mode()
        added = [h for h in root.handlers if h not in before]
        assert len(added) <= 1
        assert all(getattr(h, "stream", None) is sys.stderr for h in added)
        assert logging.getLogger("lumencore").level == logging.DEBUG
    finally:
        for h in root.handlers[:]:
            if h not in before:
                root.removeHandler(h)
        root.setLevel(level)
        logging.getLogger("lumencore").setLevel(logging.NOTSET)
