# tests/utils/test_run_log.py
from __future__ import annotations

import logging

from swarmsync.logging.log import init_logging


def test_run_log_captures_debug_trace(tmp_path):
    logger, run_id, log_path = init_logging(base_dir=tmp_path, name="swarmsync-logtest")
    try:
        logger.debug("docker node ls -q")
        for handler in logger.handlers:
            handler.flush()

        assert log_path.parent == tmp_path
        assert run_id in log_path.name
        text = log_path.read_text()
        assert f"run_id={run_id}" in text
        assert "docker node ls -q" in text

        console = [h for h in logger.handlers if not isinstance(h, logging.FileHandler)]
        assert console[0].level == logging.INFO
    finally:
        for handler in list(logger.handlers):
            handler.close()
        logger.handlers.clear()


def test_reinit_replaces_handlers(tmp_path):
    name = "swarmsync-logtest-reinit"
    init_logging(base_dir=tmp_path, name=name)
    logger, _, _ = init_logging(base_dir=tmp_path, name=name, verbose=True)
    try:
        assert len(logger.handlers) == 2
        console = [h for h in logger.handlers if not isinstance(h, logging.FileHandler)]
        assert console[0].level == logging.DEBUG
    finally:
        for handler in list(logger.handlers):
            handler.close()
        logger.handlers.clear()
