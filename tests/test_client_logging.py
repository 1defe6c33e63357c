"""Tests for snakey.logging_config: local log files and sync event lines."""

import logging

import pytest

from snakey.logging_config import (
    log_pull,
    log_push,
    log_sync_event,
    log_tick_error,
    setup_snakey_logging,
)


@pytest.fixture
def clean_snakey_logger():
    logger = logging.getLogger("snakey")
    saved_handlers = list(logger.handlers)
    saved_level = logger.level
    logger.handlers = []
    yield logger
    for handler in logger.handlers:
        handler.close()
    logger.handlers = saved_handlers
    logger.setLevel(saved_level)


def _read_events(home):
    (path,) = list((home / "logs").glob("sync-events-*.log"))
    return path.read_text().splitlines()


class TestSetup:
    def test_file_handler_added_once(self, clean_snakey_logger, snakey_home):
        setup_snakey_logging("INFO")
        setup_snakey_logging("INFO")

        file_handlers = [
            h for h in clean_snakey_logger.handlers if isinstance(h, logging.FileHandler)
        ]
        assert len(file_handlers) == 1
        assert clean_snakey_logger.level == logging.INFO
        assert list((snakey_home / "logs").glob("local-*.log"))

    def test_debug_adds_console(self, clean_snakey_logger):
        setup_snakey_logging("debug")

        assert clean_snakey_logger.level == logging.DEBUG
        consoles = [
            h
            for h in clean_snakey_logger.handlers
            if isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
        ]
        assert len(consoles) == 1

    def test_unknown_level_defaults_to_info(self, clean_snakey_logger):
        setup_snakey_logging("LOUD")
        assert clean_snakey_logger.level == logging.INFO

    def test_module_loggers_write_to_file(self, clean_snakey_logger, snakey_home):
        setup_snakey_logging("INFO")
        logging.getLogger("snakey.sync.orchestrator").info("Pulled 3 changes")
        for handler in clean_snakey_logger.handlers:
            handler.flush()

        (path,) = list((snakey_home / "logs").glob("local-*.log"))
        content = path.read_text()
        assert "snakey.sync.orchestrator" in content
        assert "Pulled 3 changes" in content


class TestSyncEvents:
    def test_event_line_format(self, snakey_home):
        log_sync_event("push", "count=2")

        (line,) = _read_events(snakey_home)
        timestamp, event_type, details = line.split(" | ")
        assert timestamp.endswith("+00:00")
        assert event_type == "push"
        assert details == "count=2"

    def test_helpers(self, snakey_home):
        log_push(5, failed=1, conflicts=2, batches=2)
        log_pull(7, 1717243200000)
        log_tick_error("pull", "x" * 500)

        push, pull, error = _read_events(snakey_home)
        assert push.endswith("push | count=5, failed=1, conflicts=2, batches=2")
        assert pull.endswith("pull | count=7, cursor=1717243200000")
        assert "stage=pull" in error
        assert len(error.split("error=")[1]) == 200
