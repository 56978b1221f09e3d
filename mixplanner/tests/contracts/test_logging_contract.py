"""
Contract tests for logging setup.

Covers:
- LG1: Optional log file handler
- LG2: Log file failures never interrupt a mix
"""

import logging
import logging.handlers

import pytest

from mixplanner.config import MixConfig
from mixplanner.logging_setup import _attach_file_handler, configure_logging


@pytest.fixture
def detach_handlers():
    """Remove any handler a test attached to the root logger."""
    attached = []
    yield attached
    root = logging.getLogger()
    for handler in attached:
        if handler is not None:
            root.removeHandler(handler)
            handler.close()


class TestLG1_FileHandler:
    """Tests for LG1: Optional log file handler."""

    def test_lg1_records_written_to_file(self, tmp_path, detach_handlers):
        path = str(tmp_path / "mixplanner.log")
        handler = _attach_file_handler(path)
        detach_handlers.append(handler)

        assert isinstance(handler, logging.handlers.WatchedFileHandler)
        logger = logging.getLogger("mixplanner.test")
        logger.setLevel(logging.INFO)
        logger.info("[MIX] Done: /tmp/out.flac")
        handler.flush()

        content = (tmp_path / "mixplanner.log").read_text()
        assert "[INFO] mixplanner.test: [MIX] Done: /tmp/out.flac" in content

    def test_lg1_repeated_setup_reuses_handler(self, tmp_path, detach_handlers):
        path = str(tmp_path / "mixplanner.log")
        first = _attach_file_handler(path)
        detach_handlers.append(first)
        assert _attach_file_handler(path) is first

    def test_lg1_configure_logging_attaches_configured_file(self, tmp_path, detach_handlers):
        path = str(tmp_path / "configured.log")
        configure_logging(MixConfig(log_file=path))
        attached = [
            h for h in logging.getLogger().handlers
            if isinstance(h, logging.handlers.WatchedFileHandler) and h.baseFilename == path
        ]
        detach_handlers.extend(attached)
        assert len(attached) == 1


class TestLG2_Failures:
    """Tests for LG2: Log file failures never interrupt a mix."""

    def test_lg2_unopenable_path_returns_none(self, tmp_path):
        assert _attach_file_handler(str(tmp_path / "no-such-dir" / "mix.log")) is None

    def test_lg2_write_errors_swallowed(self, tmp_path, detach_handlers, monkeypatch):
        handler = _attach_file_handler(str(tmp_path / "mixplanner.log"))
        detach_handlers.append(handler)

        def failing_reopen():
            raise OSError(28, "No space left on device")

        monkeypatch.setattr(handler, "reopenIfNeeded", failing_reopen)
        record = logging.LogRecord("mixplanner", logging.ERROR, __file__, 1, "disk full", None, None)
        handler.emit(record)
