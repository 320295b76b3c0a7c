"""Tests for logging_config module."""

import logging

from convoy.logging_config import get_logger, init_logger


class TestConvoyLogger:
    """Tests for the global logger setup."""

    def test_file_handler_receives_library_logs(self, tmp_path):
        log_file = tmp_path / "convoy.log"
        logger = init_logger(log_file, verbose=True)

        logging.getLogger("convoy.scheduler").debug("scheduling pass")
        logger.info("started")
        logger.close()

        content = log_file.read_text()
        assert "convoy.scheduler" in content
        assert "scheduling pass" in content
        assert "started" in content

    def test_debug_dropped_when_not_verbose(self, tmp_path):
        log_file = tmp_path / "convoy.log"
        logger = init_logger(log_file)

        logging.getLogger("convoy.runner").debug("noise")
        logger.close()

        assert "noise" not in log_file.read_text()

    def test_init_replaces_previous(self, tmp_path):
        init_logger(tmp_path / "one.log")
        second = init_logger(tmp_path / "two.log")

        assert get_logger() is second
        assert len(second.logger.handlers) == 2

    def test_console_level(self):
        verbose = init_logger(verbose=True)
        assert verbose.logger.handlers[0].level == logging.DEBUG
        quiet = init_logger()
        assert quiet.logger.handlers[0].level == logging.WARNING
