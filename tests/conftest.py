"""Shared fixtures."""

import logging

import pytest

import convoy.logging_config as logging_config


@pytest.fixture(autouse=True)
def reset_convoy_logger():
    """Undo handlers the CLI installs so caplog sees convoy records."""
    yield
    if logging_config._logger is not None:
        logging_config._logger.close()
        logging_config._logger = None
    logger = logging.getLogger("convoy")
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
