"""Shared fixtures."""

import logging

import pytest

import loopwatch.logging_setup as ls


@pytest.fixture(autouse=True)
def reset_loopwatch_logger():
    """Undo setup_logging() so caplog sees loopwatch records in every test."""
    yield
    ls._CONFIGURED = False
    logger = logging.getLogger("loopwatch")
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True
