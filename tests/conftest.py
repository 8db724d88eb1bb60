from __future__ import annotations

import logging

import pytest

from outage_bot.logging_utils import LOGGER_NAME


@pytest.fixture(autouse=True)
def _restore_outage_alert_bot_logger():
    logger = logging.getLogger(LOGGER_NAME)
    original_handlers = list(logger.handlers)
    original_level = logger.level
    original_propagate = logger.propagate
    yield
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        if handler not in original_handlers:
            handler.close()
    for handler in original_handlers:
        logger.addHandler(handler)
    logger.setLevel(original_level)
    logger.propagate = original_propagate
