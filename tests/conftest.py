"""
Shared fixtures for the mail notifier tests.
"""

from __future__ import annotations

import pytest
from loguru import logger

from tests.helpers import FakeChat, FakeMailbox


@pytest.fixture
def mailbox():
    return FakeMailbox()


@pytest.fixture
def chat():
    return FakeChat()


@pytest.fixture
def log_records():
    """Capture loguru records emitted during the test."""
    records = []
    handler_id = logger.add(lambda message: records.append(message.record), level="DEBUG")
    yield records
    try:
        logger.remove(handler_id)
    except ValueError:
        # main() may already have removed every handler
        pass
