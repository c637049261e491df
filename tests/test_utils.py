"""Tests for the shared Telegram helpers."""

import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from utils import safe_inform


@pytest.fixture
def transport():
    transport = MagicMock()
    transport.inform_event = AsyncMock(return_value=500)
    return transport


class TestSafeInform:

    @pytest.mark.asyncio
    async def test_returns_message_id(self, transport):
        assert await safe_inform(transport, -100, "hello", 7) == 500
        transport.inform_event.assert_awaited_once_with(-100, "hello", "", 7)

    @pytest.mark.asyncio
    async def test_failure_is_logged(self, transport, caplog):
        transport.inform_event.side_effect = ConnectionError("down")

        with caplog.at_level(logging.ERROR, logger="utils"):
            assert await safe_inform(transport, -100, "hello") is None

        assert "Error informing chat -100: Connection error" in caplog.text
