"""Unit tests for ProcessingIndicatorLoop."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

from butler.enums import IndicatorKind
from butler.router.processing_indicator import ProcessingIndicatorLoop
from tests.conftest import make_message


def _transport():
    transport = MagicMock()
    transport.send_transient_indicator = AsyncMock()
    return transport


async def test_resends_until_stopped_then_clears():
    transport = _transport()
    message = make_message("hi")

    async with ProcessingIndicatorLoop(transport, message, interval_seconds=0.01):
        await asyncio.sleep(0.05)

    kinds = [call.args[1] for call in transport.send_transient_indicator.await_args_list]
    assert kinds.count(IndicatorKind.PROCESSING) >= 2
    assert kinds[-1] is IndicatorKind.CLEAR
    assert all(call.args[0] is message for call in transport.send_transient_indicator.await_args_list)


async def test_send_failures_are_swallowed():
    transport = _transport()
    transport.send_transient_indicator.side_effect = ConnectionError("offline")

    loop = ProcessingIndicatorLoop(transport, make_message("hi"), interval_seconds=0.01)
    await loop.start()
    await asyncio.sleep(0.03)
    await loop.stop()

    assert transport.send_transient_indicator.await_count >= 2
