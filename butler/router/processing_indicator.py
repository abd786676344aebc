"""Processing indicator shown while owner commands run.

Chat indicators expire after a few seconds on most networks, so the loop
re-sends the indicator periodically until stopped.
"""

import asyncio
import logging

from butler.enums import IndicatorKind
from butler.models.domain import InboundMessage
from butler.transport.base import Transport

logger = logging.getLogger(__name__)


class ProcessingIndicatorLoop:
    """Background task that keeps a processing indicator visible."""

    # Telegram chat actions expire in about 5 seconds
    DEFAULT_INTERVAL_SECONDS = 4.0

    def __init__(
        self,
        transport: Transport,
        message: InboundMessage,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
    ) -> None:
        self.transport = transport
        self.message = message
        self.interval_seconds = interval_seconds
        self._task: asyncio.Task | None = None
        self._stop_event = asyncio.Event()

    async def __aenter__(self) -> "ProcessingIndicatorLoop":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    async def start(self) -> None:
        """Send the indicator now and keep re-sending it until stopped."""
        self._stop_event.clear()

        async def _loop() -> None:
            try:
                await self._send(IndicatorKind.PROCESSING)
                while not self._stop_event.is_set():
                    try:
                        await asyncio.wait_for(
                            self._stop_event.wait(),
                            timeout=self.interval_seconds,
                        )
                        break
                    except asyncio.TimeoutError:
                        await self._send(IndicatorKind.PROCESSING)
            except asyncio.CancelledError:
                logger.debug("Processing indicator loop cancelled")

        self._task = asyncio.create_task(_loop())

    async def _send(self, kind: IndicatorKind) -> None:
        try:
            await self.transport.send_transient_indicator(self.message, kind)
        except Exception as e:
            logger.warning(
                "Failed to send %s indicator to %s: %s",
                kind,
                self.message.conversation_id,
                e,
            )

    async def stop(self) -> None:
        """Stop re-sending and clear the indicator."""
        self._stop_event.set()
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        await self._send(IndicatorKind.CLEAR)
