"""Transport contract between the router and a messaging network."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Protocol, runtime_checkable

from butler.enums import IndicatorKind
from butler.models.domain import InboundMessage

MessageCallback = Callable[[InboundMessage], Awaitable[None]]


@runtime_checkable
class Transport(Protocol):
    """What the core needs from a messaging network client.

    Implementations deliver inbound events one at a time to the callback
    passed to start() and raise TransportError when a send fails.
    """

    @property
    def own_identity(self) -> str | None:
        """Identity of the account the transport is logged in as."""
        ...

    async def start(self, on_message: MessageCallback) -> None: ...

    async def stop_intake(self) -> None:
        """Stop receiving. Events already received are still delivered."""
        ...

    async def stop(self) -> None:
        """Release the connection. Called after stop_intake()."""
        ...

    async def send_text(self, conversation_id: str, text: str) -> None: ...

    async def send_media(
        self,
        conversation_id: str,
        data: bytes,
        *,
        mime_type: str | None = None,
        file_name: str | None = None,
        caption: str | None = None,
    ) -> None: ...

    async def send_transient_indicator(
        self, message: InboundMessage, kind: IndicatorKind
    ) -> None: ...

    async def download_media(self, message: InboundMessage) -> bytes: ...
