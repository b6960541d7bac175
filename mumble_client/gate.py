from __future__ import annotations
import asyncio
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncIterator, Optional

from mumble_shared.errors import GateClosedError
from mumble_shared.log import get_logger
from mumble_shared.messages import ControlMessage, Ping, TextMessage
from mumble_shared.utils import now_ms

if TYPE_CHECKING:
    from mumble_client.state import ClientInfo
    from mumble_client.transport import Transport

logger = get_logger(__name__)


class Outbound(ABC):
    """What handlers get to talk back to the server with."""

    client_info: Optional["ClientInfo"] = None

    @abstractmethod
    async def send(self, message: ControlMessage) -> None:
        ...

    async def send_text_message(self, text: str, channel_id: int) -> None:
        """
        Send ``text`` to ``channel_id``; HTML can be used here.

        The message always carries our own actor and session as captured
        during the handshake.
        """
        info = self.client_info
        if info is None:
            raise GateClosedError("Cannot send text messages before the handshake completed")
        message = TextMessage(
            message=text,
            actor=info.actor_id,
            session=[info.session_id],
            channel_id=[channel_id],
        )
        logger.debug("Text message to channel %s: %r", channel_id, text)
        await self.send(message)

    async def send_ping(self) -> None:
        await self.send(Ping(timestamp=now_ms()))


class OutboundGate(Outbound):
    """
    Single writer to the transport, shared by the keepalive loop and handlers.

    Each send holds the lock for exactly one write, so frames from
    concurrent senders never interleave; they go out in lock order.
    """

    def __init__(self, transport: "Transport") -> None:
        self._transport = transport
        self._lock = asyncio.Lock()
        self._closed = False
        self.client_info = None

    @property
    def closed(self) -> bool:
        return self._closed

    def bind(self, client_info: "ClientInfo") -> None:
        """Attach the identity captured during the handshake."""
        self.client_info = client_info

    async def send(self, message: ControlMessage) -> None:
        async with self._lock:
            if self._closed:
                raise GateClosedError(f"Cannot send {message.type_name}: client is shutting down")
            await self._transport.send(message)

    @asynccontextmanager
    async def teardown(self) -> AsyncIterator[Outbound]:
        """
        Take the gate for good. Every later ``send`` fails; the yielded
        writer stays usable until the block exits.
        """
        async with self._lock:
            if self._closed:
                raise GateClosedError("Outbound gate already torn down")
            self._closed = True
            writer = _TeardownWriter(self._transport, self.client_info)
            try:
                yield writer
            finally:
                writer.active = False


class _TeardownWriter(Outbound):
    """Writes while OutboundGate.teardown() holds the lock."""

    def __init__(self, transport: "Transport", client_info: Optional["ClientInfo"]) -> None:
        self._transport = transport
        self.client_info = client_info
        self.active = True

    async def send(self, message: ControlMessage) -> None:
        if not self.active:
            raise GateClosedError(f"Cannot send {message.type_name}: client has shut down")
        await self._transport.send(message)
