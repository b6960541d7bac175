from __future__ import annotations
import asyncio
from dataclasses import replace
from typing import List, Optional

from mumble_client.config import ClientSettings
from mumble_client.gate import OutboundGate
from mumble_client.handler import Handler, invoke
from mumble_client.handshake import perform_handshake
from mumble_client.keepalive import keepalive_loop
from mumble_client.state import ClientInfo
from mumble_client.transport import Transport, open_transport
from mumble_shared.errors import GateClosedError, MumbleError
from mumble_shared.log import get_logger, log_control_message

logger = get_logger(__name__)


class Client:
    """
    A connected control session.

    Build one with ``Client.connect``; it returns once the handshake is done
    and ``handler.ready`` ran. ``run`` then pings the server and feeds every
    inbound message to ``handler.handle`` until the connection ends.
    """

    def __init__(
        self,
        transport: Transport,
        gate: OutboundGate,
        handler: Handler,
        info: ClientInfo,
        settings: ClientSettings,
    ) -> None:
        self.transport = transport
        self.gate = gate
        self.handler = handler
        self.info = info
        self.settings = settings
        self._running = False
        self._torn_down = False

    @classmethod
    async def connect(
        cls,
        handler: Handler,
        host: str,
        port: int,
        username: str,
        verify_certificate: bool = True,
        *,
        settings: Optional[ClientSettings] = None,
    ) -> "Client":
        """
        Connect to ``host:port`` as ``username``.

        ``verify_certificate`` determines whether the server's TLS certificate
        gets verified or not. Any other option comes from ``settings``.
        """
        settings = replace(
            settings or ClientSettings(),
            host=host,
            port=port,
            username=username,
            verify_certificate=verify_certificate,
        )
        return await cls.connect_with(handler, settings)

    @classmethod
    async def connect_with(cls, handler: Handler, settings: ClientSettings) -> "Client":
        settings.validate()
        logger.info("Connecting to %s:%s", settings.host, settings.port)
        logger.debug("Client settings: %s", settings.to_dict())
        transport = await open_transport(settings.host, settings.port, settings)
        return await cls.start(handler, transport, settings)

    @classmethod
    async def start(cls, handler: Handler, transport: Transport, settings: ClientSettings) -> "Client":
        """Run the handshake over an already open transport."""
        gate = OutboundGate(transport)
        try:
            info = await perform_handshake(transport, gate, handler, settings)
        except BaseException:
            await transport.close()
            raise
        return cls(transport, gate, handler, info, settings)

    async def run(self) -> None:
        """
        Ping the server every ``settings.ping_interval`` seconds and handle
        inbound messages until either activity ends.

        The other activity is cancelled, then ``handler.finish`` runs and
        the connection is closed. Returns normally when the server closed
        the stream or ``disconnect`` was called; otherwise raises the error
        that ended the session. Cancelling ``run`` also tears the session down
        before the cancellation propagates.
        """
        if self._torn_down:
            raise GateClosedError("Client already disconnected")
        if self._running:
            raise RuntimeError("Client.run() is already running")
        self._running = True

        tasks: List[asyncio.Task] = [
            asyncio.create_task(keepalive_loop(self.gate, self.settings.ping_interval), name="keepalive"),
            asyncio.create_task(self._receive_loop(), name="receive"),
        ]
        try:
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            await self._stop_loops(tasks)
            logger.info("Session cancelled")
            try:
                # finish and close even if we get cancelled again meanwhile
                await asyncio.shield(self._teardown())
            except MumbleError as teardown_error:
                logger.error("Shutting down the cancelled session failed: %s", teardown_error)
            raise
        finally:
            await self._stop_loops(tasks)

        error = self._session_error(done)
        if error is not None:
            logger.error("Session ended: %s", error)

        try:
            await self._teardown()
        except MumbleError as teardown_error:
            if error is None:
                raise
            logger.error("Shutting down after the session failed also failed: %s", teardown_error)

        if error is not None:
            raise error

    async def disconnect(self) -> None:
        """Call the finish function of the handler and close the connection."""
        await self._teardown()

    async def _stop_loops(self, tasks: List[asyncio.Task]) -> None:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._running = False

    def _session_error(self, done: set) -> Optional[BaseException]:
        for task in done:
            if task.cancelled():
                continue
            error = task.exception()
            if error is None:
                continue
            # Sends racing an explicit disconnect are expected to hit a closed gate
            if self._torn_down and isinstance(error, GateClosedError):
                continue
            return error
        return None

    async def _receive_loop(self) -> None:
        logger.info("Starting event loop")
        while True:
            message = await self.transport.recv()
            if message is None:
                logger.info("Server closed the connection")
                return
            log_control_message(logger, "debug", "Handling message", message)
            await invoke("handle", self.handler.handle(self.gate, message, self.info))

    async def _teardown(self) -> None:
        if self._torn_down:
            return
        self._torn_down = True
        try:
            async with self.gate.teardown() as outbound:
                await invoke("finish", self.handler.finish(outbound, self.info))
        finally:
            await self.transport.close()
            logger.info("Disconnected", extra={"session_id": self.info.session_id})
