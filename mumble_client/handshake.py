"""
Connection handshake.

Authenticate, exchange versions, then collect channel and user
descriptions until the server signals the end of its sync burst. The
result is the ClientInfo snapshot every handler call receives.
"""

from __future__ import annotations
from typing import TYPE_CHECKING, Dict, Optional

from mumble_client.handler import Handler, invoke
from mumble_client.state import Channel, ClientInfo
from mumble_shared.errors import HandshakeConsistencyError, HandshakeIncompleteError, TransportError
from mumble_shared.log import get_logger, log_control_message
from mumble_shared.messages import (
    Authenticate,
    ChannelState,
    ControlMessage,
    Reject,
    ServerSync,
    UserState,
    Version,
)
from mumble_shared.utils import decode_version, host_os_descriptors

if TYPE_CHECKING:
    from mumble_client.config import ClientSettings
    from mumble_client.gate import OutboundGate
    from mumble_client.transport import Transport

logger = get_logger(__name__)


class HandshakeSequencer:
    def __init__(self, transport: "Transport", gate: "OutboundGate", settings: "ClientSettings") -> None:
        self.transport = transport
        self.gate = gate
        self.settings = settings
        self.username = settings.username

        self.server_info: Optional[Version] = None
        self.channels: Dict[int, Channel] = {}
        self.actor_id: Optional[int] = None
        self.session_id: Optional[int] = None
        self.sync: Optional[ServerSync] = None
        self._last_reject: Optional[Reject] = None

    async def run(self) -> ClientInfo:
        logger.debug("Authenticating", extra={"username": self.username})
        await self.gate.send(Authenticate(
            username=self.username,
            password=self.settings.password,
            tokens=list(self.settings.tokens),
            opus=True,
        ))

        logger.debug("Version exchange")
        await self._receive_server_version()
        await self.gate.send(self._client_version())

        logger.debug("Gathering server information")
        await self._gather_server_state()
        return self._build_client_info()

    async def _receive_server_version(self) -> None:
        message = await self._next("version exchange")
        if isinstance(message, Version):
            if message.version is not None:
                logger.info("Server runs protocol %s (%s)",
                            ".".join(str(part) for part in decode_version(message.version)),
                            message.release or "unknown release")
            logger.debug("Got server version information: %s", message)
            self.server_info = message
        else:
            self._discard(message, "version exchange")

    def _client_version(self) -> Version:
        os_name, os_version = host_os_descriptors()
        return Version(
            version=self.settings.encoded_version,
            release=self.settings.release_string,
            os=os_name,
            os_version=os_version,
        )

    async def _gather_server_state(self) -> None:
        while True:
            message = await self._next("server sync")
            if isinstance(message, ServerSync):
                self.sync = message
                return
            elif isinstance(message, ChannelState):
                self.channels[message.channel_id] = Channel(info=message)
            elif isinstance(message, UserState):
                self._add_user(message)
            else:
                self._discard(message, "server sync")

    def _add_user(self, user: UserState) -> None:
        channel = self.channels.get(user.channel_id)
        if channel is None:
            raise HandshakeConsistencyError(user.name or f"#{user.session}", user.channel_id)
        if user.name == self.username:
            self.actor_id = user.actor
            self.session_id = user.session
        channel.add(user)

    def _build_client_info(self) -> ClientInfo:
        if self.actor_id is None or self.session_id is None:
            raise HandshakeIncompleteError(self.username)
        logger.debug("Got channel info: %s", self.channels)
        return ClientInfo(
            username=self.username,
            actor_id=self.actor_id,
            session_id=self.session_id,
            channels=self.channels,
            server_info=self.server_info,
            welcome_text=self.sync.welcome_text if self.sync else None,
            max_bandwidth=self.sync.max_bandwidth if self.sync else None,
        )

    async def _next(self, phase: str) -> ControlMessage:
        message = await self.transport.recv()
        if message is None:
            detail = ""
            if self._last_reject is not None:
                detail = f" (rejected: {self._last_reject.type} {self._last_reject.reason})"
            raise TransportError(f"Server closed the connection during {phase}{detail}")
        return message

    def _discard(self, message: ControlMessage, phase: str) -> None:
        if isinstance(message, Reject):
            self._last_reject = message
            log_control_message(logger, "warning",
                                f"Server rejected us: {message.type} {message.reason}",
                                message, username=self.username)
            return
        log_control_message(logger, "debug",
                            f"Received {message.type_name}, this should not be sent during the {phase}",
                            message)


async def perform_handshake(
    transport: "Transport",
    gate: "OutboundGate",
    handler: Handler,
    settings: "ClientSettings",
) -> ClientInfo:
    """Run the handshake, bind our identity to ``gate`` and call ``handler.ready`` once."""
    info = await HandshakeSequencer(transport, gate, settings).run()
    gate.bind(info)
    logger.info("Connected as %s", info.username, extra={"session_id": info.session_id})

    logger.debug("Running ready handler")
    await invoke("ready", handler.ready(gate, info))
    return info
