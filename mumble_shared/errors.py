from __future__ import annotations

from typing import Optional


class MumbleError(Exception):
    """Base class for every error raised by this library."""
    pass


class TransportError(MumbleError):
    """Network or IO failure while connecting, reading or writing."""
    pass


class CodecError(TransportError):
    """An inbound frame could not be decoded into a control message."""
    pass


class GateClosedError(TransportError):
    """Raised when sending through an outbound gate that cannot accept writes."""
    pass


class SecurityError(MumbleError):
    """TLS negotiation or certificate validation failed."""
    pass


class HandshakeError(MumbleError):
    """The server did not complete the handshake the way the protocol requires."""
    pass


class HandshakeConsistencyError(HandshakeError):
    """A user description referenced a channel that was never described."""

    def __init__(self, username: str, channel_id: int) -> None:
        super().__init__(
            f"user {username!r} references unknown channel {channel_id} during server sync"
        )
        self.username = username
        self.channel_id = channel_id


class HandshakeIncompleteError(HandshakeError):
    """The server never sent back our own user record."""

    def __init__(self, username: str) -> None:
        super().__init__(
            f"server sync finished without a user record for {username!r}"
        )
        self.username = username


class CallbackError(MumbleError):
    """Failure raised by user supplied handler logic."""

    def __init__(self, hook: str, original: Optional[BaseException] = None) -> None:
        detail = f"{type(original).__name__}: {original}" if original is not None else "failed"
        super().__init__(f"handler.{hook} {detail}")
        self.hook = hook
        self.original = original


class ConfigError(ValueError):
    """Invalid client configuration."""
    pass
