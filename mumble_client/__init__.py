"""
Control channel client for Mumble-style voice/chat servers.

Everything a handler author usually needs:

    from mumble_client import Client, Handler, get_channel_by_name, messages
"""

from mumble_client.client import Client
from mumble_client.config import ClientSettings, __version__
from mumble_client.gate import Outbound, OutboundGate
from mumble_client.handler import Handler
from mumble_client.state import Channel, ClientInfo, get_channel_by_name
from mumble_shared import messages
from mumble_shared.errors import (
    CallbackError,
    CodecError,
    ConfigError,
    GateClosedError,
    HandshakeConsistencyError,
    HandshakeError,
    HandshakeIncompleteError,
    MumbleError,
    SecurityError,
    TransportError,
)
from mumble_shared.messages import ControlMessage

__all__ = [
    "CallbackError",
    "Channel",
    "Client",
    "ClientInfo",
    "ClientSettings",
    "CodecError",
    "ConfigError",
    "ControlMessage",
    "GateClosedError",
    "Handler",
    "HandshakeConsistencyError",
    "HandshakeError",
    "HandshakeIncompleteError",
    "MumbleError",
    "Outbound",
    "OutboundGate",
    "SecurityError",
    "TransportError",
    "get_channel_by_name",
    "messages",
    "__version__",
]
