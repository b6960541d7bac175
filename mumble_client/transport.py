from __future__ import annotations
import asyncio
import ssl
from typing import Optional

import websockets
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK, InvalidHandshake, InvalidURI

from mumble_client.config import ClientSettings
from mumble_shared.envelope import Envelope
from mumble_shared.errors import CodecError, ConfigError, SecurityError, TransportError
from mumble_shared.log import get_logger
from mumble_shared.messages import ControlMessage, decode_message, encode_message

logger = get_logger(__name__)


def build_ssl_context(settings: ClientSettings) -> ssl.SSLContext:
    """TLS context for the control connection, optionally carrying a client certificate."""
    context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH)
    if not settings.verify_certificate:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    elif settings.cafile is not None:
        try:
            context.load_verify_locations(cafile=settings.cafile)
        except (OSError, ssl.SSLError) as e:
            raise ConfigError(f"Cannot load CA file {settings.cafile}: {e}") from e
    if settings.certfile is not None:
        try:
            context.load_cert_chain(settings.certfile, settings.keyfile)
        except ssl.SSLError as e:
            raise SecurityError(f"Cannot use client certificate {settings.certfile}: {e}") from e
        except OSError as e:
            raise ConfigError(f"Cannot read client certificate {settings.certfile}: {e}") from e
    return context


def endpoint_url(host: str, port: int) -> str:
    if ":" in host and not host.startswith("["):
        host = f"[{host}]"
    return f"wss://{host}:{port}"


class Transport:
    """
    Encrypted, ordered control connection carrying one envelope per frame.

    Only one coroutine may wait in ``recv`` at a time. Writers are expected
    to go through an OutboundGate.
    """

    def __init__(self, websocket: websockets.ClientConnection) -> None:
        self.websocket = websocket

    async def send(self, message: ControlMessage) -> None:
        data = encode_message(message).to_json()
        logger.debug("Sending %s (type %s)", message.type_name, message.type_id)
        try:
            await self.websocket.send(data)
        except ConnectionClosed as e:
            raise TransportError(f"Connection closed while sending {message.type_name}: {e}") from e
        except OSError as e:
            raise TransportError(f"Error sending {message.type_name}: {e}") from e

    async def recv(self) -> Optional[ControlMessage]:
        """Next inbound message, or None once the server closed the stream normally."""
        try:
            raw = await self.websocket.recv()
        except ConnectionClosedOK:
            return None
        except ConnectionClosed as e:
            raise TransportError(f"Connection lost: {e}") from e
        except OSError as e:
            raise TransportError(f"Error reading from server: {e}") from e

        if isinstance(raw, bytes):
            try:
                raw = raw.decode("utf-8")
            except UnicodeDecodeError as e:
                raise CodecError(f"Frame is not valid UTF-8: {e}") from e
        message = decode_message(Envelope.from_json(raw))
        logger.debug("Received %s (type %s)", message.type_name, message.type_id)
        return message

    async def close(self) -> None:
        try:
            await self.websocket.close(code=1000)
        except OSError as e:
            logger.warning("Error closing connection: %s", e)


async def open_transport(host: str, port: int, settings: ClientSettings) -> Transport:
    """
    Connect to ``host:port`` over TLS.

    Raises:
        SecurityError: TLS negotiation or certificate validation failed.
        TransportError: the server could not be reached.
    """
    url = endpoint_url(host, port)
    ssl_context = build_ssl_context(settings)
    logger.debug("Opening TLS connection to %s (verify_certificate=%s)", url, settings.verify_certificate)
    try:
        websocket = await websockets.connect(
            url,
            ssl=ssl_context,
            open_timeout=settings.open_timeout,
            # keepalive is a protocol level Ping, see keepalive.py
            ping_interval=None,
        )
    except ssl.SSLError as e:
        raise SecurityError(f"TLS negotiation with {url} failed: {e}") from e
    except (OSError, asyncio.TimeoutError) as e:
        raise TransportError(f"Cannot connect to {url}: {e}") from e
    except (InvalidHandshake, InvalidURI) as e:
        raise TransportError(f"Connection to {url} refused: {e}") from e
    return Transport(websocket)
