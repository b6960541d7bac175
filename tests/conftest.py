import asyncio
import datetime
import ipaddress
import ssl
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, List, Optional

import pytest
import websockets
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from mumble_client.config import ClientSettings
from mumble_client.handler import Handler
from mumble_shared.envelope import Envelope
from mumble_shared.messages import (
    ChannelState,
    ControlMessage,
    ServerSync,
    UserState,
    Version,
    decode_message,
    encode_message,
)


class ScriptedTransport:
    """In-memory stand-in for Transport: a queue of inbound messages, a list of sent ones.

    Queue an Exception instance to make recv() raise it, None for end of stream.
    """

    def __init__(self, inbound: Optional[List[Any]] = None) -> None:
        self.inbound: asyncio.Queue = asyncio.Queue()
        for item in inbound or []:
            self.inbound.put_nowait(item)
        self.sent: List[ControlMessage] = []
        self.closed = False
        self.send_delay = 0.0
        self.fail_send: Optional[Exception] = None
        self.active_writers = 0
        self.max_active_writers = 0

    def push(self, item: Any) -> None:
        self.inbound.put_nowait(item)

    async def send(self, message: ControlMessage) -> None:
        self.active_writers += 1
        self.max_active_writers = max(self.max_active_writers, self.active_writers)
        try:
            if self.send_delay:
                await asyncio.sleep(self.send_delay)
            if self.fail_send is not None:
                raise self.fail_send
            self.sent.append(message)
        finally:
            self.active_writers -= 1

    async def recv(self) -> Optional[ControlMessage]:
        if self.closed and self.inbound.empty():
            return None
        item = await self.inbound.get()
        if isinstance(item, Exception):
            raise item
        return item

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.inbound.put_nowait(None)

    def sent_of(self, cls) -> List[ControlMessage]:
        return [message for message in self.sent if isinstance(message, cls)]


class RecordingHandler(Handler):
    def __init__(self) -> None:
        self.calls: List[tuple] = []
        self.handled: List[ControlMessage] = []
        self.fail_on: Optional[str] = None
        self.error: Exception = RuntimeError("handler failed")
        self.handle_delay = 0.0

    async def ready(self, outbound, client_info) -> None:
        self.calls.append(("ready", client_info))
        if self.fail_on == "ready":
            raise self.error

    async def handle(self, outbound, message, client_info) -> None:
        self.calls.append(("handle", message))
        if self.handle_delay:
            await asyncio.sleep(self.handle_delay)
        self.handled.append(message)
        if self.fail_on == "handle":
            raise self.error

    async def finish(self, outbound, client_info) -> None:
        self.calls.append(("finish", client_info))
        if self.fail_on == "finish":
            raise self.error

    def hooks(self) -> List[str]:
        return [call[0] for call in self.calls]


def sync_burst(username: str = "Alice") -> List[ControlMessage]:
    """Version reply plus a small server sync: Root with Bob and ``username``."""
    return [
        Version(version=66053, release="murmur 1.2.5", os="Linux", os_version="6.1"),
        ChannelState(channel_id=0, name="Root"),
        UserState(session=7, actor=7, name="Bob", channel_id=0),
        UserState(session=9, actor=9, name=username, channel_id=0),
        ServerSync(session=9, max_bandwidth=72000, welcome_text="Welcome!"),
    ]


@pytest.fixture
def settings() -> ClientSettings:
    return ClientSettings(username="Alice", ping_interval=0.05)


@pytest.fixture
def handler() -> RecordingHandler:
    return RecordingHandler()


# ========================================
#           TLS TEST SERVER
# ========================================

def _issue(subject_cn, issuer_cn, public_key, signing_key, issuer_key, extensions):
    now = datetime.datetime.now(datetime.timezone.utc)
    builder = (
        x509.CertificateBuilder()
        .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, subject_cn)]))
        .issuer_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, issuer_cn)]))
        .public_key(public_key)
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(minutes=5))
        .not_valid_after(now + datetime.timedelta(days=1))
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(public_key), critical=False)
        .add_extension(x509.AuthorityKeyIdentifier.from_issuer_public_key(issuer_key), critical=False)
    )
    for extension, critical in extensions:
        builder = builder.add_extension(extension, critical=critical)
    return builder.sign(signing_key, hashes.SHA256())


def _key_usage(**enabled):
    flags = dict.fromkeys(
        ("digital_signature", "content_commitment", "key_encipherment", "data_encipherment",
         "key_agreement", "key_cert_sign", "crl_sign", "encipher_only", "decipher_only"),
        False,
    )
    flags.update(enabled)
    return x509.KeyUsage(**flags)


@pytest.fixture(scope="session")
def server_certificate(tmp_path_factory):
    """Test CA plus a server certificate for localhost/127.0.0.1 signed by it: (certfile, keyfile, cafile)."""
    ca_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    ca_cert = _issue("mumble-control test CA", "mumble-control test CA", ca_key.public_key(), ca_key,
                     ca_key.public_key(), [
                         (x509.BasicConstraints(ca=True, path_length=None), True),
                         (_key_usage(digital_signature=True, key_cert_sign=True, crl_sign=True), True),
                     ])
    server_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    server_cert = _issue("localhost", "mumble-control test CA", server_key.public_key(), ca_key,
                         ca_key.public_key(), [
                             (x509.BasicConstraints(ca=False, path_length=None), True),
                             (_key_usage(digital_signature=True, key_encipherment=True), True),
                             (x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]), False),
                             (x509.SubjectAlternativeName([
                                 x509.DNSName("localhost"),
                                 x509.IPAddress(ipaddress.ip_address("127.0.0.1")),
                             ]), False),
                         ])

    base = tmp_path_factory.mktemp("tls")
    certfile = base / "server.pem"
    keyfile = base / "server.key"
    cafile = base / "ca.pem"
    certfile.write_bytes(server_cert.public_bytes(serialization.Encoding.PEM))
    keyfile.write_bytes(server_key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ))
    cafile.write_bytes(ca_cert.public_bytes(serialization.Encoding.PEM))
    return certfile, keyfile, cafile


class FakeServer:
    """Minimal voice server control side: answers the handshake from a script, records what it gets."""

    def __init__(self, burst: List[ControlMessage], close_after_sync: bool = False) -> None:
        self.burst = burst
        self.close_after_sync = close_after_sync
        self.received: List[ControlMessage] = []
        self.port: Optional[int] = None
        self.connection = None
        self.got_message = asyncio.Event()

    async def handler(self, connection) -> None:
        self.connection = connection
        try:
            async for raw in connection:
                message = decode_message(Envelope.from_json(raw))
                self.received.append(message)
                self.got_message.set()
                if message.type_name == "Authenticate":
                    await connection.send(encode_message(self.burst[0]).to_json())
                elif message.type_name == "Version":
                    for reply in self.burst[1:]:
                        await connection.send(encode_message(reply).to_json())
                    if self.close_after_sync:
                        await connection.close()
                        return
        except websockets.exceptions.ConnectionClosed:
            pass

    async def push(self, message: ControlMessage) -> None:
        await self.connection.send(encode_message(message).to_json())

    def received_of(self, type_name: str) -> List[ControlMessage]:
        return [message for message in self.received if message.type_name == type_name]


@asynccontextmanager
async def running_server(server_certificate, burst, close_after_sync=False):
    certfile, keyfile, _ = server_certificate
    context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
    context.load_cert_chain(certfile, keyfile)
    fake = FakeServer(burst, close_after_sync=close_after_sync)
    async with websockets.serve(fake.handler, "127.0.0.1", 0, ssl=context) as server:
        fake.port = server.sockets[0].getsockname()[1]
        yield fake
