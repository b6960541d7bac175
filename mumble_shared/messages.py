"""
Typed control messages.

Each dataclass mirrors the fields of one control message kind. Decoding
ignores payload keys a dataclass does not declare, and message kinds without
a dataclass come back as UnknownMessage, so newer servers do not break older
clients.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional, Type

from mumble_shared.envelope import Envelope, create_envelope
from mumble_shared.errors import CodecError
from mumble_shared.message_types import MessageType


class ControlMessage:
    """Base for all typed control messages."""

    TYPE: MessageType
    # Fields that must hold integers (ids) and lists of integers
    _INT_FIELDS: tuple = ()
    _INT_LIST_FIELDS: tuple = ()

    @property
    def type_name(self) -> str:
        return self.TYPE.value

    @property
    def type_id(self) -> Optional[int]:
        return self.TYPE.type_id

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        for f in fields(self):  # type: ignore[arg-type]
            value = getattr(self, f.name)
            if value is None:
                continue
            payload[f.name] = list(value) if isinstance(value, list) else value
        return payload

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "ControlMessage":
        known = {f.name for f in fields(cls)}  # type: ignore[arg-type]
        # null means unset, same as a missing key
        kwargs = {key: value for key, value in payload.items() if key in known and value is not None}
        try:
            message = cls(**kwargs)
        except TypeError as e:
            raise CodecError(f"Invalid {cls.TYPE.value} payload: {e}") from e
        message._check_ids()
        return message

    def _check_ids(self) -> None:
        for name in self._INT_FIELDS:
            value = getattr(self, name)
            if value is not None and not _is_int(value):
                raise CodecError(f"{self.type_name}.{name} must be an integer, got {value!r}")
        for name in self._INT_LIST_FIELDS:
            values = getattr(self, name)
            if not isinstance(values, list) or not all(_is_int(v) for v in values):
                raise CodecError(f"{self.type_name}.{name} must be a list of integers, got {values!r}")


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass
class Version(ControlMessage):
    TYPE = MessageType.VERSION
    _INT_FIELDS = ("version",)

    version: Optional[int] = None
    release: Optional[str] = None
    os: Optional[str] = None
    os_version: Optional[str] = None


@dataclass
class Authenticate(ControlMessage):
    TYPE = MessageType.AUTHENTICATE
    _INT_LIST_FIELDS = ("celt_versions",)

    username: Optional[str] = None
    password: Optional[str] = None
    tokens: List[str] = field(default_factory=list)
    celt_versions: List[int] = field(default_factory=list)
    opus: bool = False


@dataclass
class Ping(ControlMessage):
    TYPE = MessageType.PING
    _INT_FIELDS = ("timestamp",)

    timestamp: Optional[int] = None


@dataclass
class Reject(ControlMessage):
    TYPE = MessageType.REJECT

    type: Optional[str] = None      # e.g. "WrongServerPW", "UsernameInUse"
    reason: Optional[str] = None


@dataclass
class ServerSync(ControlMessage):
    TYPE = MessageType.SERVER_SYNC
    _INT_FIELDS = ("session", "max_bandwidth", "permissions")

    session: Optional[int] = None
    max_bandwidth: Optional[int] = None
    welcome_text: Optional[str] = None
    permissions: Optional[int] = None


@dataclass
class ChannelRemove(ControlMessage):
    TYPE = MessageType.CHANNEL_REMOVE
    _INT_FIELDS = ("channel_id",)

    channel_id: int


@dataclass
class ChannelState(ControlMessage):
    TYPE = MessageType.CHANNEL_STATE
    _INT_FIELDS = ("channel_id", "parent", "position", "max_users")
    _INT_LIST_FIELDS = ("links",)

    channel_id: int
    parent: Optional[int] = None
    name: Optional[str] = None
    links: List[int] = field(default_factory=list)
    description: Optional[str] = None
    temporary: bool = False
    position: int = 0
    max_users: Optional[int] = None


@dataclass
class UserRemove(ControlMessage):
    TYPE = MessageType.USER_REMOVE
    _INT_FIELDS = ("session", "actor")

    session: int
    actor: Optional[int] = None
    reason: Optional[str] = None
    ban: Optional[bool] = None


@dataclass
class UserState(ControlMessage):
    TYPE = MessageType.USER_STATE
    _INT_FIELDS = ("session", "actor", "user_id", "channel_id")

    session: int
    actor: int = 0
    name: Optional[str] = None
    user_id: Optional[int] = None
    channel_id: int = 0             # unset means the root channel
    mute: bool = False
    deaf: bool = False
    suppress: bool = False
    self_mute: bool = False
    self_deaf: bool = False
    comment: Optional[str] = None
    hash: Optional[str] = None      # certificate hash of registered users


@dataclass
class TextMessage(ControlMessage):
    TYPE = MessageType.TEXT_MESSAGE
    _INT_FIELDS = ("actor",)
    _INT_LIST_FIELDS = ("session", "channel_id", "tree_id")

    message: str
    actor: Optional[int] = None
    session: List[int] = field(default_factory=list)
    channel_id: List[int] = field(default_factory=list)
    tree_id: List[int] = field(default_factory=list)


@dataclass
class CryptSetup(ControlMessage):
    TYPE = MessageType.CRYPT_SETUP

    # base64 encoded, only meaningful to the voice channel
    key: Optional[str] = None
    client_nonce: Optional[str] = None
    server_nonce: Optional[str] = None


@dataclass
class PermissionQuery(ControlMessage):
    TYPE = MessageType.PERMISSION_QUERY
    _INT_FIELDS = ("channel_id", "permissions")

    channel_id: Optional[int] = None
    permissions: Optional[int] = None
    flush: bool = False


@dataclass
class CodecVersion(ControlMessage):
    TYPE = MessageType.CODEC_VERSION
    _INT_FIELDS = ("alpha", "beta")

    alpha: int = 0
    beta: int = 0
    prefer_alpha: bool = True
    opus: bool = False


@dataclass
class ServerConfig(ControlMessage):
    TYPE = MessageType.SERVER_CONFIG
    _INT_FIELDS = ("max_bandwidth", "message_length", "image_message_length", "max_users")

    max_bandwidth: Optional[int] = None
    welcome_text: Optional[str] = None
    allow_html: Optional[bool] = None
    message_length: Optional[int] = None
    image_message_length: Optional[int] = None
    max_users: Optional[int] = None


@dataclass
class UnknownMessage(ControlMessage):
    """A message kind this client has no dataclass for; payload kept as is."""

    name: str
    payload: Dict[str, Any] = field(default_factory=dict)

    @property
    def type_name(self) -> str:
        return self.name

    @property
    def type_id(self) -> Optional[int]:
        """Protocol id when the name is a known kind without a dataclass."""
        if MessageType.is_valid(self.name):
            return MessageType(self.name).type_id
        return None

    def to_payload(self) -> Dict[str, Any]:
        return dict(self.payload)


MESSAGE_CLASSES: Dict[MessageType, Type[ControlMessage]] = {
    cls.TYPE: cls
    for cls in (
        Version,
        Authenticate,
        Ping,
        Reject,
        ServerSync,
        ChannelRemove,
        ChannelState,
        UserRemove,
        UserState,
        TextMessage,
        CryptSetup,
        PermissionQuery,
        CodecVersion,
        ServerConfig,
    )
}


def decode_message(envelope: Envelope) -> ControlMessage:
    """Turn an envelope into its typed message, or UnknownMessage."""
    try:
        cls = MESSAGE_CLASSES.get(MessageType.from_string(envelope.type))
    except ValueError:
        cls = None
    if cls is None:
        return UnknownMessage(name=envelope.type, payload=dict(envelope.payload))
    return cls.from_payload(envelope.payload)


def encode_message(message: ControlMessage) -> Envelope:
    return create_envelope(message.type_name, message.to_payload())
