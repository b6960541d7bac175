from __future__ import annotations

from enum import Enum
from typing import Dict


class MessageType(str, Enum):
    """Control channel message kinds. Values are the names used on the wire."""

    VERSION = "Version"
    UDP_TUNNEL = "UDPTunnel"
    AUTHENTICATE = "Authenticate"
    PING = "Ping"
    REJECT = "Reject"
    SERVER_SYNC = "ServerSync"
    CHANNEL_REMOVE = "ChannelRemove"
    CHANNEL_STATE = "ChannelState"
    USER_REMOVE = "UserRemove"
    USER_STATE = "UserState"
    BAN_LIST = "BanList"
    TEXT_MESSAGE = "TextMessage"
    PERMISSION_DENIED = "PermissionDenied"
    ACL = "ACL"
    QUERY_USERS = "QueryUsers"
    CRYPT_SETUP = "CryptSetup"
    CONTEXT_ACTION_MODIFY = "ContextActionModify"
    CONTEXT_ACTION = "ContextAction"
    USER_LIST = "UserList"
    VOICE_TARGET = "VoiceTarget"
    PERMISSION_QUERY = "PermissionQuery"
    CODEC_VERSION = "CodecVersion"
    USER_STATS = "UserStats"
    REQUEST_BLOB = "RequestBlob"
    SERVER_CONFIG = "ServerConfig"
    SUGGEST_CONFIG = "SuggestConfig"

    @property
    def type_id(self) -> int:
        """Numeric id of this message kind in the control protocol."""
        return TYPE_IDS[self]

    @classmethod
    def from_string(cls, value: str) -> MessageType:
        """Convert string to MessageType enum, raise ValueError if unknown."""
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"Unknown message type: {value}")

    @classmethod
    def is_valid(cls, value: str) -> bool:
        """Check if string is a valid message type."""
        try:
            cls(value)
            return True
        except ValueError:
            return False


TYPE_IDS: Dict[MessageType, int] = {member: index for index, member in enumerate(MessageType)}
