from __future__ import annotations
import copy
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional

from mumble_shared.messages import ChannelState, UserState, Version


@dataclass
class Channel:
    """A channel as described during server sync, with its members in arrival order."""
    info: ChannelState
    users: List[UserState] = field(default_factory=list)

    @property
    def channel_id(self) -> int:
        return self.info.channel_id

    @property
    def name(self) -> Optional[str]:
        return self.info.name

    def add(self, user: UserState) -> None:
        self.users.append(user)

    def member_names(self) -> List[str]:
        return [user.name or f"#{user.session}" for user in self.users]


@dataclass
class ClientInfo:
    """
    Everything the client learned while connecting.

    Built once by the handshake and handed to every handler call; the
    steady state never mutates it, so it may be read from any task.
    """
    username: str
    actor_id: int
    session_id: int
    channels: Dict[int, Channel] = field(default_factory=dict)
    server_info: Optional[Version] = None
    welcome_text: Optional[str] = None
    max_bandwidth: Optional[int] = None

    def users(self) -> Iterator[UserState]:
        for channel in self.channels.values():
            yield from channel.users

    def channel_of(self, session_id: int) -> Optional[Channel]:
        for channel in self.channels.values():
            if any(user.session == session_id for user in channel.users):
                return channel
        return None


def get_channel_by_name(client_info: ClientInfo, name: str) -> Optional[Channel]:
    """Tries to find a channel named ``name``; returns a copy the caller may change freely."""
    for channel in client_info.channels.values():
        if channel.name == name:
            return copy.deepcopy(channel)
    return None
