from __future__ import annotations
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Awaitable, TypeVar

from mumble_shared.errors import CallbackError, MumbleError
from mumble_shared.messages import ControlMessage

if TYPE_CHECKING:
    from mumble_client.gate import Outbound
    from mumble_client.state import ClientInfo

T = TypeVar("T")


class Handler(ABC):
    """Custom event handling plugged into a Client"""

    @abstractmethod
    async def ready(self, outbound: "Outbound", client_info: "ClientInfo") -> None:
        """Called once the connection is set up, before run() starts."""
        ...

    @abstractmethod
    async def handle(self, outbound: "Outbound", message: ControlMessage, client_info: "ClientInfo") -> None:
        """Called for every message received after ready()."""
        ...

    @abstractmethod
    async def finish(self, outbound: "Outbound", client_info: "ClientInfo") -> None:
        """Called right before the client shuts down."""
        ...


async def invoke(hook: str, call: Awaitable[T]) -> T:
    """Await a handler hook, reporting foreign exceptions as CallbackError."""
    try:
        return await call
    except MumbleError:
        raise
    except Exception as e:
        raise CallbackError(hook, e) from e
