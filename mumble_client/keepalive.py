"""Keep-alive loop that stops the server from timing out an idle client."""
from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from mumble_client.config import DEFAULT_PING_INTERVAL
from mumble_shared.log import get_logger

if TYPE_CHECKING:
    from mumble_client.gate import Outbound

logger = get_logger(__name__)


async def keepalive_loop(outbound: "Outbound", interval: float = DEFAULT_PING_INTERVAL) -> None:
    """
    Send a Ping every ``interval`` seconds, forever.

    A failed send ends the loop with the transport error, which ends the
    session; cancellation is the only other way out.
    """
    while True:
        await asyncio.sleep(interval)
        await outbound.send_ping()
        logger.debug("Ping sent")
