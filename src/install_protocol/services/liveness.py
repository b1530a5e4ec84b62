"""AlivePing / AlivePong liveness handling.

The installer pings every ping_interval seconds and the updater answers each
ping with a pong. Either side treats alive_timeout seconds of silence as a
dead peer.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

from install_protocol.exceptions import PeerUnresponsive
from install_protocol.services.channel import Message, MessageChannel


class LivenessMonitor:
    """Tracks the last time anything arrived from the peer."""

    def __init__(self, timeout: float, clock: Callable[[], float] = time.monotonic):
        self.logger = logging.getLogger("install_protocol.liveness")
        self.timeout = timeout
        self._clock = clock
        self._last_seen = clock()

    def touch(self) -> None:
        self._last_seen = self._clock()

    def remaining(self) -> float:
        """Seconds left before the peer counts as unresponsive."""
        return max(0.0, self.timeout - (self._clock() - self._last_seen))

    async def receive(self, channel: MessageChannel) -> Optional[Message]:
        """Receive the next message within the liveness window.

        Returns:
            Next message, or None if the peer closed the channel

        Raises:
            PeerUnresponsive: If nothing arrived within the timeout
        """
        try:
            message = await asyncio.wait_for(channel.receive(), timeout=self.remaining())
        except asyncio.TimeoutError:
            self.logger.error(f"No message from peer on {channel.name} for {self.timeout}s")
            raise PeerUnresponsive(
                f"No message on {channel.name} within {self.timeout}s",
                context={"channel": channel.name, "timeout": self.timeout},
            ) from None
        if message is not None:
            self.touch()
        return message


async def run_pinger(send_ping: Callable[[], Awaitable[None]], interval: float) -> None:
    """Send a ping every interval seconds until cancelled or the send fails."""
    logger = logging.getLogger("install_protocol.liveness")
    while True:
        await asyncio.sleep(interval)
        try:
            await send_ping()
        except ConnectionError as e:
            logger.info(f"Stopped pinging: {e}")
            return
