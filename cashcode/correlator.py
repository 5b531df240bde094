"""
Request/response correlation over a ByteChannel.

The channel's notifier fills a single-slot queue; ``send`` writes a frame
and waits on that slot with a timeout. Only one exchange is in flight at a
time.
"""

import asyncio
import logging

from .constants import RESPONSE_TIMEOUT_S
from .transport import ByteChannel


logger = logging.getLogger(__name__)


class ResponseCorrelator:
    """
    Pairs each outbound frame with the next inbound response.

    Attributes:
        timeout: Seconds to wait for a response before giving up.
    """

    def __init__(
        self,
        channel: ByteChannel,
        timeout: float = RESPONSE_TIMEOUT_S,
    ) -> None:
        self._channel = channel
        self.timeout = timeout
        self._slot: asyncio.Queue[bytes] = asyncio.Queue(maxsize=1)
        self._lock = asyncio.Lock()
        channel.set_response_handler(self.deliver)

    def deliver(self, data: bytes) -> None:
        """
        Notifier entry point: place a drained buffer in the slot.

        A response nobody collected is replaced by the newer one.
        """
        if self._slot.full():
            stale = self._slot.get_nowait()
            logger.debug(f"Discarding uncollected response ({len(stale)} bytes)")
        self._slot.put_nowait(data)

    def _discard_stale(self) -> None:
        while not self._slot.empty():
            self._slot.get_nowait()

    async def send(self, frame: bytes) -> bytes:
        """
        Write ``frame`` and wait for the response.

        Returns:
            The raw response, or ``b''`` if nothing arrived in time.
        """
        async with self._lock:
            self._discard_stale()
            self._channel.write(frame)
            try:
                return await asyncio.wait_for(self._slot.get(), timeout=self.timeout)
            except asyncio.TimeoutError:
                logger.warning(
                    f"No response within {self.timeout:.1f}s to frame {frame.hex(' ').upper()}"
                )
                return b''

    async def notify(self, frame: bytes) -> None:
        """Write a frame that expects no response (ACK/NAK)."""
        async with self._lock:
            self._channel.write(frame)
