"""
Pytest configuration and shared fixtures.

``ScriptedTransport`` stands in for the serial port: it records every
frame written and answers each command frame (anything but ACK/NAK) with
the next scripted response.
"""

import asyncio
from collections import deque
from typing import Optional

import pytest

from cashcode.constants import DEFAULT_DEVICE_ADDRESS, SYNC_BYTE, Command
from cashcode.crc import append_crc
from cashcode.exceptions import PortNotOpenError, TransportError
from cashcode.session import DeviceSession
from cashcode.settings import Settings, TimingSettings


def device_frame(*data: int) -> bytes:
    """Build a valid response frame carrying ``data`` (status byte first)."""
    body = bytes([SYNC_BYTE, DEFAULT_DEVICE_ADDRESS, len(data) + 5]) + bytes(data)
    return append_crc(body)


ACK_RESPONSE = device_frame(0x00)

PART_NUMBER = b"SM-RU1353      "
SERIAL_NUMBER = b"41K932001255"
ASSET_NUMBER = bytes([0x00, 0x01, 0x02, 0x03, 0x04, 0x05, 0x06])


def handshake_script() -> list[bytes]:
    """Responses for a clean power-up, one per command frame."""
    return [
        device_frame(0x10),                # POLL -> POWER UP
        ACK_RESPONSE,                      # RESET
        device_frame(0x13),                # POLL -> INITIALIZE
        device_frame(0, 0, 0, 0, 0, 0),    # GET STATUS
        ACK_RESPONSE,                      # SET SECURITY
        device_frame(*(PART_NUMBER + SERIAL_NUMBER + ASSET_NUMBER)),  # IDENTIFICATION
        device_frame(0x13),                # POLL -> INITIALIZE
        device_frame(0x19),                # POLL -> UNIT DISABLED
    ]


class ScriptedTransport:
    """
    In-memory ByteChannel.

    Attributes:
        responses: Pending responses; ``None`` entries stay silent so the
            correlator times out.
        written: Every frame written, in order.
        open_error: Raised from ``open`` when set.
        close_error: Raised from ``close`` when set.
    """

    def __init__(
        self,
        responses: Optional[list[Optional[bytes]]] = None,
        opened: bool = False,
    ) -> None:
        self.responses: deque[Optional[bytes]] = deque(responses or [])
        self.written: list[bytes] = []
        self.open_error: Optional[Exception] = None
        self.close_error: Optional[Exception] = None
        self.close_calls = 0
        self._open = opened
        self._handler = None

    @property
    def is_open(self) -> bool:
        return self._open

    async def open(self) -> None:
        if self.open_error is not None:
            raise self.open_error
        self._open = True

    def set_response_handler(self, handler) -> None:
        self._handler = handler

    def script(self, *responses: Optional[bytes]) -> None:
        self.responses.extend(responses)

    def write(self, data: bytes) -> None:
        if not self._open:
            raise PortNotOpenError("Com port is not open")
        self.written.append(bytes(data))

        if data[3] in (Command.ACK, Command.NAK):
            return
        if not self.responses:
            return
        response = self.responses.popleft()
        if response is not None:
            asyncio.get_running_loop().call_soon(self._handler, response)

    async def close(self) -> None:
        self.close_calls += 1
        if self.close_error is not None:
            raise self.close_error
        self._open = False

    @property
    def commands(self) -> list[int]:
        """Command byte of every written frame."""
        return [frame[3] for frame in self.written]

    def clear(self) -> None:
        self.written.clear()


@pytest.fixture
def fast_settings() -> Settings:
    """Settings with short timing so timeouts resolve quickly."""
    return Settings(
        timing=TimingSettings(
            poll_interval_s=0.01,
            response_timeout_s=0.05,
            settle_delay_s=0.0,
        ),
    )


@pytest.fixture
def transport() -> ScriptedTransport:
    return ScriptedTransport()


@pytest.fixture
def session(transport: ScriptedTransport, fast_settings: Settings) -> DeviceSession:
    return DeviceSession(transport, settings=fast_settings)


@pytest.fixture
def failing_transport() -> ScriptedTransport:
    """Transport whose open() fails."""
    transport = ScriptedTransport()
    transport.open_error = TransportError("Error opening /dev/null", port="/dev/null")
    return transport
