"""
CCNET Transport Layer.

Owns the serial port. Bytes written by the host go straight to the port;
bytes arriving from the validator are read by a background task which,
once the line has had ``settle_delay`` seconds to deliver the rest of the
frame, drains what has arrived and hands it to the registered response
handler as one chunk.

The port is opened through pyserial-asyncio at 8 data bits, no parity and
one stop bit.
"""

import asyncio
import logging
from typing import Callable, Final, Optional, Protocol, runtime_checkable

import serial
import serial_asyncio

from .constants import SETTLE_DELAY_S, SUPPORTED_BAUDRATES
from .exceptions import ConfigurationError, PortNotOpenError, TransportError


logger = logging.getLogger(__name__)


READ_CHUNK_SIZE: Final[int] = 1024
DRAIN_TIMEOUT_S: Final[float] = 0.01


ResponseHandler = Callable[[bytes], None]


@runtime_checkable
class ByteChannel(Protocol):
    """Duplex byte stream the driver talks through."""

    @property
    def is_open(self) -> bool:
        ...

    async def open(self) -> None:
        ...

    def write(self, data: bytes) -> None:
        ...

    async def close(self) -> None:
        ...

    def set_response_handler(self, handler: ResponseHandler) -> None:
        ...


class SerialTransport:
    """
    Serial port implementation of ``ByteChannel``.

    Attributes:
        port: Serial port path.
        baudrate: 9600 or 19200.
        settle_delay: Seconds to wait after the first byte of a response.
    """

    def __init__(
        self,
        port: str,
        baudrate: int = 9600,
        settle_delay: float = SETTLE_DELAY_S,
    ) -> None:
        if baudrate not in SUPPORTED_BAUDRATES:
            raise ConfigurationError(
                f"Unsupported baudrate {baudrate}; expected one of {SUPPORTED_BAUDRATES}",
                details={"baudrate": baudrate},
            )
        self.port = port
        self.baudrate = baudrate
        self.settle_delay = settle_delay

        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._read_task: Optional[asyncio.Task] = None
        self._handler: Optional[ResponseHandler] = None

    @property
    def is_open(self) -> bool:
        return self._writer is not None and not self._writer.is_closing()

    def set_response_handler(self, handler: ResponseHandler) -> None:
        self._handler = handler

    async def open(self) -> None:
        """
        Open the serial port.

        Raises:
            TransportError: If the port cannot be opened.
        """
        if self.is_open:
            return

        logger.info(f"Opening {self.port} at {self.baudrate} baud")
        try:
            reader, writer = await serial_asyncio.open_serial_connection(
                url=self.port,
                baudrate=self.baudrate,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
            )
        except (serial.SerialException, OSError) as e:
            raise TransportError(f"Error opening {self.port}: {e}", port=self.port) from e

        self.attach(reader, writer)

    def attach(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        """Start serving an already opened stream pair."""
        self._reader = reader
        self._writer = writer
        self._read_task = asyncio.create_task(self._read_loop(), name="cashcode-serial-reader")

    async def _read_loop(self) -> None:
        try:
            while True:
                chunk = await self._reader.read(READ_CHUNK_SIZE)
                if not chunk:
                    logger.warning(f"Serial stream {self.port} closed")
                    return

                # Let the rest of the frame land before draining
                await asyncio.sleep(self.settle_delay)
                data = chunk + await self._drain()

                logger.debug(f"RX: {data.hex(' ').upper()}")
                self._dispatch(data)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Receive error: {e}")

    async def _drain(self) -> bytes:
        """Read whatever is already buffered, without waiting for more."""
        try:
            return await asyncio.wait_for(
                self._reader.read(READ_CHUNK_SIZE),
                timeout=DRAIN_TIMEOUT_S,
            )
        except asyncio.TimeoutError:
            return b''

    def _dispatch(self, data: bytes) -> None:
        if self._handler is None:
            logger.debug(f"Dropping {len(data)} unsolicited bytes")
            return
        self._handler(data)

    def write(self, data: bytes) -> None:
        """
        Write raw bytes to the port.

        Raises:
            PortNotOpenError: If the port is closed.
        """
        if not self.is_open:
            raise PortNotOpenError("Com port is not open", port=self.port)
        logger.debug(f"TX: {data.hex(' ').upper()}")
        self._writer.write(data)

    async def close(self) -> None:
        """Close the port; closing an already closed port is a no-op."""
        read_task, self._read_task = self._read_task, None
        if read_task is not None:
            read_task.cancel()
            try:
                await read_task
            except asyncio.CancelledError:
                pass

        writer, self._writer = self._writer, None
        self._reader = None
        if writer is None:
            return
        writer.close()
        try:
            await writer.wait_closed()
        except Exception as e:
            logger.debug(f"Close error (ignored): {e}")
