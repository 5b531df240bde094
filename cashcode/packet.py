"""
CCNET frame codec.

Packet Structure:
    SYNC (0x02) | ADR | LNG | CMD | DATA | CRC (2 bytes)

Where:
    - SYNC: Start of packet marker (always 0x02)
    - ADR: Device address (0x03 for Bill Validator)
    - LNG: Total packet length including SYNC, ADR, LNG, CMD, DATA, CRC,
      or 0 when that length would exceed 250
    - CMD: Command byte
    - DATA: Optional data bytes (at most 244)
    - CRC: CRC16 checksum (2 bytes, little-endian)
"""

from dataclasses import dataclass

from .constants import (
    Command,
    DEFAULT_DEVICE_ADDRESS,
    FRAME_OVERHEAD,
    MAX_DATA_LENGTH,
    MAX_PACKET_LENGTH,
    SYNC_BYTE,
)
from .crc import append_crc, verify_crc16
from .exceptions import FrameTooLongError


def frame_length(data_length: int) -> int:
    """Value of the LNG byte for a payload of ``data_length`` bytes."""
    length = data_length + FRAME_OVERHEAD
    if length > MAX_PACKET_LENGTH:
        return 0
    return length


def strip_trailing_zeros(frame: bytes) -> bytes:
    """
    Drop zero bytes from the tail of an encoded frame.

    Older host software shipped with this behaviour. It corrupts any frame
    whose CRC high byte happens to be 0x00, so it is only applied when the
    codec is created with ``legacy_zero_trim=True``.
    """
    return frame.rstrip(b'\x00')


@dataclass
class CCNETPacket:
    """
    Represents a CCNET protocol packet.

    Attributes:
        command: Command byte.
        data: Optional data bytes.
        address: Device address (default 0x03 for Bill Validator).
    """
    command: int
    data: bytes = b''
    address: int = DEFAULT_DEVICE_ADDRESS

    @property
    def length(self) -> int:
        """LNG field for this packet (0 on overflow)."""
        return frame_length(len(self.data))

    def to_bytes(self) -> bytes:
        """
        Serialize packet to bytes with CRC.

        Raises:
            FrameTooLongError: If the payload exceeds 244 bytes.
        """
        if len(self.data) > MAX_DATA_LENGTH:
            raise FrameTooLongError(
                f"Payload of {len(self.data)} bytes exceeds the "
                f"{MAX_DATA_LENGTH}-byte frame limit",
                size=len(self.data),
                limit=MAX_DATA_LENGTH,
            )

        packet = bytes([
            SYNC_BYTE,
            self.address,
            self.length,
            self.command,
        ]) + self.data

        return append_crc(packet)


class FrameCodec:
    """
    Stateless encoder/validator for CCNET frames.

    Attributes:
        address: Peripheral address written into every frame.
        legacy_zero_trim: Strip trailing zero bytes from encoded command
            frames for compatibility with legacy firmware tooling.
    """

    def __init__(
        self,
        address: int = DEFAULT_DEVICE_ADDRESS,
        legacy_zero_trim: bool = False,
    ) -> None:
        self.address = address
        self.legacy_zero_trim = legacy_zero_trim

    def encode(self, command: int, data: bytes = b'') -> bytes:
        """
        Encode a command frame.

        Args:
            command: Command byte.
            data: Optional command data (0..244 bytes).

        Returns:
            Wire bytes, trimmed only in legacy mode.
        """
        frame = CCNETPacket(command=command, data=bytes(data), address=self.address).to_bytes()
        if self.legacy_zero_trim:
            return strip_trailing_zeros(frame)
        return frame

    def encode_ack(self) -> bytes:
        """Fixed 6-byte ACK frame (never trimmed)."""
        return CCNETPacket(command=Command.ACK, address=self.address).to_bytes()

    def encode_nak(self) -> bytes:
        """Fixed 6-byte NAK frame (never trimmed)."""
        return CCNETPacket(command=Command.NAK, address=self.address).to_bytes()

    @staticmethod
    def validate(frame: bytes) -> bool:
        """Recompute the CRC over all but the last two bytes and compare."""
        return verify_crc16(frame)
