"""
CRC16 calculation for CCNET frames.

Reflected CCITT algorithm: polynomial 0x08408, seed 0, bits processed
least-significant first. The checksum is transmitted little-endian.
"""

from .constants import CRC_POLYNOMIAL


def crc16(data: bytes) -> int:
    """
    Calculate the CRC16 of ``data`` as an integer.

    Args:
        data: Bytes to checksum.

    Returns:
        16-bit checksum value.
    """
    crc: int = 0

    for byte in data:
        crc ^= byte
        for _ in range(8):
            if crc & 0x0001:
                crc = (crc >> 1) ^ CRC_POLYNOMIAL
            else:
                crc = crc >> 1

    return crc


def calculate_crc16(data: bytes) -> bytes:
    """
    Calculate the CRC16 of ``data`` in wire order.

    Example:
        >>> calculate_crc16(bytes([0x02, 0x03, 0x06, 0x33])).hex()
        'da81'
    """
    return crc16(data).to_bytes(2, byteorder='little')


def append_crc(data: bytes) -> bytes:
    """Return ``data`` followed by its two CRC bytes."""
    return data + calculate_crc16(data)


def verify_crc16(frame: bytes) -> bool:
    """
    Check the trailing two CRC bytes of a complete frame.

    The checksum is recomputed over everything except the last two bytes
    and compared with them.

    Args:
        frame: Frame including its CRC.

    Returns:
        True if the CRC matches, False otherwise (including frames too
        short to carry any checksummed byte).
    """
    if len(frame) < 3:
        return False
    return calculate_crc16(frame[:-2]) == frame[-2:]
