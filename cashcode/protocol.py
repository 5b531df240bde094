"""
CCNET Protocol Layer.

One coroutine per CCNET command. Each returns the raw response frame as
received (status byte at offset 3), or ``b''`` when no valid response
arrived. ACK and NAK are fire-and-forget.

This layer sits between the correlator and the session/poll loop.
"""

import logging

from .constants import (
    ALL_BILL_TYPES_WITH_ESCROW,
    NO_BILL_TYPES,
    SECURITY_NONE,
    Command,
)
from .correlator import ResponseCorrelator
from .packet import FrameCodec


logger = logging.getLogger(__name__)


class CCNETProtocol:
    """
    Protocol layer for CCNET communication.

    Attributes:
        codec: Frame encoder/validator.
    """

    def __init__(self, correlator: ResponseCorrelator, codec: FrameCodec) -> None:
        self._correlator = correlator
        self.codec = codec

    async def request(self, command: int, data: bytes = b'') -> bytes:
        """
        Send a command and return its validated response.

        Args:
            command: Command byte.
            data: Optional command data.

        Returns:
            Response frame, or ``b''`` on timeout or CRC mismatch.
        """
        response = await self._correlator.send(self.codec.encode(command, data))
        if not response:
            return b''
        if not self.codec.validate(response):
            logger.warning(
                f"CRC mismatch in response to 0x{command:02X}: {response.hex(' ').upper()}"
            )
            return b''
        return response

    async def ack(self) -> None:
        """Send ACK (acknowledgement) to device."""
        await self._correlator.notify(self.codec.encode_ack())

    async def nak(self) -> None:
        """Send NAK (negative acknowledgement) to device."""
        await self._correlator.notify(self.codec.encode_nak())

    async def poll(self) -> bytes:
        return await self.request(Command.POLL)

    async def reset(self) -> bytes:
        logger.info("Sending RESET command")
        return await self.request(Command.RESET)

    async def get_status(self) -> bytes:
        return await self.request(Command.GET_STATUS)

    async def set_security(self, mask: bytes = SECURITY_NONE) -> bytes:
        """Send SET SECURITY with a 3-byte mask (Y1-Y3)."""
        return await self.request(Command.SET_SECURITY, mask)

    async def identification(self) -> bytes:
        return await self.request(Command.IDENTIFICATION)

    async def enable_bill_types(self, mask: bytes = ALL_BILL_TYPES_WITH_ESCROW) -> bytes:
        """
        Send ENABLE BILL TYPES.

        Args:
            mask: 6 bytes, Y1-Y3 bill enable mask followed by Y4-Y6 escrow
                enable mask.
        """
        logger.info(f"Sending ENABLE BILL TYPES: {mask.hex(' ').upper()}")
        return await self.request(Command.ENABLE_BILL_TYPES, mask)

    async def disable_bill_types(self) -> bytes:
        return await self.enable_bill_types(NO_BILL_TYPES)

    async def stack(self) -> bytes:
        """Send STACK to accept the bill held in escrow."""
        logger.info("Sending STACK command")
        return await self.request(Command.STACK)

    async def return_bill(self) -> bytes:
        """Send RETURN to give back the bill held in escrow."""
        logger.info("Sending RETURN command")
        return await self.request(Command.RETURN)

    async def hold(self) -> bytes:
        """Send HOLD to extend the escrow timeout."""
        return await self.request(Command.HOLD)
