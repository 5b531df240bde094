"""
CCNET Protocol Constants and Enumerations.

Commands, POLL status codes, rejection reasons and generic failure sub-codes
used by CashCode-compatible bill validators. All byte values are IntEnum
members so they compare equal to raw frame bytes.
"""

from enum import IntEnum
from typing import Final


# Frame layout (SYNC ADR LNG CMD DATA CRC_LO CRC_HI)
SYNC_BYTE: Final[int] = 0x02
DEFAULT_DEVICE_ADDRESS: Final[int] = 0x03  # Bill Validator
CRC_POLYNOMIAL: Final[int] = 0x08408  # reversed CCITT
FRAME_OVERHEAD: Final[int] = 6  # SYNC + ADR + LNG + CMD + CRC(2)
MAX_PACKET_LENGTH: Final[int] = 250
MAX_DATA_LENGTH: Final[int] = 244
MIN_PACKET_LENGTH: Final[int] = 6

# Offsets inside a received frame
STATUS_OFFSET: Final[int] = 3
DETAIL_OFFSET: Final[int] = 4

# Timing
POLL_INTERVAL_S: Final[float] = 0.2
RESPONSE_TIMEOUT_S: Final[float] = 10.0
SETTLE_DELAY_S: Final[float] = 0.1

SUPPORTED_BAUDRATES: Final[tuple[int, ...]] = (9600, 19200)

# Data bytes for the handshake / acceptance commands
SECURITY_NONE: Final[bytes] = bytes([0x00, 0x00, 0x00])
ALL_BILL_TYPES_WITH_ESCROW: Final[bytes] = bytes([0xFF] * 6)
NO_BILL_TYPES: Final[bytes] = bytes(6)


class Command(IntEnum):
    """Commands sent from the controller to the bill validator."""
    ACK = 0x00
    RESET = 0x30
    GET_STATUS = 0x31
    SET_SECURITY = 0x32
    POLL = 0x33
    ENABLE_BILL_TYPES = 0x34
    STACK = 0x35
    RETURN = 0x36
    IDENTIFICATION = 0x37
    HOLD = 0x38
    NAK = 0xFF


class DeviceState(IntEnum):
    """
    Status byte returned in response to POLL (offset 3).

    0x30 is the ILLEGAL COMMAND answer rather than a state, but it travels
    in the same position and is classified alongside the failures.
    """
    POWER_UP = 0x10
    POWER_UP_WITH_BILL_IN_VALIDATOR = 0x11
    POWER_UP_WITH_BILL_IN_STACKER = 0x12
    INITIALIZE = 0x13
    IDLING = 0x14
    ACCEPTING = 0x15
    STACKING = 0x17
    RETURNING = 0x18
    UNIT_DISABLED = 0x19
    HOLDING = 0x1A
    DEVICE_BUSY = 0x1B
    REJECTING = 0x1C

    ILLEGAL_COMMAND = 0x30

    DROP_CASSETTE_FULL = 0x41
    DROP_CASSETTE_OUT_OF_POSITION = 0x42
    VALIDATOR_JAMMED = 0x43
    DROP_CASSETTE_JAMMED = 0x44
    CHEATED = 0x45
    PAUSE = 0x46
    GENERIC_FAILURE = 0x47

    ESCROW_POSITION = 0x80
    BILL_STACKED = 0x81
    BILL_RETURNED = 0x82


class GenericFailure(IntEnum):
    """Sub-code carried at offset 4 when the status is GENERIC_FAILURE."""
    STACK_MOTOR = 0x50
    TRANSPORT_MOTOR_SPEED = 0x51
    TRANSPORT_MOTOR = 0x52
    ALIGNING_MOTOR = 0x53
    INITIAL_CASSETTE_STATUS = 0x54
    OPTIC_CANAL = 0x55
    MAGNETIC_CANAL = 0x56
    CAPACITANCE_CANAL = 0x5F


class RejectionReason(IntEnum):
    """Extended data for the REJECTING state (offset 4)."""
    INSERTION = 0x60
    MAGNETIC = 0x61
    REMAINED_BILL_IN_HEAD = 0x62
    MULTIPLYING = 0x63
    CONVEYING = 0x64
    IDENTIFICATION1 = 0x65
    VERIFICATION = 0x66
    OPTIC = 0x67
    INHIBIT = 0x68
    CAPACITY = 0x69
    OPERATION = 0x6A
    LENGTH = 0x6C


# Placeholder euro table (bill code -> whole currency units). Not
# authoritative: the real table depends on the firmware's currency set.
DEFAULT_BILL_TABLE: Final[dict[int, int]] = {
    0x02: 5,
    0x03: 10,
    0x04: 20,
    0x05: 50,
    0x06: 100,
    0x07: 200,
    0x08: 500,
}


STATE_NAMES: dict[int, str] = {
    state.value: state.name for state in DeviceState
}


def get_state_name(state_code: int | None) -> str:
    """Get human-readable state name from state code."""
    if state_code is None:
        return "UNKNOWN"
    return STATE_NAMES.get(state_code, f"UNKNOWN(0x{state_code:02X})")
