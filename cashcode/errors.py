"""
Fault taxonomy and error catalog.

Maps POLL status bytes (and generic-failure sub-codes) to structured
``FaultCode`` values, and resolves bill rejection reasons to text.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Final, Optional

from .constants import (
    DETAIL_OFFSET,
    STATUS_OFFSET,
    DeviceState,
    GenericFailure,
    RejectionReason,
)


class FaultCategory(str, Enum):
    """Broad family a fault belongs to."""

    TRANSPORT = "transport"
    PROTOCOL = "protocol"
    HANDSHAKE = "handshake"
    DEVICE = "device"


@dataclass(frozen=True)
class FaultCode:
    """
    Structured fault value.

    Attributes:
        code: Numeric identity from the error catalog.
        name: Stable symbolic name.
        category: Fault family.
        message: Human-readable description.
    """

    code: int
    name: str
    category: FaultCategory
    message: str

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "code": self.code,
            "name": self.name,
            "category": self.category.value,
            "message": self.message,
        }

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


def _fault(code: int, name: str, category: FaultCategory, message: str) -> FaultCode:
    return FaultCode(code=code, name=name, category=category, message=message)


class Faults:
    """Every fault the driver can report, keyed by catalog number."""

    UNKNOWN = _fault(
        100000, "UNKNOWN", FaultCategory.PROTOCOL, "Unknown error")

    # Transport
    PORT_OPEN_FAILED = _fault(
        100010, "PORT_OPEN_FAILED", FaultCategory.TRANSPORT,
        "Error opening Com port")
    PORT_NOT_OPEN = _fault(
        100020, "PORT_NOT_OPEN", FaultCategory.TRANSPORT,
        "Com port is not open")

    # Protocol
    OPERATION_ORDER = _fault(
        100030, "OPERATION_ORDER", FaultCategory.PROTOCOL,
        "Error method of accepting bills. You must call the StartListening method.")
    NO_RESPONSE = _fault(
        100005, "NO_RESPONSE", FaultCategory.PROTOCOL,
        "Mismatch of the checksum of the received message or no response. "
        "The device may not be connected to the COM port.")

    # Handshake steps, one code per step
    RESET_NOT_ACKNOWLEDGED = _fault(
        100050, "RESET_NOT_ACKNOWLEDGED", FaultCategory.HANDSHAKE,
        "ACK not received from bill acceptor after RESET.")
    SECURITY_NOT_ACKNOWLEDGED = _fault(
        100051, "SECURITY_NOT_ACKNOWLEDGED", FaultCategory.HANDSHAKE,
        "ACK not received from bill acceptor after SET SECURITY.")
    ENABLE_NOT_ACKNOWLEDGED = _fault(
        100052, "ENABLE_NOT_ACKNOWLEDGED", FaultCategory.HANDSHAKE,
        "ACK not received from bill acceptor after ENABLE BILL TYPES.")
    DISABLE_NOT_ACKNOWLEDGED = _fault(
        100053, "DISABLE_NOT_ACKNOWLEDGED", FaultCategory.HANDSHAKE,
        "ACK not received from bill acceptor after disabling bill types.")
    HOLD_NOT_ACKNOWLEDGED = _fault(
        100054, "HOLD_NOT_ACKNOWLEDGED", FaultCategory.HANDSHAKE,
        "ACK not received from bill acceptor after HOLD.")
    INITIALIZE_NOT_RECEIVED = _fault(
        100060, "INITIALIZE_NOT_RECEIVED", FaultCategory.HANDSHAKE,
        "The command INITIALIZE was not received from the bill acceptor.")
    STATUS_CHECK_FAILED = _fault(
        100065, "STATUS_CHECK_FAILED", FaultCategory.HANDSHAKE,
        "Error checking the status of bill acceptor. GET STATUS reported "
        "non-zero bill type or security bytes.")

    # Device
    ILLEGAL_COMMAND = _fault(
        100040, "ILLEGAL_COMMAND", FaultCategory.DEVICE,
        "The bill acceptor answered ILLEGAL COMMAND.")
    CASSETTE_OUT_OF_POSITION = _fault(
        100070, "CASSETTE_OUT_OF_POSITION", FaultCategory.DEVICE,
        "Error checking the status of bill acceptor. Stacker removed.")
    CASSETTE_FULL = _fault(
        100080, "CASSETTE_FULL", FaultCategory.DEVICE,
        "Error checking the status of the bill acceptor. The stacker is full.")
    VALIDATOR_JAMMED = _fault(
        100090, "VALIDATOR_JAMMED", FaultCategory.DEVICE,
        "Error checking the status of a bill acceptor. A bill is stuck in the validator.")
    CASSETTE_JAMMED = _fault(
        100100, "CASSETTE_JAMMED", FaultCategory.DEVICE,
        "Error checking the status of a bill acceptor. A bill is stuck in the stacker.")
    CHEATED = _fault(
        100110, "CHEATED", FaultCategory.DEVICE,
        "Error checking the status of a bill acceptor. Fake bill.")
    PAUSE = _fault(
        100120, "PAUSE", FaultCategory.DEVICE,
        "Error checking the status of a bill acceptor. The previous bill has "
        "not yet entered the stack and is in the recognition engine.")

    # Generic failure sub-faults
    STACK_MOTOR_FAILURE = _fault(
        100130, "STACK_MOTOR_FAILURE", FaultCategory.DEVICE,
        "Error of the bill acceptor. Failure during the operation of the "
        "mechanism of the stacker.")
    TRANSPORT_MOTOR_SPEED_FAILURE = _fault(
        100140, "TRANSPORT_MOTOR_SPEED_FAILURE", FaultCategory.DEVICE,
        "Error of the bill acceptor. Failure in the transfer speed of the "
        "bill to the stacker.")
    TRANSPORT_MOTOR_FAILURE = _fault(
        100150, "TRANSPORT_MOTOR_FAILURE", FaultCategory.DEVICE,
        "Error in the bill acceptor. The transfer of the bill to the stacker failed.")
    ALIGNING_MOTOR_FAILURE = _fault(
        100160, "ALIGNING_MOTOR_FAILURE", FaultCategory.DEVICE,
        "Error in the bill acceptor. Failure of the bill leveling mechanism.")
    INITIAL_CASSETTE_STATUS_FAILURE = _fault(
        100170, "INITIAL_CASSETTE_STATUS_FAILURE", FaultCategory.DEVICE,
        "Error of the bill acceptor. Failure in the work of the stacker.")
    OPTIC_CANAL_FAILURE = _fault(
        100180, "OPTIC_CANAL_FAILURE", FaultCategory.DEVICE,
        "Error of the bill acceptor. Malfunction of optical sensors.")
    MAGNETIC_CANAL_FAILURE = _fault(
        100190, "MAGNETIC_CANAL_FAILURE", FaultCategory.DEVICE,
        "Error of the bill acceptor. The inductance channel failed.")
    CAPACITANCE_CANAL_FAILURE = _fault(
        100200, "CAPACITANCE_CANAL_FAILURE", FaultCategory.DEVICE,
        "Error of the bill acceptor. Malfunction of the stack checker channel.")
    GENERIC_FAILURE = _fault(
        100210, "GENERIC_FAILURE", FaultCategory.DEVICE,
        "Error of the bill acceptor. Generic failure with an unrecognised sub-code.")


STATUS_FAULTS: Final[dict[int, FaultCode]] = {
    DeviceState.ILLEGAL_COMMAND: Faults.ILLEGAL_COMMAND,
    DeviceState.DROP_CASSETTE_FULL: Faults.CASSETTE_FULL,
    DeviceState.DROP_CASSETTE_OUT_OF_POSITION: Faults.CASSETTE_OUT_OF_POSITION,
    DeviceState.VALIDATOR_JAMMED: Faults.VALIDATOR_JAMMED,
    DeviceState.DROP_CASSETTE_JAMMED: Faults.CASSETTE_JAMMED,
    DeviceState.CHEATED: Faults.CHEATED,
    DeviceState.PAUSE: Faults.PAUSE,
}

GENERIC_FAILURE_FAULTS: Final[dict[int, FaultCode]] = {
    GenericFailure.STACK_MOTOR: Faults.STACK_MOTOR_FAILURE,
    GenericFailure.TRANSPORT_MOTOR_SPEED: Faults.TRANSPORT_MOTOR_SPEED_FAILURE,
    GenericFailure.TRANSPORT_MOTOR: Faults.TRANSPORT_MOTOR_FAILURE,
    GenericFailure.ALIGNING_MOTOR: Faults.ALIGNING_MOTOR_FAILURE,
    GenericFailure.INITIAL_CASSETTE_STATUS: Faults.INITIAL_CASSETTE_STATUS_FAILURE,
    GenericFailure.OPTIC_CANAL: Faults.OPTIC_CANAL_FAILURE,
    GenericFailure.MAGNETIC_CANAL: Faults.MAGNETIC_CANAL_FAILURE,
    GenericFailure.CAPACITANCE_CANAL: Faults.CAPACITANCE_CANAL_FAILURE,
}

REJECTION_MESSAGES: Final[dict[int, str]] = {
    RejectionReason.INSERTION: "Rejecting due to Insertion",
    RejectionReason.MAGNETIC: "Rejecting due to Magnetic",
    RejectionReason.REMAINED_BILL_IN_HEAD: "Rejecting due to Remained bill in head",
    RejectionReason.MULTIPLYING: "Rejecting due to Multiplying",
    RejectionReason.CONVEYING: "Rejecting due to Conveying",
    RejectionReason.IDENTIFICATION1: "Rejecting due to Identification1",
    RejectionReason.VERIFICATION: "Rejecting due to Verification",
    RejectionReason.OPTIC: "Rejecting due to Optic",
    RejectionReason.INHIBIT: "Rejecting due to Inhibit",
    RejectionReason.CAPACITY: "Rejecting due to Capacity",
    RejectionReason.OPERATION: "Rejecting due to Operation",
    RejectionReason.LENGTH: "Rejecting due to Length",
}


def classify(response: bytes) -> Optional[FaultCode]:
    """
    Classify a POLL-style response.

    Args:
        response: Raw frame as received (status at offset 3).

    Returns:
        The fault for error statuses, None for lifecycle statuses or
        responses too short to carry a status byte.
    """
    if len(response) <= STATUS_OFFSET:
        return None

    status = response[STATUS_OFFSET]
    if status == DeviceState.GENERIC_FAILURE:
        if len(response) <= DETAIL_OFFSET:
            return Faults.GENERIC_FAILURE
        return GENERIC_FAILURE_FAULTS.get(response[DETAIL_OFFSET], Faults.GENERIC_FAILURE)

    return STATUS_FAULTS.get(status)


def rejection_reason(code: int | None) -> str:
    """Text for a REJECTING detail byte; unknown codes are reported by value."""
    if code is None:
        return "Rejecting due to unknown reason"
    return REJECTION_MESSAGES.get(code, f"Rejecting due to unknown reason (0x{code:02X})")
