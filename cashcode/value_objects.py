"""
Value Objects for the bill validator driver.

Session state enums, the result type returned by lifecycle operations and
the decoded identification record.
"""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Optional

from .errors import FaultCode, Faults
from .exceptions import FaultError


# =============================================================================
# Session State Enums
# =============================================================================


class ConnectionState(Enum):
    """Whether the transport is open. Set only by connect/dispose."""

    DISCONNECTED = auto()
    CONNECTED = auto()


class PowerState(Enum):
    """Set to UP once by a successful power-up handshake."""

    DOWN = auto()
    UP = auto()


class ListeningState(Enum):
    """Whether the poll loop is scheduled."""

    STOPPED = auto()
    LISTENING = auto()


class AcceptanceState(Enum):
    """Mirrors the bill-type mask last sent to the device."""

    DISABLED = auto()
    ENABLED = auto()


# =============================================================================
# Operation Result
# =============================================================================


@dataclass(frozen=True)
class OperationResult:
    """
    Outcome of a lifecycle operation (connect, power up, enable, disable).

    Attributes:
        success: Whether the operation completed without a fault.
        fault: The fault that stopped or degraded the operation.
    """

    success: bool
    fault: Optional[FaultCode] = None

    @classmethod
    def ok(cls) -> "OperationResult":
        """Create a successful result."""
        return cls(success=True)

    @classmethod
    def failed(cls, fault: FaultCode) -> "OperationResult":
        """Create a failed result."""
        return cls(success=False, fault=fault)

    def __bool__(self) -> bool:
        return self.success

    def raise_for_fault(self) -> None:
        """Raise ``FaultError`` if the operation failed."""
        if not self.success:
            raise FaultError(self.fault or Faults.UNKNOWN)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        result: dict[str, Any] = {"success": self.success}
        if self.fault is not None:
            result["fault"] = self.fault.to_dict()
        return result


# =============================================================================
# Identification
# =============================================================================


@dataclass(frozen=True)
class Identification:
    """
    Decoded IDENTIFICATION payload.

    Attributes:
        part_number: Firmware/part number (15 ASCII bytes).
        serial_number: Factory serial number (12 ASCII bytes).
        asset_number: Asset number (7 raw bytes).
    """

    part_number: str = ""
    serial_number: str = ""
    asset_number: bytes = b''

    @classmethod
    def from_payload(cls, payload: bytes) -> "Identification":
        """Decode whatever fields ``payload`` is long enough to carry."""
        return cls(
            part_number=payload[0:15].decode('ascii', errors='ignore').strip(),
            serial_number=payload[15:27].decode('ascii', errors='ignore').strip(),
            asset_number=bytes(payload[27:34]),
        )

    def __str__(self) -> str:
        return f"{self.part_number} s/n {self.serial_number}".strip()
