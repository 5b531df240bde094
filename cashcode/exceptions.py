"""
Custom exceptions for the bill validator driver.

Device and protocol faults are reported as values (see ``value_objects`` and
``errors``); the exceptions below cover misuse, configuration problems and
the opt-in ``OperationResult.raise_for_fault``.
"""

from typing import Any, Optional


class CashCodeError(Exception):
    """Base exception for all driver errors."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        """
        Initialize the exception.

        Args:
            message: Human-readable error message.
            code: Optional error code for programmatic handling.
            details: Optional additional error details.
        """
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(CashCodeError):
    """Invalid settings (unsupported baudrate, malformed bill table...)."""

    pass


class TransportError(CashCodeError):
    """Base exception for byte-channel errors."""

    def __init__(
        self,
        message: str,
        port: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.port = port
        if port:
            self.details["port"] = port


class PortNotOpenError(TransportError):
    """Write attempted on a transport that is not open."""

    pass


class FrameTooLongError(CashCodeError):
    """Command payload exceeds what a single frame can carry."""

    def __init__(self, message: str, size: int = 0, limit: int = 0, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.details["size"] = size
        self.details["limit"] = limit


class FaultError(CashCodeError):
    """A device, protocol or handshake fault raised on request."""

    def __init__(self, fault: Any, **kwargs: Any) -> None:
        super().__init__(fault.message, code=str(fault.code), **kwargs)
        self.fault = fault
        self.details["name"] = fault.name
