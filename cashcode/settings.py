"""
Driver settings.

Frozen dataclasses grouped by concern, plus a process-wide default
instance and a loader for the denomination (bill) table.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from .constants import (
    DEFAULT_BILL_TABLE,
    POLL_INTERVAL_S,
    RESPONSE_TIMEOUT_S,
    SETTLE_DELAY_S,
    SUPPORTED_BAUDRATES,
)
from .exceptions import ConfigurationError


# =============================================================================
# Configuration Classes
# =============================================================================


@dataclass(frozen=True)
class SerialSettings:
    """Serial port configuration (always 8N1)."""

    port: str = "/dev/ttyUSB0"
    baudrate: int = 9600

    def __post_init__(self) -> None:
        if self.baudrate not in SUPPORTED_BAUDRATES:
            raise ConfigurationError(
                f"Unsupported baudrate {self.baudrate}; expected one of {SUPPORTED_BAUDRATES}",
                details={"baudrate": self.baudrate},
            )


@dataclass(frozen=True)
class TimingSettings:
    """Protocol timing, in seconds."""

    poll_interval_s: float = POLL_INTERVAL_S
    response_timeout_s: float = RESPONSE_TIMEOUT_S
    settle_delay_s: float = SETTLE_DELAY_S


@dataclass(frozen=True)
class LoggingSettings:
    """Where driver logs go."""

    level: str = "INFO"
    app: str = "cashcode"
    log_file: Optional[str] = None
    loki_url: Optional[str] = None


# =============================================================================
# Main Settings
# =============================================================================


@dataclass
class Settings:
    """
    Main driver settings.

    Aggregates all configuration sections.

    Attributes:
        bill_table: Bill code -> denomination value.
        legacy_zero_trim: Strip trailing zero bytes from encoded frames.
    """

    serial: SerialSettings = field(default_factory=SerialSettings)
    timing: TimingSettings = field(default_factory=TimingSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    bill_table: dict[int, int] = field(default_factory=lambda: dict(DEFAULT_BILL_TABLE))
    legacy_zero_trim: bool = False


# =============================================================================
# Bill Table Loading
# =============================================================================


def _parse_code(key: str) -> int:
    key = key.strip()
    base = 16 if key.lower().startswith("0x") else 10
    code = int(key, base)
    if not 0 <= code <= 0xFF:
        raise ValueError(f"bill code {key} out of byte range")
    return code


def load_bill_table(path: Union[str, Path]) -> dict[int, int]:
    """
    Load a bill table from JSON.

    The file holds one object mapping bill codes (decimal or ``0x`` hex
    strings) to denomination values, e.g. ``{"0x02": 10, "0x03": 50}``.

    Raises:
        ConfigurationError: If the file is missing or malformed.
    """
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Cannot read bill table {path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigurationError(f"Bill table {path} must be a JSON object")

    table: dict[int, int] = {}
    for key, value in raw.items():
        try:
            table[_parse_code(key)] = int(value)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(
                f"Invalid bill table entry {key!r}: {value!r}",
                details={"path": str(path)},
            ) from e
    return table


# =============================================================================
# Settings Singleton
# =============================================================================


_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Get driver settings singleton.

    Returns:
        Settings instance.
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
