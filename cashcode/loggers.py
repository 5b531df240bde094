"""
Logging setup for the bill validator driver.

Driver modules only call ``logging.getLogger(__name__)``. Handlers are
attached once, to the ``cashcode`` package logger, by ``get_logger`` or
``configure_logging``:
- colored console output
- optional size-rotated log file
- optional Loki push, labelled with the app and the serial port
"""

import logging
import time
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING, Final, Optional, Union

import colorlog
import httpx

if TYPE_CHECKING:
    from .settings import Settings


PACKAGE_LOGGER: Final[str] = "cashcode"

LOG_FORMAT: Final[str] = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
CONSOLE_FORMAT: Final[str] = (
    "%(log_color)s%(asctime)s | %(levelname)-8s%(reset)s | %(name)s | %(message)s"
)
DATE_FORMAT: Final[str] = "%Y-%m-%d %H:%M:%S"

ROTATE_MAX_BYTES: Final[int] = 5 * 1024 * 1024
ROTATE_BACKUPS: Final[int] = 3
LOKI_TIMEOUT_S: Final[float] = 2.0

LEVEL_COLORS: Final[dict[str, str]] = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "bold_red",
}


def loki_payload(labels: dict[str, str], message: str) -> dict:
    """Build a Loki push body carrying one line."""
    return {
        "streams": [
            {
                "stream": labels,
                "values": [[str(time.time_ns()), message]],
            }
        ]
    }


class LokiHandler(logging.Handler):
    """
    Pushes each record to a Loki endpoint.

    The level name is added to the static labels of every line. Push
    failures go through ``handleError`` so logging never raises into the
    driver.
    """

    def __init__(self, url: str, labels: dict[str, str], timeout: float = LOKI_TIMEOUT_S) -> None:
        super().__init__()
        self.url = url
        self.labels = dict(labels)
        self._client = httpx.Client(timeout=timeout)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            labels = {**self.labels, "level": record.levelname}
            response = self._client.post(self.url, json=loki_payload(labels, self.format(record)))
            response.raise_for_status()
        except Exception:
            self.handleError(record)

    def close(self) -> None:
        self._client.close()
        super().close()


def get_logger(
    name: str = PACKAGE_LOGGER,
    app: str = "cashcode",
    log_file: Optional[Union[str, Path]] = None,
    level: Union[int, str] = logging.INFO,
    loki_url: Optional[str] = None,
    port: Optional[str] = None,
) -> logging.Logger:
    """
    Attach console, file and Loki handlers to a logger.

    Args:
        name: Logger to configure; the package logger covers every module.
        app: ``app`` label for Loki.
        log_file: Rotating log file, or None for console only.
        level: Logging level.
        loki_url: Loki push endpoint, or None to disable.
        port: Serial port, sent as the ``port`` label for Loki.

    Returns:
        The configured logger. Calling again for a logger that already has
        handlers only updates its level.
    """
    log = logging.getLogger(name)
    log.setLevel(level)
    if log.handlers:
        return log

    console = logging.StreamHandler()
    console.setFormatter(colorlog.ColoredFormatter(
        CONSOLE_FORMAT,
        datefmt=DATE_FORMAT,
        log_colors=LEVEL_COLORS,
    ))
    log.addHandler(console)

    plain = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        rotating = RotatingFileHandler(
            log_file,
            maxBytes=ROTATE_MAX_BYTES,
            backupCount=ROTATE_BACKUPS,
            encoding="utf-8",
        )
        rotating.setFormatter(plain)
        log.addHandler(rotating)

    if loki_url:
        labels = {"app": app}
        if port:
            labels["port"] = port
        loki = LokiHandler(loki_url, labels)
        loki.setFormatter(plain)
        log.addHandler(loki)

    return log


def configure_logging(settings: "Settings") -> logging.Logger:
    """Configure the package logger from driver settings."""
    return get_logger(
        PACKAGE_LOGGER,
        app=settings.logging.app,
        log_file=settings.logging.log_file,
        level=settings.logging.level,
        loki_url=settings.logging.loki_url,
        port=settings.serial.port,
    )
