#!/usr/bin/env python3
"""
CashCode Bill Validator Driver - Command-line entry point.

Usage:
    cashcode-validator [--port /dev/ttyUSB0] [--baudrate 9600] [--debug]
                       [--bill-table table.json] [--log-file path]
                       [--loki-url url] [--max-total N]

Features:
    - Power-up handshake and bill acceptance with escrow
    - Running total of accepted bills, with an optional ceiling
    - Cassette and fault notifications
    - Graceful shutdown on Ctrl+C / SIGTERM
    - Debug mode with HEX packet logging
"""

import argparse
import asyncio
import logging
import signal
import sys
from dataclasses import replace
from typing import Optional

from .errors import FaultCode
from .events import BillEvent, BillStatus, CassetteEvent, CassetteStatus, StackingEvent
from .exceptions import CashCodeError
from .loggers import configure_logging
from .session import DeviceSession
from .settings import LoggingSettings, SerialSettings, Settings, load_bill_table


logger = logging.getLogger(__name__)


class BillCounter:
    """
    Observer set used by the CLI.

    Keeps a running total of accepted bills and vetoes stacking once
    ``max_total`` would be exceeded.
    """

    def __init__(self, max_total: Optional[int] = None) -> None:
        self.max_total = max_total
        self.total = 0

    def on_stacking(self, event: StackingEvent) -> None:
        if self.max_total is not None and self.total + event.value > self.max_total:
            print(f"Returning bill {event.value}: total would exceed {self.max_total}")
            event.cancel = True

    def on_bill(self, event: BillEvent) -> None:
        if event.status == BillStatus.ACCEPTED:
            self.total += event.value
            print(f"Bill accepted: {event.value} (total {self.total})")
        else:
            print(f"Bill rejected: {event.reason}")

    def on_cassette(self, event: CassetteEvent) -> None:
        if event.status == CassetteStatus.REMOVED:
            print("Drop cassette removed")
        else:
            print("Drop cassette back in place")

    def on_fault(self, fault: FaultCode) -> None:
        print(f"Fault: {fault}")

    def attach(self, session: DeviceSession) -> None:
        session.on_bill_stacking(self.on_stacking)
        session.on_bill_received(self.on_bill)
        session.on_cassette_status(self.on_cassette)
        session.on_fault(self.on_fault)


async def main(settings: Settings, max_total: Optional[int] = None) -> int:
    """
    Main entry point.

    Returns:
        Exit code (0 for success, 1 for error).
    """
    session = DeviceSession.for_serial_port(settings)
    counter = BillCounter(max_total)
    counter.attach(session)

    print(f"Connecting to bill validator ({settings.serial.port})...")
    result = await session.connect()
    if not result:
        print(f"Connection failed: {result.fault}")
        return 1

    try:
        result = await session.start_listening()
        if not result:
            print(f"Power-up failed: {result.fault}")
            return 1
        if session.identification is not None:
            print(f"Device: {session.identification}")

        result = await session.enable()
        if not result:
            print(f"Enabling bill acceptance failed: {result.fault}")
            return 1

        print("Bill acceptance enabled. Waiting for bills...")
        print("Press Ctrl+C to exit.\n")

        shutdown_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, shutdown_event.set)
            except NotImplementedError:
                # Windows doesn't support add_signal_handler
                pass

        await shutdown_event.wait()
        logger.info("Shutdown requested")
        print("\nStopping...")
        return 0
    finally:
        await session.dispose()
        print(f"Disconnected. Total accepted: {counter.total}")


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog='cashcode-validator',
        description='CashCode Bill Validator Driver',
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        '--port', '-p',
        type=str,
        default='/dev/ttyUSB0',
        help='Serial port path',
    )
    parser.add_argument(
        '--baudrate', '-b',
        type=int,
        choices=(9600, 19200),
        default=9600,
        help='Serial baudrate',
    )
    parser.add_argument(
        '--debug', '-d',
        action='store_true',
        help='Enable debug logging (shows HEX dump of all TX/RX packets)',
    )
    parser.add_argument(
        '--bill-table',
        type=str,
        default=None,
        help='JSON file mapping bill codes to denominations',
    )
    parser.add_argument(
        '--log-file',
        type=str,
        default=None,
        help='Rotating log file path',
    )
    parser.add_argument(
        '--loki-url',
        type=str,
        default=None,
        help='Loki push endpoint',
    )
    parser.add_argument(
        '--max-total',
        type=int,
        default=None,
        help='Return bills once the accepted total would exceed this value',
    )
    return parser.parse_args(argv)


def build_settings(args: argparse.Namespace) -> Settings:
    """
    Turn parsed arguments into driver settings.

    Raises:
        ConfigurationError: If the bill table cannot be loaded.
    """
    settings = Settings(
        serial=SerialSettings(port=args.port, baudrate=args.baudrate),
        logging=LoggingSettings(
            level="DEBUG" if args.debug else "INFO",
            log_file=args.log_file,
            loki_url=args.loki_url,
        ),
    )
    if args.bill_table:
        settings = replace(settings, bill_table=load_bill_table(args.bill_table))
    return settings


def run(argv: Optional[list[str]] = None) -> None:
    """Console script entry point."""
    args = parse_args(argv)

    try:
        settings = build_settings(args)
    except CashCodeError as e:
        print(f"Configuration error: {e.message}", file=sys.stderr)
        sys.exit(1)

    configure_logging(settings)

    try:
        exit_code = asyncio.run(main(settings, args.max_total))
        sys.exit(exit_code)
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        sys.exit(0)


if __name__ == "__main__":
    run()
