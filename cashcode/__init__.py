"""
CashCode Bill Validator Driver Package.

Async driver for CashCode NET (CCNET) compatible bill validators.

Example:
    import asyncio
    from cashcode import DeviceSession, get_settings

    async def on_bill(event):
        print(f"Bill {event.status.value}: {event.value or event.reason}")

    async def main():
        session = DeviceSession.for_serial_port(get_settings())
        session.on_bill_received(on_bill)

        async with session:
            await session.start_listening()
            await session.enable()
            await asyncio.Future()  # Run forever

    asyncio.run(main())
"""

from .constants import (
    Command,
    DeviceState,
    GenericFailure,
    RejectionReason,
    DEFAULT_BILL_TABLE,
    DEFAULT_DEVICE_ADDRESS,
    get_state_name,
)
from .crc import (
    crc16,
    calculate_crc16,
    verify_crc16,
    append_crc,
)
from .exceptions import (
    CashCodeError,
    ConfigurationError,
    TransportError,
    PortNotOpenError,
    FrameTooLongError,
    FaultError,
)
from .errors import (
    FaultCategory,
    FaultCode,
    Faults,
    classify,
    rejection_reason,
)
from .packet import (
    CCNETPacket,
    FrameCodec,
)
from .value_objects import (
    AcceptanceState,
    ConnectionState,
    Identification,
    ListeningState,
    OperationResult,
    PowerState,
)
from .events import (
    BillEvent,
    BillStatus,
    CassetteEvent,
    CassetteStatus,
    EventDispatcher,
    StackingEvent,
)
from .transport import (
    ByteChannel,
    SerialTransport,
)
from .correlator import ResponseCorrelator
from .protocol import CCNETProtocol
from .settings import (
    LoggingSettings,
    SerialSettings,
    Settings,
    TimingSettings,
    get_settings,
    load_bill_table,
)
from .state_machine import PollLoop
from .session import DeviceSession
from .loggers import configure_logging, get_logger


__version__ = "1.0.0"

__all__ = [
    # Constants
    'Command',
    'DeviceState',
    'GenericFailure',
    'RejectionReason',
    'DEFAULT_BILL_TABLE',
    'DEFAULT_DEVICE_ADDRESS',
    'get_state_name',
    # CRC
    'crc16',
    'calculate_crc16',
    'verify_crc16',
    'append_crc',
    # Exceptions
    'CashCodeError',
    'ConfigurationError',
    'TransportError',
    'PortNotOpenError',
    'FrameTooLongError',
    'FaultError',
    # Faults
    'FaultCategory',
    'FaultCode',
    'Faults',
    'classify',
    'rejection_reason',
    # Framing
    'CCNETPacket',
    'FrameCodec',
    # Value objects
    'AcceptanceState',
    'ConnectionState',
    'Identification',
    'ListeningState',
    'OperationResult',
    'PowerState',
    # Events
    'BillEvent',
    'BillStatus',
    'CassetteEvent',
    'CassetteStatus',
    'EventDispatcher',
    'StackingEvent',
    # Transport / protocol
    'ByteChannel',
    'SerialTransport',
    'ResponseCorrelator',
    'CCNETProtocol',
    # Settings
    'LoggingSettings',
    'SerialSettings',
    'Settings',
    'TimingSettings',
    'get_settings',
    'load_bill_table',
    # Driver
    'PollLoop',
    'DeviceSession',
    'configure_logging',
    'get_logger',
]
