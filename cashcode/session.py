"""
Bill Validator Session (Application Layer).

High-level async driver for CashCode-compatible bill validators. The
session owns the transport, the connection/power/listening/acceptance
state and the lock that serialises every command exchange with the poll
loop.

Example:
    import asyncio
    from cashcode import DeviceSession, get_settings

    async def main():
        session = DeviceSession.for_serial_port(get_settings())
        session.on_bill_received(lambda event: print(event))

        async with session:
            (await session.start_listening()).raise_for_fault()
            (await session.enable()).raise_for_fault()
            await asyncio.Future()

    asyncio.run(main())
"""

import asyncio
import logging
from typing import Optional

from .constants import STATUS_OFFSET
from .correlator import ResponseCorrelator
from .errors import FaultCode, Faults, classify
from .events import EventDispatcher, Observer
from .exceptions import TransportError
from .packet import FrameCodec
from .protocol import CCNETProtocol
from .settings import Settings, get_settings
from .state_machine import PollLoop
from .transport import ByteChannel, SerialTransport
from .value_objects import (
    AcceptanceState,
    ConnectionState,
    Identification,
    ListeningState,
    OperationResult,
    PowerState,
)


logger = logging.getLogger(__name__)


def _acknowledged(response: bytes) -> bool:
    """True if the response carries ACK (0x00) at the status offset."""
    return len(response) > STATUS_OFFSET and response[STATUS_OFFSET] == 0x00


class DeviceSession:
    """
    Async session with one bill validator.

    Lifecycle: ``connect`` -> ``power_up`` -> ``start_listening`` ->
    ``enable``; ``dispose`` tears everything down. Operations report
    faults through ``OperationResult`` instead of raising.

    Attributes:
        protocol: Command layer used by the session and the poll loop.
        events: Observer registry for bill, stacking, cassette and fault
            notifications.
    """

    def __init__(
        self,
        channel: ByteChannel,
        settings: Optional[Settings] = None,
        events: Optional[EventDispatcher] = None,
    ) -> None:
        settings = settings or get_settings()

        self._channel = channel
        self._correlator = ResponseCorrelator(channel, timeout=settings.timing.response_timeout_s)
        self.protocol = CCNETProtocol(
            self._correlator,
            FrameCodec(legacy_zero_trim=settings.legacy_zero_trim),
        )
        self.events = events or EventDispatcher()
        self._lock = asyncio.Lock()

        self._connection = ConnectionState.DISCONNECTED
        self._power = PowerState.DOWN
        self._listening = ListeningState.STOPPED
        self._acceptance = AcceptanceState.DISABLED
        self._identification: Optional[Identification] = None
        self._disposed = False
        self._deferred: set[asyncio.Task] = set()

        self._poll_loop = PollLoop(
            self,
            bill_table=settings.bill_table,
            interval=settings.timing.poll_interval_s,
        )

    @classmethod
    def for_serial_port(
        cls,
        settings: Optional[Settings] = None,
        events: Optional[EventDispatcher] = None,
    ) -> "DeviceSession":
        """Create a session on the serial port named in ``settings``."""
        settings = settings or get_settings()
        channel = SerialTransport(
            port=settings.serial.port,
            baudrate=settings.serial.baudrate,
            settle_delay=settings.timing.settle_delay_s,
        )
        return cls(channel, settings=settings, events=events)

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def lock(self) -> asyncio.Lock:
        """Lock held for every command exchange (session ops and poll cycles)."""
        return self._lock

    @property
    def poll_loop(self) -> PollLoop:
        return self._poll_loop

    @property
    def connection_state(self) -> ConnectionState:
        return self._connection

    @property
    def power_state(self) -> PowerState:
        return self._power

    @property
    def listening_state(self) -> ListeningState:
        return self._listening

    @property
    def acceptance_state(self) -> AcceptanceState:
        return self._acceptance

    @property
    def is_connected(self) -> bool:
        return self._connection == ConnectionState.CONNECTED

    @property
    def is_listening(self) -> bool:
        return self._listening == ListeningState.LISTENING

    @property
    def identification(self) -> Optional[Identification]:
        """Identification read during the last power-up, if any."""
        return self._identification

    # -------------------------------------------------------------------------
    # Observer registration
    # -------------------------------------------------------------------------

    def on_bill_received(self, observer: Observer) -> None:
        """Register for BillEvent (accepted / rejected)."""
        self.events.add_bill_observer(observer)

    def on_bill_stacking(self, observer: Observer) -> None:
        """Register for StackingEvent; set ``event.cancel`` to return the note."""
        self.events.add_stacking_observer(observer)

    def on_cassette_status(self, observer: Observer) -> None:
        """Register for CassetteEvent."""
        self.events.add_cassette_observer(observer)

    def on_fault(self, observer: Observer) -> None:
        """Register for faults discovered while polling."""
        self.events.add_fault_observer(observer)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def connect(self) -> OperationResult:
        """Open the transport."""
        if self.is_connected:
            logger.warning("Already connected")
            return OperationResult.ok()

        try:
            await self._channel.open()
        except TransportError as e:
            logger.error(f"Connection failed: {e}")
            return OperationResult.failed(Faults.PORT_OPEN_FAILED)

        self._connection = ConnectionState.CONNECTED
        self._power = PowerState.DOWN
        self._disposed = False
        logger.info("Connected to bill validator")
        return OperationResult.ok()

    async def power_up(self) -> OperationResult:
        """
        Run the power-up handshake.

        POLL, RESET, POLL, GET STATUS, SET SECURITY, IDENTIFICATION, POLL,
        POLL. The first failing step aborts the sequence and its fault is
        returned; the power state then stays DOWN.
        """
        if not self.is_connected:
            return OperationResult.failed(Faults.PORT_NOT_OPEN)
        if self._poll_loop.in_cycle:
            return self._refuse_in_cycle("power_up")

        async with self._lock:
            try:
                fault = await self._power_up_sequence()
            except TransportError as e:
                logger.error(f"Transport error during power-up: {e}")
                fault = Faults.PORT_NOT_OPEN

        if fault is not None:
            logger.error(f"Power-up failed: {fault}")
            return OperationResult.failed(fault)

        self._power = PowerState.UP
        logger.info("Bill validator powered up")
        return OperationResult.ok()

    def _refuse_in_cycle(self, operation: str) -> OperationResult:
        logger.error(f"{operation}() called from inside a poll cycle")
        return OperationResult.failed(Faults.OPERATION_ORDER)

    def _defer(self, coro, name: str) -> None:
        """Run ``coro`` once the current poll cycle has released the lock."""
        task = asyncio.create_task(coro, name=name)
        self._deferred.add(task)
        task.add_done_callback(self._deferred.discard)

    async def _poll_and_acknowledge(self) -> Optional[FaultCode]:
        """POLL once; NAK and return the fault, or ACK and return None."""
        response = await self.protocol.poll()
        if not response:
            return Faults.NO_RESPONSE

        fault = classify(response)
        if fault is not None:
            await self.protocol.nak()
            return fault

        await self.protocol.ack()
        return None

    async def _power_up_sequence(self) -> Optional[FaultCode]:
        # POWER UP
        fault = await self._poll_and_acknowledge()
        if fault is not None:
            return fault

        response = await self.protocol.reset()
        if not response:
            return Faults.NO_RESPONSE
        if not _acknowledged(response):
            return Faults.RESET_NOT_ACKNOWLEDGED

        # INITIALIZE
        fault = await self._poll_and_acknowledge()
        if fault is not None:
            return fault

        # GET STATUS answers 6 bytes (bill types + security); all zero is healthy
        response = await self.protocol.get_status()
        if not response:
            return Faults.NO_RESPONSE
        if len(response) > 8 and any(response[3:9]):
            return Faults.STATUS_CHECK_FAILED
        await self.protocol.ack()

        response = await self.protocol.set_security()
        if not response:
            return Faults.NO_RESPONSE
        if not _acknowledged(response):
            return Faults.SECURITY_NOT_ACKNOWLEDGED

        response = await self.protocol.identification()
        if not response:
            return Faults.NO_RESPONSE
        self._identification = Identification.from_payload(response[3:-2])
        logger.info(f"Identification: {self._identification}")
        await self.protocol.ack()

        # expect INITIALIZE, then UNIT DISABLED
        fault = await self._poll_and_acknowledge()
        if fault is not None:
            return fault
        return await self._poll_and_acknowledge()

    async def enable(self) -> OperationResult:
        """
        Enable every bill type with escrow.

        Requires the session to be listening so escrowed notes are
        answered by the poll loop.
        """
        if not self.is_connected:
            return OperationResult.failed(Faults.PORT_NOT_OPEN)
        if not self.is_listening:
            logger.error("enable() called before start_listening()")
            return OperationResult.failed(Faults.OPERATION_ORDER)
        if self._poll_loop.in_cycle:
            return self._refuse_in_cycle("enable")

        async with self._lock:
            try:
                fault = await self._enable_sequence()
            except TransportError as e:
                logger.error(f"Transport error while enabling: {e}")
                fault = Faults.PORT_NOT_OPEN

            if fault is not None:
                logger.error(f"Enable failed: {fault}")
                return OperationResult.failed(fault)
            self._acceptance = AcceptanceState.ENABLED

        logger.info("Bill acceptance enabled")
        return OperationResult.ok()

    async def _enable_sequence(self) -> Optional[FaultCode]:
        response = await self.protocol.enable_bill_types()
        if not response:
            return Faults.NO_RESPONSE
        if not _acknowledged(response):
            return Faults.ENABLE_NOT_ACKNOWLEDGED
        return await self._poll_and_acknowledge()

    async def disable(self) -> OperationResult:
        """
        Disable every bill type.

        Acceptance is marked DISABLED even when the device does not
        acknowledge the command.
        """
        if not self.is_connected:
            return OperationResult.failed(Faults.PORT_NOT_OPEN)
        if self._poll_loop.in_cycle:
            return self._refuse_in_cycle("disable")

        async with self._lock:
            try:
                response = await self.protocol.disable_bill_types()
            except TransportError as e:
                logger.error(f"Transport error while disabling: {e}")
                response = None
            self._acceptance = AcceptanceState.DISABLED

        logger.info("Bill acceptance disabled")
        if response is None:
            return OperationResult.failed(Faults.PORT_NOT_OPEN)
        if not response:
            return OperationResult.failed(Faults.NO_RESPONSE)
        if not _acknowledged(response):
            return OperationResult.failed(Faults.DISABLE_NOT_ACKNOWLEDGED)
        return OperationResult.ok()

    async def hold(self) -> OperationResult:
        """Extend the escrow timeout of the note currently held."""
        if not self.is_connected:
            return OperationResult.failed(Faults.PORT_NOT_OPEN)
        if self._poll_loop.in_cycle:
            return self._refuse_in_cycle("hold")

        async with self._lock:
            try:
                response = await self.protocol.hold()
            except TransportError as e:
                logger.error(f"Transport error during hold: {e}")
                return OperationResult.failed(Faults.PORT_NOT_OPEN)

        if not response:
            return OperationResult.failed(Faults.NO_RESPONSE)
        if not _acknowledged(response):
            return OperationResult.failed(Faults.HOLD_NOT_ACKNOWLEDGED)
        return OperationResult.ok()

    async def start_listening(self) -> OperationResult:
        """Start the poll loop, powering the device up first if needed."""
        if not self.is_connected:
            return OperationResult.failed(Faults.PORT_NOT_OPEN)
        if self.is_listening:
            return OperationResult.ok()

        if self._power == PowerState.DOWN:
            result = await self.power_up()
            if not result:
                return result

        self._listening = ListeningState.LISTENING
        self._poll_loop.start()
        return OperationResult.ok()

    async def stop_listening(self) -> OperationResult:
        """
        Stop the poll loop and disable acceptance.

        Called from an observer, the disable is sent after the current
        cycle ends and the returned result only covers stopping the loop.
        """
        self._listening = ListeningState.STOPPED
        if self._poll_loop.in_cycle:
            self._poll_loop.request_stop()
            self._defer(self._stop_and_disable(), name="cashcode-stop-listening")
            return OperationResult.ok()
        return await self._stop_and_disable()

    async def _stop_and_disable(self) -> OperationResult:
        await self._poll_loop.stop()
        return await self.disable()

    async def dispose(self) -> None:
        """
        Stop polling, disable acceptance and close the transport.

        Every step is attempted; failures are logged, never raised. Called
        from an observer, the teardown runs once the current cycle ends;
        ``wait_closed`` waits for it. Calling dispose again is a no-op
        apart from that wait.
        """
        if self._disposed:
            await self.wait_closed()
            return
        self._disposed = True
        self._listening = ListeningState.STOPPED

        if self._poll_loop.in_cycle:
            self._poll_loop.request_stop()
            self._defer(self._teardown(), name="cashcode-teardown")
            return
        await self._teardown()

    async def wait_closed(self) -> None:
        """Wait for work deferred by ``stop_listening`` or ``dispose``."""
        if self._poll_loop.in_cycle:
            return
        current = asyncio.current_task()
        pending = [task for task in self._deferred if task is not current]
        if pending:
            await asyncio.gather(*pending)

    async def _teardown(self) -> None:
        try:
            await self._poll_loop.stop()
        except Exception as e:
            logger.error(f"Error stopping poll loop: {e}")

        if self.is_connected:
            try:
                await self.disable()
            except Exception as e:
                logger.error(f"Error disabling bill acceptance: {e}")

        try:
            await self._channel.close()
        except Exception as e:
            logger.error(f"Error closing transport: {e}")

        self._connection = ConnectionState.DISCONNECTED
        logger.info("Session disposed")

    async def __aenter__(self) -> "DeviceSession":
        """Async context manager entry."""
        (await self.connect()).raise_for_fault()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.dispose()
