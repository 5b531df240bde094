"""
Poll loop and bill state machine.

Once the session starts listening, the loop polls the validator every
``interval`` seconds and reacts to the status byte:

    IDLING                      nothing to do
    ACCEPTING / STACKING /
    RETURNING / BILL_RETURNED   ACK
    REJECTING                   ACK, BillEvent(rejected, reason)
    ESCROW_POSITION             ACK, StackingEvent, then STACK or RETURN
    BILL_STACKED                ACK, BillEvent(accepted, value)
    DROP_CASSETTE_OUT_OF_POS.   CassetteEvent(removed), edge-triggered
    INITIALIZE                  CassetteEvent(in place) after a removal
    failure statuses            NAK, fault observers notified

0x42 is handled as the cassette lifecycle signal here, ahead of fault
classification; the handshake treats the same byte as a fault.

Statuses that are neither listed above nor classified as a fault (POWER
UP, UNIT DISABLED, HOLDING, DEVICE BUSY and the like) are left alone:
no ACK, no NAK, no notification. The transition is only logged.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from .constants import (
    DEFAULT_BILL_TABLE,
    POLL_INTERVAL_S,
    STATUS_OFFSET,
    DeviceState,
    get_state_name,
)
from .errors import Faults, classify, rejection_reason
from .events import BillEvent, CassetteEvent, CassetteStatus, StackingEvent

if TYPE_CHECKING:
    from .session import DeviceSession


logger = logging.getLogger(__name__)


ACKNOWLEDGED_STATES = frozenset({
    DeviceState.ACCEPTING,
    DeviceState.STACKING,
    DeviceState.RETURNING,
    DeviceState.BILL_RETURNED,
})


@dataclass
class PollState:
    """
    State owned by the poll loop and only touched inside a cycle.

    Attributes:
        cassette: Last reported cassette position.
        pending_return: Set when a stacking observer vetoed the note;
            consumed by the same cycle's STACK/RETURN decision.
        last_status: Status byte seen by the previous cycle.
    """

    cassette: CassetteStatus = CassetteStatus.IN_PLACE
    pending_return: bool = False
    last_status: Optional[int] = None


class PollLoop:
    """
    Run-then-reschedule polling of the validator.

    The next cycle is only scheduled after the current one has completed,
    so cycles never overlap. Exceptions inside a cycle are logged and
    polling continues until the session stops listening.

    Observers run inside the cycle while the session lock is held. The
    session checks ``in_cycle`` so that lifecycle calls made from an
    observer are deferred or refused instead of waiting on that lock.
    """

    def __init__(
        self,
        session: "DeviceSession",
        bill_table: Optional[dict[int, int]] = None,
        interval: float = POLL_INTERVAL_S,
    ) -> None:
        self._session = session
        self._bill_table = dict(DEFAULT_BILL_TABLE if bill_table is None else bill_table)
        self.interval = interval
        self.state = PollState()
        self._task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()
        self._cycle_owner: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def in_cycle(self) -> bool:
        """True when the caller runs inside a cycle, e.g. from an observer."""
        return self._cycle_owner is not None and self._cycle_owner is asyncio.current_task()

    def denomination(self, code: Optional[int]) -> int:
        """Bill value for a device bill code (0 if unknown)."""
        if code is None:
            return 0
        return self._bill_table.get(code, 0)

    def start(self) -> None:
        """Schedule the loop on the running event loop."""
        if self.is_running:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run(), name="cashcode-poll-loop")

    def request_stop(self) -> None:
        """Let the running cycle finish, then end the loop."""
        self._stop_event.set()

    async def stop(self) -> None:
        """Stop scheduling cycles and wait for the current one to finish."""
        self._stop_event.set()
        task, self._task = self._task, None
        if task is not None and task is not asyncio.current_task():
            await task

    async def _run(self) -> None:
        logger.info("Poll loop started")
        try:
            while self._session.is_listening and not self._stop_event.is_set():
                try:
                    await self.run_cycle()
                except Exception as e:
                    logger.error(f"Poll cycle error: {e}")

                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval)
                except asyncio.TimeoutError:
                    pass
        finally:
            logger.info("Poll loop stopped")

    async def run_cycle(self) -> None:
        """Run exactly one poll cycle under the session lock."""
        async with self._session.lock:
            self._cycle_owner = asyncio.current_task()
            try:
                await self._cycle(self.state)
            finally:
                self._cycle_owner = None

    async def _cycle(self, state: PollState) -> None:
        protocol = self._session.protocol
        events = self._session.events

        response = await protocol.poll()
        if len(response) <= STATUS_OFFSET:
            await events.emit_fault(Faults.NO_RESPONSE)
            return

        status = response[STATUS_OFFSET]
        payload = response[STATUS_OFFSET:-2]
        detail = payload[1] if len(payload) > 1 else None

        if status != state.last_status:
            logger.debug(
                f"State transition: {get_state_name(state.last_status)} -> {get_state_name(status)}"
            )
        state.last_status = status

        if status == DeviceState.IDLING:
            return

        if status in ACKNOWLEDGED_STATES:
            await protocol.ack()

        elif status == DeviceState.REJECTING:
            await protocol.ack()
            reason = rejection_reason(detail)
            logger.info(f"Bill rejected: {reason}")
            await events.emit_bill(BillEvent.rejected(reason))

        elif status == DeviceState.ESCROW_POSITION:
            await protocol.ack()
            value = self.denomination(detail)
            logger.info(f"Bill in escrow: value={value}")
            state.pending_return = await events.emit_stacking(StackingEvent(value=value))
            if state.pending_return:
                await protocol.return_bill()
                state.pending_return = False
            else:
                await protocol.stack()

        elif status == DeviceState.BILL_STACKED:
            await protocol.ack()
            value = self.denomination(detail)
            logger.info(f"Bill stacked: value={value}")
            await events.emit_bill(BillEvent.accepted(value))

        elif status == DeviceState.DROP_CASSETTE_OUT_OF_POSITION:
            if state.cassette != CassetteStatus.REMOVED:
                state.cassette = CassetteStatus.REMOVED
                logger.warning("Drop cassette removed")
                await events.emit_cassette(CassetteEvent(state.cassette))

        elif status == DeviceState.INITIALIZE:
            if state.cassette == CassetteStatus.REMOVED:
                state.cassette = CassetteStatus.IN_PLACE
                logger.info("Drop cassette back in place")
                await events.emit_cassette(CassetteEvent(state.cassette))

        else:
            fault = classify(response)
            if fault is None:
                # unhandled non-fault status
                return
            logger.error(f"Device fault: {fault}")
            await protocol.nak()
            await events.emit_fault(fault)
