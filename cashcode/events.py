"""
Event system for the bill validator.

Observers register on four lists (bill, stacking, cassette, fault) and are
invoked in registration order. Observers may be plain callables or
coroutine functions.
"""

import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Union

from .errors import FaultCode


logger = logging.getLogger(__name__)


class BillStatus(str, Enum):
    """Outcome carried by a BillEvent."""

    ACCEPTED = "accepted"
    REJECTED = "rejected"


class CassetteStatus(str, Enum):
    """Physical state of the drop cassette."""

    IN_PLACE = "in_place"
    REMOVED = "removed"


@dataclass(frozen=True)
class BillEvent:
    """
    A note was committed to the stacker or rejected.

    Attributes:
        status: ACCEPTED or REJECTED.
        value: Denomination (accepted notes only, 0 otherwise).
        reason: Rejection reason text (rejected notes only).
    """

    status: BillStatus
    value: int = 0
    reason: str = ""

    @classmethod
    def accepted(cls, value: int) -> "BillEvent":
        return cls(status=BillStatus.ACCEPTED, value=value)

    @classmethod
    def rejected(cls, reason: str) -> "BillEvent":
        return cls(status=BillStatus.REJECTED, reason=reason)


@dataclass
class StackingEvent:
    """
    A recognised note is held in escrow.

    Any observer may set ``cancel`` to have the note returned instead of
    stacked.
    """

    value: int
    cancel: bool = False


@dataclass(frozen=True)
class CassetteEvent:
    """The drop cassette changed position."""

    status: CassetteStatus


Observer = Callable[[Any], Union[None, Awaitable[None]]]


class EventDispatcher:
    """
    Delivers validator events to registered observers.

    Attributes:
        bill_observers: Called with BillEvent.
        stacking_observers: Called with StackingEvent; may veto.
        cassette_observers: Called with CassetteEvent.
        fault_observers: Called with FaultCode for faults seen while polling.
    """

    def __init__(self) -> None:
        self.bill_observers: list[Observer] = []
        self.stacking_observers: list[Observer] = []
        self.cassette_observers: list[Observer] = []
        self.fault_observers: list[Observer] = []

    # -------------------------------------------------------------------------
    # Registration
    # -------------------------------------------------------------------------

    def add_bill_observer(self, observer: Observer) -> None:
        self.bill_observers.append(observer)

    def remove_bill_observer(self, observer: Observer) -> None:
        self._remove(self.bill_observers, observer)

    def add_stacking_observer(self, observer: Observer) -> None:
        self.stacking_observers.append(observer)

    def remove_stacking_observer(self, observer: Observer) -> None:
        self._remove(self.stacking_observers, observer)

    def add_cassette_observer(self, observer: Observer) -> None:
        self.cassette_observers.append(observer)

    def remove_cassette_observer(self, observer: Observer) -> None:
        self._remove(self.cassette_observers, observer)

    def add_fault_observer(self, observer: Observer) -> None:
        self.fault_observers.append(observer)

    def remove_fault_observer(self, observer: Observer) -> None:
        self._remove(self.fault_observers, observer)

    @staticmethod
    def _remove(observers: list[Observer], observer: Observer) -> None:
        try:
            observers.remove(observer)
        except ValueError:
            pass

    # -------------------------------------------------------------------------
    # Delivery
    # -------------------------------------------------------------------------

    async def _invoke(self, observer: Observer, event: Any) -> None:
        try:
            result = observer(event)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Observer error for {type(event).__name__}: {e}")

    async def _broadcast(self, observers: list[Observer], event: Any) -> None:
        for observer in list(observers):
            await self._invoke(observer, event)

    async def emit_bill(self, event: BillEvent) -> None:
        """Deliver a BillEvent to every bill observer."""
        await self._broadcast(self.bill_observers, event)

    async def emit_cassette(self, event: CassetteEvent) -> None:
        """Deliver a CassetteEvent to every cassette observer."""
        await self._broadcast(self.cassette_observers, event)

    async def emit_fault(self, fault: FaultCode) -> None:
        """Deliver a polling fault to every fault observer."""
        await self._broadcast(self.fault_observers, fault)

    async def emit_stacking(self, event: StackingEvent) -> bool:
        """
        Offer a StackingEvent to observers in registration order.

        Delivery stops at the first observer that leaves ``cancel`` set.

        Returns:
            True if the note should be returned.
        """
        for observer in list(self.stacking_observers):
            await self._invoke(observer, event)
            if event.cancel:
                return True
        return False

