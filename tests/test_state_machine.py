"""
Tests for the poll loop bill and cassette state machine.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from cashcode.constants import Command, DeviceState
from cashcode.errors import Faults
from cashcode.events import BillStatus, CassetteStatus
from cashcode.session import DeviceSession
from cashcode.settings import Settings, TimingSettings
from cashcode.value_objects import ListeningState

from conftest import ACK_RESPONSE, device_frame, handshake_script


class TestBillLifecycle:
    """Escrow, stacking and rejection handling."""

    @pytest.mark.asyncio
    async def test_idling_is_noop(self, session, transport):
        await session.connect()
        transport.script(device_frame(DeviceState.IDLING))

        await session.poll_loop.run_cycle()

        assert transport.commands == [Command.POLL]

    @pytest.mark.parametrize("status", [
        DeviceState.ACCEPTING,
        DeviceState.STACKING,
        DeviceState.RETURNING,
        DeviceState.BILL_RETURNED,
    ])
    @pytest.mark.asyncio
    async def test_transit_states_are_acknowledged(self, session, transport, status):
        await session.connect()
        transport.script(device_frame(status))

        await session.poll_loop.run_cycle()

        assert transport.commands == [Command.POLL, Command.ACK]

    @pytest.mark.asyncio
    async def test_escrow_then_stacked(self, session, transport):
        """Escrow is stacked by default and the stacked note is reported."""
        await session.connect()
        stacking = MagicMock()
        bills = MagicMock()
        session.on_bill_stacking(stacking)
        session.on_bill_received(bills)

        transport.script(device_frame(DeviceState.ESCROW_POSITION, 0x03), ACK_RESPONSE)
        await session.poll_loop.run_cycle()

        assert transport.commands == [Command.POLL, Command.ACK, Command.STACK]
        assert stacking.call_args.args[0].value == 10
        bills.assert_not_called()

        transport.script(device_frame(DeviceState.BILL_STACKED, 0x03))
        await session.poll_loop.run_cycle()

        event = bills.call_args.args[0]
        assert event.status == BillStatus.ACCEPTED
        assert event.value == 10

    @pytest.mark.asyncio
    async def test_stacking_veto_returns_bill(self, session, transport):
        """Any one observer cancelling makes the note go back."""
        await session.connect()
        first = MagicMock()

        def veto(event):
            event.cancel = True

        after_veto = MagicMock()
        bills = MagicMock()
        session.on_bill_stacking(first)
        session.on_bill_stacking(veto)
        session.on_bill_stacking(after_veto)
        session.on_bill_received(bills)

        transport.script(device_frame(DeviceState.ESCROW_POSITION, 0x05), ACK_RESPONSE)
        await session.poll_loop.run_cycle()

        assert transport.commands == [Command.POLL, Command.ACK, Command.RETURN]
        assert Command.STACK not in transport.commands
        first.assert_called_once()
        after_veto.assert_not_called()
        assert session.poll_loop.state.pending_return is False

        transport.script(device_frame(DeviceState.RETURNING), device_frame(DeviceState.BILL_RETURNED))
        await session.poll_loop.run_cycle()
        await session.poll_loop.run_cycle()

        bills.assert_not_called()

    @pytest.mark.asyncio
    async def test_async_stacking_observer_can_veto(self, session, transport):
        await session.connect()

        async def veto(event):
            await asyncio.sleep(0)
            event.cancel = True

        session.on_bill_stacking(veto)
        transport.script(device_frame(DeviceState.ESCROW_POSITION, 0x02), ACK_RESPONSE)

        await session.poll_loop.run_cycle()

        assert transport.commands[-1] == Command.RETURN

    @pytest.mark.asyncio
    async def test_rejecting(self, session, transport):
        await session.connect()
        bills = AsyncMock()
        session.on_bill_received(bills)
        transport.script(device_frame(DeviceState.REJECTING, 0x68))

        await session.poll_loop.run_cycle()

        assert transport.commands == [Command.POLL, Command.ACK]
        event = bills.call_args.args[0]
        assert event.status == BillStatus.REJECTED
        assert event.reason == "Rejecting due to Inhibit"
        assert event.value == 0

    @pytest.mark.asyncio
    async def test_failing_observer_does_not_stop_delivery(self, session, transport):
        await session.connect()
        broken = MagicMock(side_effect=RuntimeError("observer bug"))
        bills = MagicMock()
        session.on_bill_received(broken)
        session.on_bill_received(bills)
        transport.script(device_frame(DeviceState.BILL_STACKED, 0x02))

        await session.poll_loop.run_cycle()

        bills.assert_called_once()


class TestDenomination:
    """Bill code to value mapping."""

    def test_default_table(self, session):
        loop = session.poll_loop
        values = [loop.denomination(code) for code in range(0x02, 0x09)]

        assert values == sorted(values)
        assert values[0] == 5
        assert values[-1] == 500

    def test_unknown_code(self, session):
        assert session.poll_loop.denomination(0x17) == 0
        assert session.poll_loop.denomination(None) == 0

    @pytest.mark.asyncio
    async def test_configured_table(self, transport):
        table = {0x02: 10, 0x03: 50, 0x04: 100, 0x05: 500, 0x06: 1000, 0x07: 5000, 0x08: 10000}
        settings = Settings(
            timing=TimingSettings(poll_interval_s=0.01, response_timeout_s=0.05),
            bill_table=table,
        )
        session = DeviceSession(transport, settings=settings)
        await session.connect()
        bills = MagicMock()
        session.on_bill_received(bills)

        for code in range(0x02, 0x09):
            transport.script(device_frame(DeviceState.BILL_STACKED, code))
            await session.poll_loop.run_cycle()

        assert [call.args[0].value for call in bills.call_args_list] == [
            table[code] for code in range(0x02, 0x09)
        ]


class TestCassette:
    """Edge-triggered cassette events."""

    @pytest.mark.asyncio
    async def test_removed_and_reseated(self, session, transport):
        await session.connect()
        cassette = MagicMock()
        session.on_cassette_status(cassette)

        for status in (0x42, 0x42, 0x42, 0x13, 0x13, 0x42, 0x13):
            transport.script(device_frame(status))
            await session.poll_loop.run_cycle()

        assert [call.args[0].status for call in cassette.call_args_list] == [
            CassetteStatus.REMOVED,
            CassetteStatus.IN_PLACE,
            CassetteStatus.REMOVED,
            CassetteStatus.IN_PLACE,
        ]

    @pytest.mark.asyncio
    async def test_cassette_removed_is_not_a_fault(self, session, transport):
        await session.connect()
        faults = MagicMock()
        session.on_fault(faults)
        transport.script(device_frame(DeviceState.DROP_CASSETTE_OUT_OF_POSITION))

        await session.poll_loop.run_cycle()

        assert transport.commands == [Command.POLL]
        faults.assert_not_called()

    @pytest.mark.asyncio
    async def test_initialize_without_removal_is_silent(self, session, transport):
        await session.connect()
        cassette = MagicMock()
        session.on_cassette_status(cassette)
        transport.script(device_frame(DeviceState.INITIALIZE))

        await session.poll_loop.run_cycle()

        cassette.assert_not_called()


class TestFaults:
    """Faults seen while polling."""

    @pytest.mark.asyncio
    async def test_device_fault_is_naked_and_reported(self, session, transport):
        await session.connect()
        faults = MagicMock()
        session.on_fault(faults)
        transport.script(device_frame(DeviceState.DROP_CASSETTE_FULL))

        await session.poll_loop.run_cycle()

        assert transport.commands == [Command.POLL, Command.NAK]
        faults.assert_called_once_with(Faults.CASSETTE_FULL)

    @pytest.mark.parametrize("status", [
        DeviceState.POWER_UP,
        DeviceState.POWER_UP_WITH_BILL_IN_VALIDATOR,
        DeviceState.POWER_UP_WITH_BILL_IN_STACKER,
        DeviceState.UNIT_DISABLED,
        DeviceState.HOLDING,
        DeviceState.DEVICE_BUSY,
    ])
    @pytest.mark.asyncio
    async def test_unclassified_status_is_ignored(self, session, transport, status):
        """Non-fault statuses without a handler are neither ACKed nor NAKed."""
        await session.connect()
        faults = MagicMock()
        session.on_fault(faults)
        transport.script(device_frame(status))

        await session.poll_loop.run_cycle()

        assert transport.commands == [Command.POLL]
        faults.assert_not_called()

    @pytest.mark.asyncio
    async def test_timeout_reported_as_no_response(self, session, transport):
        await session.connect()
        faults = MagicMock()
        session.on_fault(faults)
        transport.script(None)

        await session.poll_loop.run_cycle()

        faults.assert_called_once_with(Faults.NO_RESPONSE)


class TestPollLoopScheduling:
    """The running loop."""

    @pytest.mark.asyncio
    async def test_timeout_does_not_stop_polling(self, session, transport):
        """A silent cycle is reported and the next cycle still runs."""
        await session.connect()
        transport.script(*handshake_script())
        transport.script(None, device_frame(DeviceState.BILL_STACKED, 0x04))

        received = asyncio.Event()
        faults = []
        bills = []

        def on_bill(event):
            bills.append(event)
            received.set()

        session.on_bill_received(on_bill)
        session.on_fault(faults.append)

        assert await session.start_listening()
        await asyncio.wait_for(received.wait(), timeout=2.0)
        await session.dispose()

        assert faults[0] is Faults.NO_RESPONSE
        assert bills[0].value == 20

    @pytest.mark.asyncio
    async def test_cycle_exception_does_not_stop_polling(self, session, transport):
        await session.connect()
        transport.script(*handshake_script())
        transport.script(
            device_frame(DeviceState.ACCEPTING),
            device_frame(DeviceState.BILL_STACKED, 0x02),
        )
        original_ack = session.protocol.ack
        calls = 0

        async def flaky_ack():
            nonlocal calls
            calls += 1
            if calls == 1:
                raise RuntimeError("write failed")
            await original_ack()

        received = asyncio.Event()
        session.on_bill_received(lambda event: received.set())

        assert await session.start_listening()
        session.protocol.ack = flaky_ack
        await asyncio.wait_for(received.wait(), timeout=2.0)
        await session.dispose()

        assert calls == 2

    @pytest.mark.asyncio
    async def test_stop_halts_loop(self, session, transport):
        await session.connect()
        transport.script(*handshake_script())
        assert await session.start_listening()

        await session.stop_listening()
        written = len(transport.written)
        await asyncio.sleep(0.05)

        assert not session.poll_loop.is_running
        assert len(transport.written) == written

        await session.dispose()

    @pytest.mark.asyncio
    async def test_loop_not_started_twice(self, session):
        await session.connect()
        session._listening = ListeningState.LISTENING

        session.poll_loop.start()
        task = session.poll_loop._task
        session.poll_loop.start()

        assert session.poll_loop._task is task
        await session.dispose()
