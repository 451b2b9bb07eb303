"""Tests for the Deferred Action Scheduler."""

import asyncio
from datetime import datetime, timedelta
from unittest.mock import AsyncMock

import httpx
import pytest

from slotbook.core.scheduling.deferred import DeferredActionScheduler, DispatchReport
from slotbook.models.database import ActionKind

from tests.unit.support import TOMORROW, TZ, make_reservation


@pytest.fixture
async def appointment_id(ledger, catalog):
    """Appointment with Alexander tomorrow at 14:00."""
    claim = await ledger.claim(TOMORROW, "14:00", catalog.providers[0].name, make_reservation())
    return claim.appointment_id


def _at(hour: int, minute: int = 0) -> datetime:
    return datetime(2026, 10, 21, hour, minute, tzinfo=TZ)


class TestSchedule:
    """Test scheduling."""

    @pytest.mark.asyncio
    async def test_schedule_is_idempotent(self, scheduler, appointment_id):
        first = await scheduler.schedule(
            "user-1", ActionKind.REMINDER, _at(13, 30), appointment_id, f"{TOMORROW} 14:00"
        )
        second = await scheduler.schedule(
            "user-1", ActionKind.REMINDER, _at(13, 45), appointment_id, f"{TOMORROW} 14:00"
        )

        assert first is True
        assert second is False
        pending = await scheduler.pending_for_appointment(appointment_id)
        assert len(pending) == 1

    @pytest.mark.asyncio
    async def test_schedule_for_appointment_fire_times(self, scheduler, appointment_id):
        """Reminder 30 minutes before, feedback 2 hours after the slot start."""
        await scheduler.schedule_for_appointment(appointment_id, "user-1", TOMORROW, "14:00")

        pending = {a.kind: a for a in await scheduler.pending_for_appointment(appointment_id)}

        assert set(pending) == {ActionKind.REMINDER, ActionKind.FEEDBACK_REQUEST}
        # 14:00 in Fortaleza (UTC-3) is 17:00 UTC
        assert pending[ActionKind.REMINDER].fire_at == datetime(2026, 10, 21, 16, 30)
        assert pending[ActionKind.FEEDBACK_REQUEST].fire_at == datetime(2026, 10, 21, 19, 0)
        assert pending[ActionKind.REMINDER].appointment_slot_key == f"{TOMORROW} 14:00"


class TestDispatch:
    """Test the poll-dispatch-acknowledge tick."""

    @pytest.mark.asyncio
    async def test_nothing_due(self, scheduler, appointment_id, notifier):
        await scheduler.schedule_for_appointment(appointment_id, "user-1", TOMORROW, "14:00")

        report = await scheduler.dispatch_due()

        assert report == DispatchReport()
        notifier.send_text.assert_not_called()

    @pytest.mark.asyncio
    async def test_reminder_delivered_and_removed(
        self, scheduler, appointment_id, notifier, clock
    ):
        await scheduler.schedule_for_appointment(appointment_id, "user-1", TOMORROW, "14:00")
        clock.current = _at(13, 35)

        report = await scheduler.dispatch_due()

        assert report.delivered == 1
        notifier.send_text.assert_awaited_once()
        user_id, text = notifier.send_text.await_args.args
        assert user_id == "user-1"
        assert "30 minutes" in text
        assert "14:00" in text
        pending = await scheduler.pending_for_appointment(appointment_id)
        assert [a.kind for a in pending] == [ActionKind.FEEDBACK_REQUEST]

    @pytest.mark.asyncio
    async def test_failed_reminder_is_retried_next_tick(
        self, scheduler, appointment_id, notifier, clock
    ):
        notifier.send_text.side_effect = [httpx.ConnectError("transport down"), None]
        await scheduler.schedule(
            "user-1", ActionKind.REMINDER, _at(13, 30), appointment_id, f"{TOMORROW} 14:00"
        )
        clock.current = _at(13, 31)

        first = await scheduler.dispatch_due()

        assert first.failed == 1
        assert len(await scheduler.pending_for_appointment(appointment_id)) == 1

        second = await scheduler.dispatch_due()

        assert second.delivered == 1
        assert await scheduler.pending_for_appointment(appointment_id) == []
        assert notifier.send_text.await_count == 2

    @pytest.mark.asyncio
    async def test_feedback_skipped_when_already_scored(
        self, scheduler, ledger, appointment_id, notifier, clock
    ):
        await ledger.record_feedback(appointment_id, 7)
        await scheduler.schedule(
            "user-1", ActionKind.FEEDBACK_REQUEST, _at(16), appointment_id, f"{TOMORROW} 14:00"
        )
        clock.current = _at(16, 1)

        report = await scheduler.dispatch_due()

        assert report.skipped == 1
        notifier.send_text.assert_not_called()
        assert await scheduler.pending_for_appointment(appointment_id) == []

    @pytest.mark.asyncio
    async def test_feedback_request_runs_hook(
        self, scheduler, appointment_id, notifier, clock
    ):
        hook = AsyncMock()
        scheduler.set_feedback_hook(hook)
        await scheduler.schedule(
            "user-1", ActionKind.FEEDBACK_REQUEST, _at(16), appointment_id, f"{TOMORROW} 14:00"
        )
        clock.current = _at(16, 1)

        report = await scheduler.dispatch_due()

        assert report.delivered == 1
        hook.assert_awaited_once_with("user-1", appointment_id)
        text = notifier.send_text.await_args.args[1]
        assert "John Smith" in text
        assert "0 to 10" in text

    @pytest.mark.asyncio
    async def test_failed_feedback_request_does_not_run_hook(
        self, scheduler, appointment_id, notifier, clock
    ):
        hook = AsyncMock()
        scheduler.set_feedback_hook(hook)
        notifier.send_text.side_effect = httpx.ConnectError("transport down")
        await scheduler.schedule(
            "user-1", ActionKind.FEEDBACK_REQUEST, _at(16), appointment_id, f"{TOMORROW} 14:00"
        )
        clock.current = _at(16, 1)

        report = await scheduler.dispatch_due()

        assert report.failed == 1
        hook.assert_not_called()
        assert len(await scheduler.pending_for_appointment(appointment_id)) == 1

    @pytest.mark.asyncio
    async def test_action_of_missing_appointment_is_discarded(
        self, scheduler, notifier, clock
    ):
        await scheduler.schedule("user-1", ActionKind.REMINDER, _at(9), 4040, f"{TOMORROW} 09:30")
        clock.current = _at(10)

        report = await scheduler.dispatch_due()

        assert report.discarded == 1
        notifier.send_text.assert_not_called()
        assert await scheduler.pending_for_appointment(4040) == []

    @pytest.mark.asyncio
    async def test_action_with_mismatched_slot_key_is_discarded(
        self, scheduler, appointment_id, notifier, clock
    ):
        await scheduler.schedule(
            "user-1", ActionKind.REMINDER, _at(9), appointment_id, f"{TOMORROW} 09:30"
        )
        clock.current = _at(10)

        report = await scheduler.dispatch_due()

        assert report.discarded == 1
        notifier.send_text.assert_not_called()


class TestLifecycle:
    """Test the background loop."""

    @pytest.mark.asyncio
    async def test_start_dispatches_and_stop_ends_loop(
        self, session_factory, notifier, responses, clock, appointment_id
    ):
        scheduler = DeferredActionScheduler(
            session_factory=session_factory,
            notifier=notifier,
            responses=responses,
            clock=clock,
            interval_seconds=0.01,
        )
        await scheduler.schedule(
            "user-1", ActionKind.REMINDER, clock.now() - timedelta(minutes=1),
            appointment_id, f"{TOMORROW} 14:00",
        )

        scheduler.start()
        assert scheduler.is_running
        for _ in range(100):
            if notifier.send_text.await_count:
                break
            await asyncio.sleep(0.01)
        await scheduler.stop()

        assert not scheduler.is_running
        notifier.send_text.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_tick_failure_does_not_kill_loop(self, scheduler):
        scheduler.dispatch_due = AsyncMock(side_effect=[RuntimeError("boom"), DispatchReport()])

        scheduler.start()
        for _ in range(100):
            if scheduler.dispatch_due.await_count >= 2:
                break
            await asyncio.sleep(0.01)
        await scheduler.stop()

        assert scheduler.dispatch_due.await_count >= 2
