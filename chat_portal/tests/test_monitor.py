"""Tests for the chat inactivity monitor (virtual time)."""
import pytest

from fakes import FakeCaseUpdater, FakeScheduler, FakeTransport

from chat_portal.monitor import (
    END_REASON_INACTIVE,
    EVENT_CASE_UPDATED,
    EVENT_CLOSED_INACTIVE,
    EVENT_CONVERSATION_ENDED,
    EVENT_CONVERSATION_STARTED,
    EVENT_WARNING_SENT,
    WARNING_MESSAGE,
    InactivityMonitor,
    MonitorState,
)

MIN = 60


def _sends(calls):
    return [c for c in calls if c[0] == "send_message"]


@pytest.fixture
def calls():
    return []


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def transport(calls):
    return FakeTransport(calls)


@pytest.fixture
def case_updater(calls):
    return FakeCaseUpdater(calls)


@pytest.fixture
def monitor(scheduler, transport, case_updater):
    return InactivityMonitor(scheduler, transport, case_updater, clock=lambda: scheduler.now)


def test_starts_idle(monitor, scheduler):
    assert monitor.state is MonitorState.IDLE
    assert monitor.session.session_id is None
    assert scheduler.pending() == []


def test_conversation_started_schedules_inactivity_timer(monitor, scheduler):
    monitor.on_conversation_started("abc")
    assert monitor.state is MonitorState.ACTIVE
    assert monitor.session.session_id == "abc"
    assert monitor.session.inactivity_deadline is not None
    assert monitor.session.warning_deadline is None
    pending = scheduler.pending()
    assert len(pending) == 1
    assert pending[0].due == 20 * MIN


def test_conversation_started_requires_session_id(monitor, scheduler):
    with pytest.raises(ValueError):
        monitor.on_conversation_started("")
    assert monitor.state is MonitorState.IDLE
    assert scheduler.pending() == []


@pytest.mark.asyncio
async def test_activity_keeps_resetting_timer(monitor, scheduler, calls):
    """Activity spaced under the threshold never produces a warning."""
    monitor.on_conversation_started("abc")
    for _ in range(10):
        await scheduler.advance(19 * MIN)
        monitor.on_activity_observed()
    assert _sends(calls) == []
    assert monitor.state is MonitorState.ACTIVE
    assert len(scheduler.pending()) == 1
    assert monitor.session.last_activity_at == scheduler.now


@pytest.mark.asyncio
async def test_silence_sends_exactly_one_warning(monitor, scheduler, calls):
    monitor.on_conversation_started("abc")
    await scheduler.advance(20 * MIN)
    assert _sends(calls) == [("send_message", "abc", WARNING_MESSAGE)]
    assert monitor.state is MonitorState.WARNED
    assert monitor.session.warning_sent is True
    assert monitor.session.inactivity_deadline is None
    assert monitor.session.warning_deadline is not None
    await scheduler.advance(1 * MIN)
    assert len(_sends(calls)) == 1
    assert monitor.state is MonitorState.WARNED


@pytest.mark.asyncio
async def test_activity_during_grace_returns_to_active(monitor, scheduler, calls):
    monitor.on_conversation_started("abc")
    await scheduler.advance(20 * MIN)
    await scheduler.advance(1 * MIN)
    monitor.on_activity_observed()
    assert monitor.state is MonitorState.ACTIVE
    assert monitor.session.warning_sent is False
    assert monitor.session.warning_deadline is None
    assert len(scheduler.pending()) == 1

    # The cancelled grace period passes without closing anything
    await scheduler.advance(2 * MIN)
    assert not any(c[0] == "end_conversation" for c in calls)

    # A fresh silence yields a second, independent warning
    await scheduler.advance(18 * MIN)
    assert len(_sends(calls)) == 2
    assert monitor.state is MonitorState.WARNED


@pytest.mark.asyncio
async def test_full_timeout_scenario(monitor, scheduler, calls):
    """Start "abc" at t=0, warn at 20:00, end + case update at 22:00, idle afterwards."""
    monitor.on_conversation_started("abc")
    await scheduler.advance(20 * MIN)
    assert calls == [("send_message", "abc", WARNING_MESSAGE)]

    await scheduler.advance(2 * MIN)
    assert calls == [
        ("send_message", "abc", WARNING_MESSAGE),
        ("end_conversation", "abc", END_REASON_INACTIVE),
        ("update_case", "abc", "Closed - Customer Inactive", "User inactivity timeout"),
    ]
    assert monitor.state is MonitorState.IDLE
    assert monitor.session.session_id is None
    assert scheduler.pending() == []


@pytest.mark.asyncio
async def test_new_conversation_after_forced_close(monitor, scheduler, calls):
    monitor.on_conversation_started("abc")
    await scheduler.advance(22 * MIN)
    assert monitor.state is MonitorState.IDLE

    monitor.on_conversation_started("def")
    assert monitor.state is MonitorState.ACTIVE
    await scheduler.advance(19 * MIN)
    # Nothing left over from "abc" fires against the new conversation
    assert len(calls) == 3
    await scheduler.advance(1 * MIN)
    assert calls[-1] == ("send_message", "def", WARNING_MESSAGE)


@pytest.mark.asyncio
async def test_case_update_failure_still_resets(scheduler, calls):
    monitor = InactivityMonitor(
        scheduler, FakeTransport(calls), FakeCaseUpdater(calls, fail=True), clock=lambda: scheduler.now
    )
    monitor.on_conversation_started("abc")
    await scheduler.advance(22 * MIN)
    assert calls[-1][0] == "update_case"
    assert monitor.state is MonitorState.IDLE
    assert scheduler.pending() == []

    monitor.on_conversation_started("next")
    assert monitor.state is MonitorState.ACTIVE
    assert monitor.session.session_id == "next"


@pytest.mark.asyncio
async def test_end_conversation_failure_still_updates_case(scheduler, calls):
    monitor = InactivityMonitor(
        scheduler, FakeTransport(calls, fail_end=True), FakeCaseUpdater(calls), clock=lambda: scheduler.now
    )
    monitor.on_conversation_started("abc")
    await scheduler.advance(22 * MIN)
    assert [c[0] for c in calls] == ["send_message", "end_conversation", "update_case"]
    assert monitor.state is MonitorState.IDLE


@pytest.mark.asyncio
async def test_warning_send_failure_still_starts_grace(scheduler, calls):
    monitor = InactivityMonitor(
        scheduler, FakeTransport(calls, fail_send=True), FakeCaseUpdater(calls), clock=lambda: scheduler.now
    )
    monitor.on_conversation_started("abc")
    await scheduler.advance(20 * MIN)
    assert monitor.state is MonitorState.WARNED
    assert monitor.session.warning_deadline is not None
    await scheduler.advance(2 * MIN)
    assert ("end_conversation", "abc", END_REASON_INACTIVE) in calls
    assert monitor.state is MonitorState.IDLE


@pytest.mark.asyncio
@pytest.mark.parametrize("idle_minutes", [5, 21])
async def test_conversation_ended_cancels_everything(monitor, scheduler, calls, idle_minutes):
    """Ended while Active (5 min) or Warned (21 min): no timeout action afterwards."""
    monitor.on_conversation_started("abc")
    await scheduler.advance(idle_minutes * MIN)
    sends_before = len(_sends(calls))
    monitor.on_conversation_ended()
    assert monitor.state is MonitorState.IDLE
    assert scheduler.pending() == []
    await scheduler.advance(60 * MIN)
    assert len(_sends(calls)) == sends_before
    assert not any(c[0] in ("end_conversation", "update_case") for c in calls)


def test_conversation_ended_when_idle_is_noop(monitor):
    monitor.on_conversation_ended()
    monitor.on_conversation_ended()
    assert monitor.state is MonitorState.IDLE


def test_activity_when_idle_is_noop(monitor, scheduler):
    monitor.on_activity_observed()
    assert monitor.state is MonitorState.IDLE
    assert scheduler.pending() == []


@pytest.mark.asyncio
async def test_restart_without_end_drops_stale_timers(monitor, scheduler, calls):
    monitor.on_conversation_started("old")
    await scheduler.advance(10 * MIN)
    monitor.on_conversation_started("new")
    assert monitor.session.session_id == "new"
    assert len(scheduler.pending()) == 1
    await scheduler.advance(15 * MIN)
    # "old" would have timed out at 20:00; only "new" (due 30:00) is still pending
    assert _sends(calls) == []
    await scheduler.advance(5 * MIN)
    assert _sends(calls) == [("send_message", "new", WARNING_MESSAGE)]


@pytest.mark.asyncio
async def test_stale_generation_callbacks_are_ignored(monitor, calls):
    monitor.on_conversation_started("abc")
    stale = monitor.generation
    monitor.on_activity_observed()
    await monitor.on_inactivity_timeout(stale)
    await monitor.on_warning_timeout(stale)
    assert calls == []
    assert monitor.state is MonitorState.ACTIVE


@pytest.mark.asyncio
async def test_new_conversation_during_close_is_kept(scheduler, calls):
    """A conversation adopted while the close sequence awaits is not wiped by it."""
    transport = FakeTransport(calls)
    monitor = InactivityMonitor(scheduler, transport, FakeCaseUpdater(calls), clock=lambda: scheduler.now)
    transport.on_end = lambda: monitor.on_conversation_started("second")
    monitor.on_conversation_started("first")
    await scheduler.advance(22 * MIN)
    assert ("update_case", "first", "Closed - Customer Inactive", "User inactivity timeout") in calls
    assert monitor.state is MonitorState.ACTIVE
    assert monitor.session.session_id == "second"
    assert len(scheduler.pending()) == 1


@pytest.mark.asyncio
async def test_audit_events_recorded(scheduler, calls):
    events = []
    monitor = InactivityMonitor(
        scheduler,
        FakeTransport(calls),
        FakeCaseUpdater(calls, fail=True),
        audit=lambda event, sid, outcome: events.append((event, sid, outcome)),
        clock=lambda: scheduler.now,
    )
    monitor.on_conversation_started("abc")
    await scheduler.advance(22 * MIN)
    monitor.on_conversation_started("def")
    monitor.on_conversation_ended()
    assert events == [
        (EVENT_CONVERSATION_STARTED, "abc", "success"),
        (EVENT_WARNING_SENT, "abc", "success"),
        (EVENT_CLOSED_INACTIVE, "abc", "success"),
        (EVENT_CASE_UPDATED, "abc", "fail"),
        (EVENT_CONVERSATION_STARTED, "def", "success"),
        (EVENT_CONVERSATION_ENDED, "def", "success"),
    ]


@pytest.mark.asyncio
async def test_audit_failure_does_not_break_monitor(scheduler, calls):
    def broken_audit(event, sid, outcome):
        raise RuntimeError("db down")

    monitor = InactivityMonitor(
        scheduler, FakeTransport(calls), FakeCaseUpdater(calls), audit=broken_audit, clock=lambda: scheduler.now
    )
    monitor.on_conversation_started("abc")
    await scheduler.advance(22 * MIN)
    assert monitor.state is MonitorState.IDLE
    assert len(calls) == 3


def test_snapshot(monitor, scheduler):
    monitor.on_conversation_started("abc")
    snap = monitor.snapshot()
    assert snap == {
        "state": "active",
        "chatSessionId": "abc",
        "warningSent": False,
        "lastActivityAt": scheduler.now,
    }
