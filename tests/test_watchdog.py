"""Functional tests for SessionWatchdog - reset, reload persistence, expiry, visibility."""

import pytest

from watchdog import (
    STATE_ACTIVE,
    STATE_EXPIRED,
    STATE_IDLE,
    MemoryActivityStore,
    SessionActivityStore,
    SessionWatchdog,
)

TIMEOUT = 3 * 60 * 60 * 1000


class LogoutSpy:
    def __init__(self, error=None):
        self.calls = 0
        self.error = error

    def __call__(self):
        self.calls += 1
        if self.error:
            raise self.error


def make_watchdog(clock, scheduler=None, marker=None, logout=None, timeout=TIMEOUT):
    store = MemoryActivityStore(marker)
    spy = logout or LogoutSpy()
    wd = SessionWatchdog(logout=spy, store=store, clock=clock, scheduler=scheduler, timeout_ms=timeout)
    return wd, store, spy


# ---------------------------------------------------------------------------
# Mount
# ---------------------------------------------------------------------------

class TestStart:
    def test_no_marker_schedules_full_timeout(self, clock, scheduler):
        wd, store, spy = make_watchdog(clock, scheduler)
        assert wd.start() == STATE_ACTIVE
        assert store.get() == clock.now
        [timer] = scheduler.pending()
        assert timer.due == clock.now + TIMEOUT
        assert spy.calls == 0

    def test_stale_marker_expires_immediately(self, clock, scheduler):
        """Marker older than the timeout logs out without scheduling anything."""
        wd, store, spy = make_watchdog(clock, scheduler, marker=clock.now - TIMEOUT - 1)
        assert wd.start() == STATE_EXPIRED
        assert spy.calls == 1
        assert store.get() is None
        assert scheduler.pending() == []

    def test_marker_exactly_at_timeout_expires(self, clock, scheduler):
        wd, _, spy = make_watchdog(clock, scheduler, marker=clock.now - TIMEOUT)
        assert wd.start() == STATE_EXPIRED
        assert spy.calls == 1

    def test_reload_keeps_remaining_time(self, clock, scheduler):
        """Reload with a recent marker expires after the remaining time, not a fresh window."""
        wd, _, spy = make_watchdog(clock, scheduler, marker=clock.now - (TIMEOUT - 5_000))
        assert wd.start() == STATE_ACTIVE

        scheduler.advance(4_999)
        assert spy.calls == 0
        scheduler.advance(1)
        assert wd.state == STATE_EXPIRED
        assert spy.calls == 1

    def test_non_positive_timeout_rejected(self, clock):
        with pytest.raises(ValueError):
            SessionWatchdog(logout=LogoutSpy(), store=MemoryActivityStore(), clock=clock, timeout_ms=0)

    def test_expired_is_terminal(self, clock, scheduler):
        wd, _, spy = make_watchdog(clock, scheduler, marker=clock.now - TIMEOUT - 1)
        wd.start()
        assert wd.start() == STATE_EXPIRED
        assert wd.touch("click") == STATE_EXPIRED
        assert spy.calls == 1


# ---------------------------------------------------------------------------
# Activity
# ---------------------------------------------------------------------------

class TestActivity:
    def test_activity_resets_countdown(self, clock, scheduler):
        wd, store, spy = make_watchdog(clock, scheduler)
        wd.start()

        scheduler.advance(TIMEOUT - 1_000)
        assert wd.touch("keydown") == STATE_ACTIVE
        assert store.get() == clock.now

        scheduler.advance(TIMEOUT - 1_000)
        assert spy.calls == 0
        assert wd.state == STATE_ACTIVE

        scheduler.advance(1_000)
        assert wd.state == STATE_EXPIRED
        assert spy.calls == 1

    def test_only_one_pending_timer(self, clock, scheduler):
        wd, _, _ = make_watchdog(clock, scheduler)
        wd.start()
        for event in ("mousemove", "keydown", "click", "touchstart", "scroll"):
            scheduler.advance(10)
            wd.handle_event(event)
        assert len(scheduler.pending()) == 1

    def test_unknown_event_is_ignored(self, clock, scheduler):
        wd, store, _ = make_watchdog(clock, scheduler)
        wd.start()
        stamped = store.get()
        scheduler.advance(500)
        assert wd.handle_event("resize") == STATE_ACTIVE
        assert store.get() == stamped

    def test_touch_before_start_does_nothing(self, clock, scheduler):
        wd, store, _ = make_watchdog(clock, scheduler)
        assert wd.touch("click") == STATE_IDLE
        assert store.get() is None
        assert scheduler.pending() == []

    def test_other_tab_refresh_extends_window(self, clock, scheduler):
        """A marker written through the shared store after our own stamp defers expiry."""
        wd, store, spy = make_watchdog(clock, scheduler)
        wd.start()
        scheduler.advance(1_000)
        store.set(clock.now)

        scheduler.advance(TIMEOUT - 1_000)
        assert wd.state == STATE_ACTIVE
        assert spy.calls == 0

        scheduler.advance(1_000)
        assert wd.state == STATE_EXPIRED
        assert spy.calls == 1

    def test_stop_cancels_timer(self, clock, scheduler):
        wd, _, spy = make_watchdog(clock, scheduler)
        wd.start()
        wd.stop()
        scheduler.advance(TIMEOUT * 2)
        assert spy.calls == 0


# ---------------------------------------------------------------------------
# Visibility + lazy checks
# ---------------------------------------------------------------------------

class TestVisibility:
    def test_hidden_past_timeout_expires_on_return(self, clock):
        """Without a running timer, regaining visibility re-checks expiry first."""
        wd, _, spy = make_watchdog(clock)
        wd.start()
        clock.now += TIMEOUT + 1
        assert wd.handle_event("visibilitychange") == STATE_EXPIRED
        assert spy.calls == 1

    def test_visible_within_timeout_resets(self, clock, scheduler):
        wd, store, _ = make_watchdog(clock, scheduler)
        wd.start()
        scheduler.advance(60_000)
        assert wd.visibility_changed() == STATE_ACTIVE
        assert store.get() == clock.now
        [timer] = scheduler.pending()
        assert timer.due == clock.now + TIMEOUT

    def test_check_is_lazy_expiry(self, clock):
        wd, _, spy = make_watchdog(clock)
        wd.start()
        clock.now += TIMEOUT - 1
        assert wd.check() is False
        clock.now += 1
        assert wd.check() is True
        assert spy.calls == 1

    def test_overdue_touch_without_scheduler_expires(self, clock):
        wd, _, spy = make_watchdog(clock)
        wd.start()
        clock.now += TIMEOUT
        assert wd.touch("click") == STATE_EXPIRED
        assert spy.calls == 1


# ---------------------------------------------------------------------------
# Logout + stores
# ---------------------------------------------------------------------------

class TestLogout:
    def test_failing_logout_is_not_retried(self, clock, scheduler):
        spy = LogoutSpy(error=RuntimeError("network down"))
        wd, store, _ = make_watchdog(clock, scheduler, logout=spy)
        wd.start()
        scheduler.advance(TIMEOUT)
        assert wd.state == STATE_EXPIRED
        assert store.get() is None
        scheduler.advance(TIMEOUT)
        assert spy.calls == 1

    def test_session_store_reads_and_clears_marker(self):
        session = {"booth.lastActivity": "1700000000000"}
        store = SessionActivityStore(session)
        assert store.get() == 1_700_000_000_000
        store.set(5)
        assert session["booth.lastActivity"] == 5
        store.clear()
        assert "booth.lastActivity" not in session

    def test_session_store_ignores_garbage(self):
        assert SessionActivityStore({"booth.lastActivity": "soon"}).get() is None
