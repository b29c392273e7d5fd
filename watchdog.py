# watchdog.py - Booth Collect
# Inactivity auto-logout. The last-activity marker is persisted so the
# timeout survives a reload; clock, marker storage and scheduler are
# injected so the same state machine runs per request on the server and
# under a fake clock in tests.

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, MutableMapping, Optional, Protocol

import config

logger = logging.getLogger(__name__)

ACTIVITY_KEY = "booth.lastActivity"

STATE_IDLE = "IDLE"
STATE_ACTIVE = "ACTIVE"
STATE_EXPIRED = "EXPIRED"

QUALIFYING_EVENTS = frozenset({"mousemove", "keydown", "click", "touchstart", "scroll"})
VISIBILITY_EVENT = "visibilitychange"


def system_clock_ms() -> int:
    return int(time.time() * 1000)


class ActivityStore(Protocol):
    def get(self) -> Optional[int]: ...

    def set(self, value_ms: int) -> None: ...

    def clear(self) -> None: ...


class Cancellable(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def schedule(self, delay_ms: int, callback: Callable[[], None]) -> Cancellable: ...


class MemoryActivityStore:
    def __init__(self, value_ms: Optional[int] = None):
        self.value_ms = value_ms

    def get(self) -> Optional[int]:
        return self.value_ms

    def set(self, value_ms: int) -> None:
        self.value_ms = int(value_ms)

    def clear(self) -> None:
        self.value_ms = None


class SessionActivityStore:
    """Marker kept under one key of a mapping (the Flask session cookie)."""

    def __init__(self, mapping: MutableMapping[str, Any], key: str = ACTIVITY_KEY):
        self.mapping = mapping
        self.key = key

    def get(self) -> Optional[int]:
        raw = self.mapping.get(self.key)
        if raw is None or raw == "":
            return None
        try:
            return int(raw)
        except (TypeError, ValueError):
            return None

    def set(self, value_ms: int) -> None:
        self.mapping[self.key] = int(value_ms)

    def clear(self) -> None:
        self.mapping.pop(self.key, None)


class SessionWatchdog:
    """
    ACTIVE/EXPIRED state machine around a single pending expiry callback.

    - start(): expire at once when the persisted marker is at least
      `timeout_ms` old, otherwise schedule the remaining time and stamp now.
    - touch(): cancel + reschedule a full timeout and stamp now.
    - visibility_changed(): expiry check first, then behaves like touch().
    - check(): lazy expiry check for callers without a scheduler.

    `logout` is called at most once. Failures are logged, never retried.
    """

    def __init__(
        self,
        logout: Callable[[], Any],
        store: ActivityStore,
        clock: Callable[[], int] = system_clock_ms,
        scheduler: Optional[Scheduler] = None,
        timeout_ms: Optional[int] = None,
    ):
        self.logout = logout
        self.store = store
        self.clock = clock
        self.scheduler = scheduler
        self.timeout_ms = int(timeout_ms if timeout_ms is not None else config.AUTO_LOGOUT_MS)
        if self.timeout_ms <= 0:
            raise ValueError("timeout_ms must be positive")
        self.state = STATE_IDLE
        self._pending: Optional[Cancellable] = None
        self._generation = 0
        self._own_stamp: Optional[int] = None
        self._lock = threading.RLock()

    @property
    def expired(self) -> bool:
        return self.state == STATE_EXPIRED

    def _age_ms(self, now: int) -> Optional[int]:
        marker = self.store.get()
        if marker is None:
            return None
        return now - marker

    def _cancel_pending(self) -> None:
        self._generation += 1
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def _schedule(self, delay_ms: int) -> None:
        self._cancel_pending()
        if self.scheduler is None:
            return
        generation = self._generation
        self._pending = self.scheduler.schedule(delay_ms, lambda: self._on_timer(generation))

    def _stamp_and_schedule(self, now: int, delay_ms: int) -> None:
        self.store.set(now)
        self._own_stamp = now
        self._schedule(delay_ms)

    def start(self) -> str:
        with self._lock:
            if self.state == STATE_EXPIRED:
                return self.state
            now = self.clock()
            age = self._age_ms(now)
            if age is not None and age >= self.timeout_ms:
                return self._expire_locked("stale marker on start")
            delay = self.timeout_ms if age is None else self.timeout_ms - max(0, age)
            self.state = STATE_ACTIVE
            self._stamp_and_schedule(now, delay)
            return self.state

    def touch(self, event: str = "") -> str:
        with self._lock:
            if self.state != STATE_ACTIVE:
                return self.state
            now = self.clock()
            age = self._age_ms(now)
            if self.scheduler is None and age is not None and age >= self.timeout_ms:
                # No timer fired for us; the next interaction finds the session overdue.
                return self._expire_locked("overdue on interaction")
            self._stamp_and_schedule(now, self.timeout_ms)
            return self.state

    def visibility_changed(self) -> str:
        with self._lock:
            if self.state != STATE_ACTIVE:
                return self.state
            age = self._age_ms(self.clock())
            if age is not None and age >= self.timeout_ms:
                return self._expire_locked("hidden past timeout")
            return self.touch(VISIBILITY_EVENT)

    def handle_event(self, event: str) -> str:
        name = (event or "").strip().lower()
        if name == VISIBILITY_EVENT:
            return self.visibility_changed()
        if name in QUALIFYING_EVENTS:
            return self.touch(name)
        return self.state

    def check(self) -> bool:
        with self._lock:
            if self.state == STATE_ACTIVE:
                age = self._age_ms(self.clock())
                if age is not None and age >= self.timeout_ms:
                    self._expire_locked("overdue on check")
            return self.state == STATE_EXPIRED

    def stop(self) -> None:
        with self._lock:
            self._cancel_pending()

    def _on_timer(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation or self.state != STATE_ACTIVE:
                return
            self._pending = None
            now = self.clock()
            marker = self.store.get()
            age = None if marker is None else now - marker
            refreshed = marker is not None and (self._own_stamp is None or marker > self._own_stamp)
            if refreshed and age < self.timeout_ms:
                # Marker was refreshed through the shared store (another tab).
                self._own_stamp = marker
                self._schedule(self.timeout_ms - age)
                return
            self._expire_locked("inactivity timeout")

    def _expire_locked(self, reason: str) -> str:
        self._cancel_pending()
        self.state = STATE_EXPIRED
        self.store.clear()
        logger.info("Session expired: %s", reason, extra={"event": "auto_logout"})
        try:
            self.logout()
        except Exception:
            logger.warning("Auto-logout call failed", exc_info=True)
        return self.state
