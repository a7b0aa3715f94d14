"""Debounce and scheduling primitives that turn change bursts into actions.

All timers live in one ``TimerRegistry`` so teardown can cancel them as a
unit. Three reusable shapes cover every caller:

- ``Debounced``: trailing only; N calls inside the window fire once.
- ``ImmediateTrailing``: fire now, then once more after the delay, because
  the host UI is still settling after the triggering event.
- ``Periodic``: fixed-interval safety net for surfaces whose structural
  notifications are unreliable.

The event loop is single-threaded, so none of this needs locking.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Protocol, TypeAlias

log = logging.getLogger(__name__)

Callback: TypeAlias = Callable[[], None]


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callback) -> TimerHandle: ...


class AsyncioScheduler:
    """Adapt an asyncio event loop to the ``Scheduler`` protocol."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop if loop is not None else asyncio.get_running_loop()

    def call_later(self, delay: float, callback: Callback) -> TimerHandle:
        return self._loop.call_later(delay, callback)


@dataclass(frozen=True, slots=True)
class Timing:
    """Fixed delays, in seconds."""

    debounce: float = 0.15
    search_update: float = 0.3
    history_update: float = 0.3
    periodic_check: float = 0.8
    search_preview_retry: float = 0.2
    switch_retry: float = 0.3

    def __post_init__(self) -> None:
        for name in self.__dataclass_fields__:
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be non-negative, got {getattr(self, name)}")


# ---------------------------------------------------------------------------
# Timer bookkeeping
# ---------------------------------------------------------------------------


class TimerRegistry:
    """Tracks every live timer so they can be cancelled together."""

    def __init__(self, scheduler: Scheduler) -> None:
        self._scheduler = scheduler
        self._live: dict[int, TimerHandle] = {}
        self._next_token = 0
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return len(self._live)

    def schedule(self, delay: float, callback: Callback) -> int | None:
        """Run *callback* once after *delay*. Returns a token for ``cancel``."""
        if self._closed:
            return None
        token = self._next_token
        self._next_token += 1

        def fire() -> None:
            if self._live.pop(token, None) is None or self._closed:
                return
            callback()

        self._live[token] = self._scheduler.call_later(delay, fire)
        return token

    def cancel(self, token: int | None) -> None:
        if token is None:
            return
        handle = self._live.pop(token, None)
        if handle is not None:
            handle.cancel()

    def cancel_all(self) -> None:
        self._closed = True
        handles = list(self._live.values())
        self._live.clear()
        for handle in handles:
            handle.cancel()


# ---------------------------------------------------------------------------
# Primitives
# ---------------------------------------------------------------------------


class Debounced:
    """Trailing debounce: the last call in a burst wins, fired once."""

    def __init__(self, timers: TimerRegistry, delay: float, fn: Callback) -> None:
        self._timers = timers
        self._delay = delay
        self._fn = fn
        self._token: int | None = None

    @property
    def pending(self) -> bool:
        return self._token is not None

    def __call__(self) -> None:
        self._timers.cancel(self._token)
        self._token = self._timers.schedule(self._delay, self._fire)

    def _fire(self) -> None:
        self._token = None
        self._fn()

    def cancel(self) -> None:
        self._timers.cancel(self._token)
        self._token = None


class ImmediateTrailing(Debounced):
    """Fire immediately, then once more after the delay.

    Calls that land while the trailing timer is pending still fire
    immediately and push the single trailing re-fire back.
    """

    def __call__(self) -> None:
        self._fn()
        super().__call__()


class Periodic:
    def __init__(self, timers: TimerRegistry, interval: float, fn: Callback) -> None:
        self._timers = timers
        self._interval = interval
        self._fn = fn
        self._token: int | None = None

    @property
    def running(self) -> bool:
        return self._token is not None

    def start(self) -> None:
        if self._token is None:
            self._token = self._timers.schedule(self._interval, self._tick)

    def stop(self) -> None:
        self._timers.cancel(self._token)
        self._token = None

    def _tick(self) -> None:
        self._token = self._timers.schedule(self._interval, self._tick)
        try:
            self._fn()
        except Exception:  # the safety net keeps ticking
            log.exception("periodic check failed")


# ---------------------------------------------------------------------------
# Coalescer
# ---------------------------------------------------------------------------


class ChangeCoalescer:
    """Per-concern pending checks for rescans, search and history previews."""

    def __init__(
        self,
        scheduler: Scheduler,
        *,
        on_rescan: Callback,
        on_search: Callback,
        on_history: Callback,
        timing: Timing | None = None,
    ) -> None:
        self.timing = timing or Timing()
        self._timers = TimerRegistry(scheduler)
        self._on_search = on_search
        self._on_history = on_history
        self._rescan = Debounced(self._timers, self.timing.debounce, on_rescan)
        self._search = ImmediateTrailing(self._timers, self.timing.search_update, on_search)
        self._history = ImmediateTrailing(self._timers, self.timing.history_update, on_history)
        self._periodic = Periodic(self._timers, self.timing.periodic_check, self._periodic_tick)

    @property
    def live_timers(self) -> int:
        return len(self._timers)

    @property
    def closed(self) -> bool:
        return self._timers.closed

    def request_rescan(self) -> None:
        if not self.closed:
            self._rescan()

    def request_search_update(self) -> None:
        if not self.closed:
            self._search()

    def request_history_update(self) -> None:
        if not self.closed:
            self._history()

    def start_periodic_check(self) -> None:
        self._periodic.start()

    def stop_periodic_check(self) -> None:
        self._periodic.stop()

    def _periodic_tick(self) -> None:
        self._on_search()
        self._on_history()

    def schedule_retry(self, delay: float, callback: Callback) -> None:
        """One-shot tracked re-attempt (used after load and switch events)."""
        self._timers.schedule(delay, callback)

    def immediate_trailing(self, delay: float, callback: Callback) -> ImmediateTrailing:
        """A new immediate+trailing trigger whose timer dies with this coalescer."""
        return ImmediateTrailing(self._timers, delay, callback)

    def teardown(self) -> None:
        self._timers.cancel_all()
        log.debug("coalescer torn down")
