"""Repeating tick sources for the emergency countdown.

A handle's ``cancel`` is synchronous and idempotent: once it returns, the
callback will not run again for that handle.
"""

from __future__ import annotations

import asyncio
from typing import Callable, List, Protocol

TickCallback = Callable[[], None]


class TickHandle(Protocol):
    @property
    def active(self) -> bool:
        ...

    def cancel(self) -> None:
        ...


class TickSource(Protocol):
    def start(self, callback: TickCallback, interval_s: float) -> TickHandle:
        ...


class LoopTickHandle:
    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        callback: TickCallback,
        interval_s: float,
    ) -> None:
        self._loop = loop
        self._callback = callback
        self._interval_s = interval_s
        self._timer: asyncio.TimerHandle | None = None
        self._active = True
        self._next_at = loop.time() + interval_s
        self._schedule()

    @property
    def active(self) -> bool:
        return self._active

    def _schedule(self) -> None:
        # Anchored to the first deadline so slow callbacks do not stretch the countdown.
        self._timer = self._loop.call_at(self._next_at, self._fire)

    def _fire(self) -> None:
        if not self._active:
            return
        self._next_at += self._interval_s
        self._schedule()
        self._callback()

    def cancel(self) -> None:
        self._active = False
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None


class LoopTickSource:
    """Schedules ticks on the running asyncio loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def start(self, callback: TickCallback, interval_s: float) -> LoopTickHandle:
        loop = self._loop or asyncio.get_running_loop()
        return LoopTickHandle(loop, callback, interval_s)


class ManualTickHandle:
    def __init__(self, callback: TickCallback, interval_s: float) -> None:
        self.callback = callback
        self.interval_s = interval_s
        self.fired = 0
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        self._active = False


class ManualTickSource:
    """Deterministic tick source; ticks fire only when ``advance`` is called."""

    def __init__(self) -> None:
        self.handles: List[ManualTickHandle] = []

    def start(self, callback: TickCallback, interval_s: float) -> ManualTickHandle:
        handle = ManualTickHandle(callback, interval_s)
        self.handles.append(handle)
        return handle

    def live(self) -> List[ManualTickHandle]:
        return [handle for handle in self.handles if handle.active]

    def advance(self, ticks: int = 1) -> int:
        """Fire up to ``ticks`` rounds on every live handle; returns callbacks run."""
        fired = 0
        for _ in range(ticks):
            live = self.live()
            if not live:
                break
            for handle in live:
                if not handle.active:
                    continue
                handle.fired += 1
                fired += 1
                handle.callback()
        return fired
