"""
Poller — a restartable background refresh task with backoff and standby.

Each tick awaits the refresh action:
- truthy result → next delay resets to the base interval
- falsy result or exception → delay grows by the backoff factor, capped at
  max_interval

refresh() wakes the task immediately, skips the standby check and resets
the backoff; use it when configuration changes or a caller asks for fresh
data. While standby() returns True, scheduled ticks are skipped so hidden
front-ends do not keep hitting the network.

The task does not exist until start(), so owners can await their first
refresh before periodic polling begins. dispose() is idempotent.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

RefreshAction = Callable[[], Awaitable[Any]]


class Visibility:
    """Whether any front-end is currently looking at the data we poll."""

    def __init__(self, hidden: bool = False) -> None:
        self._hidden = hidden

    @property
    def hidden(self) -> bool:
        return self._hidden

    def set_hidden(self, hidden: bool) -> None:
        if hidden != self._hidden:
            logger.debug("Front-end visibility changed (hidden=%s)", hidden)
        self._hidden = hidden

    def is_hidden(self) -> bool:
        """Standby predicate for Poller."""
        return self._hidden


class Poller:
    """Periodically run an async refresh action."""

    def __init__(
        self,
        factory: RefreshAction,
        *,
        interval: float,
        max_interval: float | None = None,
        backoff: bool | float = True,
        standby: Callable[[], bool] | None = None,
        name: str = "poller",
    ) -> None:
        self._factory = factory
        self._interval = interval
        self._max_interval = max(max_interval or interval, interval)
        if backoff is True:
            self._growth = 2.0
        elif backoff is False:
            self._growth = 1.0
        else:
            self._growth = max(float(backoff), 1.0)
        self._standby = standby
        self.name = name

        self._delay = interval
        self._wake = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._disposed = False
        self._ticks = 0

    # ─── Properties ──────────────────────────────────────────────

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    @property
    def current_delay(self) -> float:
        """Delay before the next scheduled tick."""
        return self._delay

    @property
    def ticks(self) -> int:
        """Number of times the refresh action has run."""
        return self._ticks

    @property
    def in_standby(self) -> bool:
        """Whether scheduled ticks are currently being skipped."""
        return self._standby is not None and bool(self._standby())

    # ─── Control ─────────────────────────────────────────────────

    def start(self) -> None:
        """Begin polling. No-op if already running or disposed."""
        if self._disposed or self.is_running:
            return
        self._delay = self._interval
        self._wake.clear()
        self._task = asyncio.create_task(self._run(), name=f"poll-{self.name}")
        logger.debug("Poller %s started (interval=%.1fs)", self.name, self._interval)

    def refresh(self) -> None:
        """Force an immediate tick and reset the backoff."""
        if self._disposed:
            return
        self._delay = self._interval
        self._wake.set()

    def dispose(self) -> None:
        """Stop polling for good. Safe to call more than once."""
        if self._disposed:
            return
        self._disposed = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        logger.debug("Poller %s disposed", self.name)

    async def stop(self) -> None:
        """Dispose and wait for the task to unwind."""
        task = self._task
        self.dispose()
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    # ─── Loop ────────────────────────────────────────────────────

    async def _sleep(self, delay: float) -> bool:
        """Wait for delay seconds. Returns True if woken by refresh()."""
        try:
            await asyncio.wait_for(self._wake.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        self._wake.clear()
        return True

    async def _run(self) -> None:
        while not self._disposed:
            manual = await self._sleep(self._delay)
            if self._disposed:
                break
            if not manual and self._standby is not None and self._standby():
                continue

            self._ticks += 1
            try:
                result = await self._factory()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning("Poller %s: refresh failed: %s", self.name, e)
                result = False

            if result or manual:
                self._delay = self._interval
            else:
                self._delay = min(self._delay * self._growth, self._max_interval)
