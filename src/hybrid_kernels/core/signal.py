"""
Signal — a single-topic notification channel.

connect(slot) registers a callback; slot(payload) is called on every emit.
Coroutine slots are scheduled on the running loop and their exceptions are
logged. Emitting outside a running loop (e.g. registering an in-process
kernel spec at import time) drops async slots with a debug log; owners
refresh on start anyway.

Delivery is at-least-once from the consumer's point of view: emitters send
full snapshots, so a slot that sees the same state twice is harmless.

Usage:
    changed = Signal("specs_changed")
    changed.connect(lambda specs: print(specs.default))
    changed.emit(registry)
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)

Slot = Callable[[Any], Any]


class Signal:
    """Callback list for one kind of event."""

    def __init__(self, name: str = "") -> None:
        self.name = name
        self._slots: list[Slot] = []
        # Keep references so pending slot tasks are not garbage collected
        self._tasks: set[asyncio.Task] = set()

    # ─── Callbacks ───────────────────────────────────────────────

    def connect(self, slot: Slot) -> None:
        """Register a slot. Connecting the same slot twice is a no-op."""
        if slot not in self._slots:
            self._slots.append(slot)

    def disconnect(self, slot: Slot) -> bool:
        """Remove a slot. Returns False if it was not connected."""
        try:
            self._slots.remove(slot)
            return True
        except ValueError:
            return False

    def emit(self, payload: Any = None) -> int:
        """
        Deliver payload to every slot.

        Never raises because of a misbehaving slot. Returns the number of
        slots that received the payload.
        """
        delivered = 0
        for slot in list(self._slots):
            try:
                result = slot(payload)
            except Exception:
                logger.exception("Signal %s: slot %r failed", self.name, slot)
                continue
            if inspect.isawaitable(result) and not self._schedule(result):
                continue
            delivered += 1
        return delivered

    def _schedule(self, awaitable: Any) -> bool:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("Signal %s: no running loop, async slot skipped", self.name)
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return False
        task = asyncio.ensure_future(awaitable, loop=loop)
        self._tasks.add(task)
        task.add_done_callback(self._on_slot_done)
        return True

    def _on_slot_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Signal %s: async slot failed: %s", self.name, exc, exc_info=exc
            )

    # ─── Lifecycle ───────────────────────────────────────────────

    async def drain(self) -> None:
        """Wait for async slots scheduled so far to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def close(self) -> None:
        """Disconnect all slots."""
        self._slots.clear()

    @property
    def slot_count(self) -> int:
        return len(self._slots)
