"""
Manager Interfaces — what a backend must provide to be routed to.

A backend manager owns the lifecycle of the kernels (or sessions) it
created and keeps a cache of its running models:

- running() is a synchronous snapshot of that cache
- refresh_running() re-reads the backend and updates the cache
- running_changed fires with the full list whenever the cache changes

Implementations:
- LocalKernelManager / LocalSessionManager: the in-process engine
- ServerKernelManager / ServerSessionManager: a Jupyter server over REST
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Iterator

from hybrid_kernels.core.signal import Signal
from hybrid_kernels.kernel.contracts import (
    KernelConnection,
    KernelModel,
    SessionConnection,
    SessionModel,
)

logger = logging.getLogger(__name__)


class BaseManager(ABC):
    """Running-model cache, readiness and change signals shared by backends."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.running_changed = Signal(f"{name}.running_changed")
        self.connection_failure = Signal(f"{name}.connection_failure")
        self._models: dict[str, Any] = {}
        self._ready = asyncio.Event()
        self._disposed = False

    # ─── Readiness ───────────────────────────────────────────────

    @property
    def is_ready(self) -> bool:
        return self._ready.is_set()

    async def ready(self) -> None:
        """Wait until the first refresh has completed."""
        await self._ready.wait()

    def _mark_ready(self) -> None:
        if not self._disposed:
            self._ready.set()

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    # ─── Running cache ───────────────────────────────────────────

    def running(self) -> Iterator[Any]:
        """Snapshot iterator over the cached running models."""
        return iter(list(self._models.values()))

    @property
    def running_count(self) -> int:
        return len(self._models)

    def has(self, model_id: str) -> bool:
        return model_id in self._models

    def _set_running(self, models: list[Any]) -> bool:
        """Replace the cache. Emits and returns True if anything changed."""
        fresh = {m.id: m for m in models}
        if fresh == self._models:
            return False
        self._models = fresh
        self.running_changed.emit(list(self._models.values()))
        return True

    def _track(self, model: Any) -> None:
        if self._models.get(model.id) != model:
            self._models[model.id] = model
            self.running_changed.emit(list(self._models.values()))

    def _forget(self, model_id: str) -> None:
        if self._models.pop(model_id, None) is not None:
            self.running_changed.emit(list(self._models.values()))

    # ─── Lifecycle ───────────────────────────────────────────────

    @abstractmethod
    async def start(self) -> None:
        """Load the initial running list and begin background refreshes."""
        ...

    async def stop(self) -> None:
        """Stop background work. Running kernels are left alone."""
        self._disposed = True
        self.running_changed.close()
        self.connection_failure.close()

    @abstractmethod
    async def refresh_running(self) -> None:
        ...

    async def find_by_id(self, model_id: str) -> Any | None:
        """Cached model, else refresh once and look again."""
        if model_id in self._models:
            return self._models[model_id]
        await self.refresh_running()
        return self._models.get(model_id)

    @abstractmethod
    async def shutdown(self, model_id: str) -> None:
        ...

    @abstractmethod
    async def shutdown_all(self) -> None:
        ...


class KernelManager(BaseManager):
    """A backend that can start and control kernels."""

    @abstractmethod
    async def start_new(self, name: str | None = None) -> KernelConnection:
        """Start a kernel of the given spec (backend default when None)."""
        ...

    @abstractmethod
    def connect_to(self, model: KernelModel) -> KernelConnection:
        ...

    @abstractmethod
    async def restart(self, kernel_id: str) -> None:
        ...

    @abstractmethod
    async def interrupt(self, kernel_id: str) -> None:
        ...


class SessionManager(BaseManager):
    """A backend that can start and control sessions."""

    @abstractmethod
    async def start_new(
        self,
        path: str,
        name: str = "",
        type: str = "notebook",
        kernel_name: str | None = None,
    ) -> SessionConnection:
        ...

    @abstractmethod
    def connect_to(self, model: SessionModel) -> SessionConnection:
        ...

    async def find_by_path(self, path: str) -> SessionModel | None:
        for session in self.running():
            if session.path == path:
                return session
        await self.refresh_running()
        for session in self.running():
            if session.path == path:
                return session
        return None

    async def stop_if_needed(self, path: str) -> None:
        """Shut down the session bound to path, if there is one."""
        session = await self.find_by_path(path)
        if session is not None:
            await self.shutdown(session.id)
