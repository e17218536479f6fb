"""
HybridKernelManager — routes kernel operations to one of two backends.

Routing rules:
- start_new(name): the in-process engine if it registers a spec called
  name, else the server (which also handles name=None with its default)
- everything addressed by id: the in-process engine if the id is in its
  running list, else the server

Running state is the concatenation of both backends' snapshots. Any
backend change re-derives that snapshot and emits it on running_changed.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Iterator

from hybrid_kernels.core.metrics import metrics
from hybrid_kernels.core.signal import Signal
from hybrid_kernels.kernel.contracts import KernelConnection, KernelModel, Location
from hybrid_kernels.kernel.errors import HybridKernelsError
from hybrid_kernels.kernel.interface import KernelManager
from hybrid_kernels.local.specs import KernelSpecs

logger = logging.getLogger(__name__)


class HybridKernelManager:
    """One kernel manager surface over the in-process engine and a server."""

    def __init__(
        self,
        local: KernelManager,
        remote: KernelManager,
        local_specs: KernelSpecs,
    ) -> None:
        self._local = local
        self._remote = remote
        self._local_specs = local_specs

        self.running_changed = Signal("kernels.running_changed")
        self.connection_failure = Signal("kernels.connection_failure")

        local.running_changed.connect(self._on_backend_changed)
        remote.running_changed.connect(self._on_backend_changed)
        remote.connection_failure.connect(self.connection_failure.emit)

    @property
    def local(self) -> KernelManager:
        return self._local

    @property
    def remote(self) -> KernelManager:
        return self._remote

    # ─── Classification ──────────────────────────────────────────

    def classify_name(self, name: str | None) -> Location:
        return Location.LOCAL if self._local_specs.has(name) else Location.REMOTE

    def classify_id(self, kernel_id: str) -> Location:
        return Location.LOCAL if self._local.has(kernel_id) else Location.REMOTE

    def is_local(self, kernel_id: str) -> bool:
        return self.classify_id(kernel_id) is Location.LOCAL

    def _backend(self, location: Location) -> KernelManager:
        return self._local if location is Location.LOCAL else self._remote

    def _route(self, op: str, location: Location, kernel_id: str = "") -> KernelManager:
        metrics.inc("router.kernels.routed", labels={"op": op, "backend": location.value})
        logger.debug(
            "Routing kernel %s to %s backend",
            op,
            location.value,
            extra={"op": op, "kernel_id": kernel_id, "backend": location.value},
        )
        return self._backend(location)

    # ─── Readiness ───────────────────────────────────────────────

    @property
    def is_ready(self) -> bool:
        return self._local.is_ready and self._remote.is_ready

    async def ready(self) -> None:
        await asyncio.gather(self._local.ready(), self._remote.ready())

    async def start(self) -> None:
        await asyncio.gather(self._local.start(), self._remote.start())

    async def stop(self) -> None:
        self._local.running_changed.disconnect(self._on_backend_changed)
        self._remote.running_changed.disconnect(self._on_backend_changed)
        await asyncio.gather(self._local.stop(), self._remote.stop())
        self.running_changed.close()
        self.connection_failure.close()

    # ─── Running state ───────────────────────────────────────────

    def running(self) -> Iterator[KernelModel]:
        return iter([*self._local.running(), *self._remote.running()])

    @property
    def running_count(self) -> int:
        return self._local.running_count + self._remote.running_count

    def _on_backend_changed(self, _models: list) -> None:
        self.running_changed.emit(list(self.running()))

    async def refresh_running(self) -> None:
        await asyncio.gather(
            self._local.refresh_running(), self._remote.refresh_running()
        )

    async def find_by_id(self, kernel_id: str) -> KernelModel | None:
        model = await self._local.find_by_id(kernel_id)
        if model is not None:
            return model
        try:
            return await self._remote.find_by_id(kernel_id)
        except HybridKernelsError as e:
            logger.debug("Remote lookup of kernel %s failed: %s", kernel_id, e)
            return None

    # ─── Operations ──────────────────────────────────────────────

    async def start_new(self, name: str | None = None) -> KernelConnection:
        backend = self._route("start", self.classify_name(name))
        return await backend.start_new(name)

    def connect_to(self, model: KernelModel) -> KernelConnection:
        backend = self._route("connect", self.classify_id(model.id), model.id)
        return backend.connect_to(model)

    async def shutdown(self, kernel_id: str) -> None:
        backend = self._route("shutdown", self.classify_id(kernel_id), kernel_id)
        await backend.shutdown(kernel_id)

    async def restart(self, kernel_id: str) -> None:
        backend = self._route("restart", self.classify_id(kernel_id), kernel_id)
        await backend.restart(kernel_id)

    async def interrupt(self, kernel_id: str) -> None:
        backend = self._route("interrupt", self.classify_id(kernel_id), kernel_id)
        await backend.interrupt(kernel_id)

    async def shutdown_all(self) -> None:
        """Shut down every kernel; the server side is best-effort."""
        await self._local.shutdown_all()
        try:
            await self._remote.shutdown_all()
        except HybridKernelsError as e:
            logger.warning("Could not shut down all remote kernels: %s", e)
