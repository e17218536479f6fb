"""
HybridKernelClient — kernel routing at the protocol-client level.

Where HybridKernelManager routes between managers, this routes between the
in-process LocalKernelClient and the server's REST API. In-process
sessions start their kernels through it, so a local session asking for a
kernel the engine does not serve still gets one, on the server.

Signals:
- changed: the in-process client's raw add/remove/change events
- running_changed: merged list_running() snapshot after any change
"""

from __future__ import annotations

import logging

from hybrid_kernels.core.metrics import metrics
from hybrid_kernels.core.signal import Signal
from hybrid_kernels.kernel.contracts import (
    KernelChange,
    KernelConnection,
    KernelModel,
    Location,
)
from hybrid_kernels.kernel.errors import HybridKernelsError
from hybrid_kernels.local.client import LocalKernelClient
from hybrid_kernels.local.specs import KernelSpecs
from hybrid_kernels.remote.api import ServerAPI

logger = logging.getLogger(__name__)


class HybridKernelClient:
    """Start, control and list kernels on either backend."""

    def __init__(
        self,
        local: LocalKernelClient,
        api: ServerAPI,
        local_specs: KernelSpecs,
    ) -> None:
        self._local = local
        self._api = api
        self._local_specs = local_specs

        self.changed = Signal("kernel_client.changed")
        self.running_changed = Signal("kernel_client.running_changed")

        local.changed.connect(self._on_local_changed)

    @property
    def local(self) -> LocalKernelClient:
        return self._local

    # ─── Classification ──────────────────────────────────────────

    def classify_name(self, name: str | None) -> Location:
        return Location.LOCAL if self._local_specs.has(name) else Location.REMOTE

    def classify_id(self, kernel_id: str) -> Location:
        return Location.LOCAL if self._local.has_kernel(kernel_id) else Location.REMOTE

    def _count(self, op: str, location: Location) -> None:
        metrics.inc("router.client.routed", labels={"op": op, "backend": location.value})

    # ─── Change events ───────────────────────────────────────────

    def _on_local_changed(self, change: KernelChange):
        self.changed.emit(change)
        return self._emit_running()

    async def _emit_running(self) -> None:
        self.running_changed.emit(await self.list_running())

    # ─── Operations ──────────────────────────────────────────────

    async def start_new(self, name: str | None = None) -> KernelModel:
        location = self.classify_name(name)
        self._count("start", location)
        if location is Location.LOCAL:
            return await self._local.start_new(name)
        model = await self._api.start_kernel(name)
        await self._emit_running()
        return model

    async def restart(self, kernel_id: str) -> KernelModel | None:
        location = self.classify_id(kernel_id)
        self._count("restart", location)
        if location is Location.LOCAL:
            return await self._local.restart(kernel_id)
        return await self._api.restart_kernel(kernel_id)

    async def interrupt(self, kernel_id: str) -> None:
        location = self.classify_id(kernel_id)
        self._count("interrupt", location)
        if location is Location.LOCAL:
            await self._local.interrupt(kernel_id)
        else:
            await self._api.interrupt_kernel(kernel_id)

    async def shutdown(self, kernel_id: str) -> None:
        location = self.classify_id(kernel_id)
        self._count("shutdown", location)
        if location is Location.LOCAL:
            await self._local.shutdown(kernel_id)
        else:
            await self._api.shutdown_kernel(kernel_id)
            await self._emit_running()

    async def shutdown_all(self) -> None:
        """Shut down in-process kernels, then (best-effort) the server's."""
        await self._local.shutdown_all()
        try:
            remote = await self._api.list_kernels()
            for model in remote:
                await self._api.shutdown_kernel(model.id)
        except HybridKernelsError as e:
            logger.warning("Could not shut down all remote kernels: %s", e)

    async def list_running(self) -> list[KernelModel]:
        """Both backends' kernels; just the in-process ones if the server is down."""
        local = await self._local.list_running()
        try:
            remote = await self._api.list_kernels()
        except HybridKernelsError as e:
            logger.debug("Listing remote kernels failed: %s", e)
            return local
        return [*local, *remote]

    async def get_model(self, kernel_id: str) -> KernelModel | None:
        model = await self._local.get_model(kernel_id)
        if model is not None:
            return model
        try:
            return await self._api.get_kernel(kernel_id)
        except HybridKernelsError as e:
            logger.debug("Remote lookup of kernel %s failed: %s", kernel_id, e)
            return None

    def connect_to(self, model: KernelModel) -> KernelConnection:
        if self.classify_id(model.id) is Location.LOCAL:
            return KernelConnection(model=model, location=Location.LOCAL)
        return KernelConnection(
            model=model,
            location=Location.REMOTE,
            ws_url=self._api.kernel_ws_url(model.id),
        )
