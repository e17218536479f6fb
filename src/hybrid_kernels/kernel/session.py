"""
HybridSessionManager — routes session operations to one of two backends.

Same rules as HybridKernelManager: a new session goes to the in-process
engine when it serves the requested kernel name, and any session id found
in the in-process running list stays there.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Iterator

from hybrid_kernels.core.metrics import metrics
from hybrid_kernels.core.signal import Signal
from hybrid_kernels.kernel.contracts import Location, SessionConnection, SessionModel
from hybrid_kernels.kernel.errors import HybridKernelsError
from hybrid_kernels.kernel.interface import SessionManager
from hybrid_kernels.local.specs import KernelSpecs

logger = logging.getLogger(__name__)


class HybridSessionManager:
    """One session manager surface over the in-process engine and a server."""

    def __init__(
        self,
        local: SessionManager,
        remote: SessionManager,
        local_specs: KernelSpecs,
    ) -> None:
        self._local = local
        self._remote = remote
        self._local_specs = local_specs

        self.running_changed = Signal("sessions.running_changed")
        self.connection_failure = Signal("sessions.connection_failure")

        local.running_changed.connect(self._on_backend_changed)
        remote.running_changed.connect(self._on_backend_changed)
        remote.connection_failure.connect(self.connection_failure.emit)

    @property
    def local(self) -> SessionManager:
        return self._local

    @property
    def remote(self) -> SessionManager:
        return self._remote

    # ─── Classification ──────────────────────────────────────────

    def classify_name(self, kernel_name: str | None) -> Location:
        return Location.LOCAL if self._local_specs.has(kernel_name) else Location.REMOTE

    def classify_id(self, session_id: str) -> Location:
        return Location.LOCAL if self._local.has(session_id) else Location.REMOTE

    def is_local(self, session_id: str) -> bool:
        return self.classify_id(session_id) is Location.LOCAL

    def _route(self, op: str, location: Location, session_id: str = "") -> SessionManager:
        metrics.inc("router.sessions.routed", labels={"op": op, "backend": location.value})
        logger.debug(
            "Routing session %s to %s backend",
            op,
            location.value,
            extra={"op": op, "session_id": session_id, "backend": location.value},
        )
        return self._local if location is Location.LOCAL else self._remote

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

    def running(self) -> Iterator[SessionModel]:
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

    async def find_by_id(self, session_id: str) -> SessionModel | None:
        session = await self._local.find_by_id(session_id)
        if session is not None:
            return session
        try:
            return await self._remote.find_by_id(session_id)
        except HybridKernelsError as e:
            logger.debug("Remote lookup of session %s failed: %s", session_id, e)
            return None

    async def find_by_path(self, path: str) -> SessionModel | None:
        session = await self._local.find_by_path(path)
        if session is not None:
            return session
        try:
            return await self._remote.find_by_path(path)
        except HybridKernelsError as e:
            logger.debug("Remote lookup of session for %s failed: %s", path, e)
            return None

    # ─── Operations ──────────────────────────────────────────────

    async def start_new(
        self,
        path: str,
        name: str = "",
        type: str = "notebook",
        kernel_name: str | None = None,
    ) -> SessionConnection:
        backend = self._route("start", self.classify_name(kernel_name))
        return await backend.start_new(
            path, name=name, type=type, kernel_name=kernel_name
        )

    def connect_to(self, model: SessionModel) -> SessionConnection:
        backend = self._route("connect", self.classify_id(model.id), model.id)
        return backend.connect_to(model)

    async def shutdown(self, session_id: str) -> None:
        backend = self._route("shutdown", self.classify_id(session_id), session_id)
        await backend.shutdown(session_id)

    async def stop_if_needed(self, path: str) -> None:
        """Shut down the session open on path, wherever it runs."""
        session = await self.find_by_path(path)
        if session is not None:
            await self.shutdown(session.id)

    async def shutdown_all(self) -> None:
        await self._local.shutdown_all()
        try:
            await self._remote.shutdown_all()
        except HybridKernelsError as e:
            logger.warning("Could not shut down all remote sessions: %s", e)
