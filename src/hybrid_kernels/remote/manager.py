"""
Managers for a Jupyter server reached over REST.

Both keep a polled cache of the server's running list. A failed refresh
emits connection_failure and propagates; the poller treats it as a failed
tick and backs off. A manager that starts while its poller stands by
becomes ready with an empty cache and makes no request.
"""

from __future__ import annotations

import logging
from typing import Callable

from hybrid_kernels.core.config import PollConfig
from hybrid_kernels.core.metrics import metrics
from hybrid_kernels.kernel.contracts import (
    KernelConnection,
    KernelModel,
    Location,
    SessionConnection,
    SessionModel,
)
from hybrid_kernels.kernel.errors import HybridKernelsError, NotFoundError
from hybrid_kernels.kernel.interface import BaseManager, KernelManager, SessionManager
from hybrid_kernels.kernel.poll import Poller
from hybrid_kernels.remote.api import ServerAPI

logger = logging.getLogger(__name__)


class _PolledMixin:
    """Poller wiring shared by the server kernel and session managers."""

    _poller: Poller

    def _make_poller(
        self: BaseManager,
        poll: PollConfig,
        standby: Callable[[], bool] | None,
    ) -> Poller:
        return Poller(
            self._poll_tick,
            interval=poll.running_interval,
            max_interval=poll.running_max_interval,
            backoff=poll.backoff if poll.backoff > 1 else False,
            standby=standby,
            name=self.name,
        )

    async def _poll_tick(self) -> bool:
        await self.refresh_running()
        return True

    def _failed(self: BaseManager, error: HybridKernelsError) -> None:
        metrics.inc("remote.failures", labels={"manager": self.name})
        logger.warning(
            "%s: could not reach server: %s",
            self.name,
            error,
            extra={"backend": "remote"},
        )
        self.connection_failure.emit(error)

    async def _start_polling(self: BaseManager) -> None:
        if self._poller.in_standby:
            # No server to ask yet; refresh_soon() does the first fetch.
            logger.debug("%s: standing by, skipping initial fetch", self.name)
        else:
            try:
                await self.refresh_running()
            except HybridKernelsError:
                # The first refresh may fail; polling keeps retrying.
                pass
        self._mark_ready()
        self._poller.start()

    def refresh_soon(self) -> None:
        """Poll now and reset the backoff (e.g. after a config change)."""
        self._poller.refresh()

    @property
    def poller(self) -> Poller:
        return self._poller


class ServerKernelManager(_PolledMixin, KernelManager):
    """Kernels running on the configured Jupyter server."""

    def __init__(
        self,
        api: ServerAPI,
        poll: PollConfig | None = None,
        standby: Callable[[], bool] | None = None,
    ) -> None:
        super().__init__("remote_kernels")
        self._api = api
        self._poller = self._make_poller(poll or PollConfig(), standby)

    @property
    def api(self) -> ServerAPI:
        return self._api

    async def start(self) -> None:
        await self._start_polling()

    async def stop(self) -> None:
        await self._poller.stop()
        await super().stop()

    async def refresh_running(self) -> None:
        try:
            models = await self._api.list_kernels()
        except HybridKernelsError as e:
            self._failed(e)
            raise
        self._set_running(models)

    async def start_new(self, name: str | None = None) -> KernelConnection:
        model = await self._api.start_kernel(name)
        self._track(model)
        return self.connect_to(model)

    def connect_to(self, model: KernelModel) -> KernelConnection:
        return KernelConnection(
            model=model,
            location=Location.REMOTE,
            ws_url=self._api.kernel_ws_url(model.id),
        )

    async def restart(self, kernel_id: str) -> None:
        model = await self._api.restart_kernel(kernel_id)
        if model is not None:
            self._track(model)

    async def interrupt(self, kernel_id: str) -> None:
        await self._api.interrupt_kernel(kernel_id)

    async def shutdown(self, kernel_id: str) -> None:
        try:
            await self._api.shutdown_kernel(kernel_id)
        except NotFoundError:
            self._forget(kernel_id)
            raise
        self._forget(kernel_id)

    async def shutdown_all(self) -> None:
        await self.refresh_running()
        for model in list(self.running()):
            await self.shutdown(model.id)


class ServerSessionManager(_PolledMixin, SessionManager):
    """Sessions on the configured Jupyter server."""

    def __init__(
        self,
        api: ServerAPI,
        poll: PollConfig | None = None,
        standby: Callable[[], bool] | None = None,
    ) -> None:
        super().__init__("remote_sessions")
        self._api = api
        self._poller = self._make_poller(poll or PollConfig(), standby)

    async def start(self) -> None:
        await self._start_polling()

    async def stop(self) -> None:
        await self._poller.stop()
        await super().stop()

    async def refresh_running(self) -> None:
        try:
            sessions = await self._api.list_sessions()
        except HybridKernelsError as e:
            self._failed(e)
            raise
        self._set_running(sessions)

    async def start_new(
        self,
        path: str,
        name: str = "",
        type: str = "notebook",
        kernel_name: str | None = None,
    ) -> SessionConnection:
        session = await self._api.start_session(
            path, name=name, type=type, kernel_name=kernel_name
        )
        self._track(session)
        return self.connect_to(session)

    def connect_to(self, model: SessionModel) -> SessionConnection:
        kernel = None
        if model.kernel is not None:
            kernel = KernelConnection(
                model=model.kernel,
                location=Location.REMOTE,
                ws_url=self._api.kernel_ws_url(model.kernel.id),
            )
        return SessionConnection(model=model, location=Location.REMOTE, kernel=kernel)

    async def shutdown(self, session_id: str) -> None:
        try:
            await self._api.shutdown_session(session_id)
        except NotFoundError:
            self._forget(session_id)
            raise
        self._forget(session_id)

    async def shutdown_all(self) -> None:
        await self.refresh_running()
        for session in list(self.running()):
            await self.shutdown(session.id)
