"""
Managers for the in-process engine.

They mirror the clients' state into the BaseManager running cache and turn
client change events into running_changed snapshots, so the routers can
treat the in-process engine exactly like the remote server.
"""

from __future__ import annotations

import logging
from typing import Callable

from hybrid_kernels.kernel.contracts import (
    KernelChange,
    KernelConnection,
    KernelModel,
    Location,
    SessionConnection,
    SessionModel,
)
from hybrid_kernels.kernel.interface import KernelManager, SessionManager
from hybrid_kernels.local.client import LocalKernelClient, LocalSessionClient

logger = logging.getLogger(__name__)

KernelConnector = Callable[[KernelModel], KernelConnection]


def _apply_change(manager, change: KernelChange) -> None:
    if change.type == "remove" and change.old_value is not None:
        manager._forget(change.old_value.id)
    elif change.new_value is not None:
        manager._track(change.new_value)


class LocalKernelManager(KernelManager):
    """Kernel manager over the in-process LocalKernelClient."""

    def __init__(self, client: LocalKernelClient) -> None:
        super().__init__("local_kernels")
        self._client = client
        client.changed.connect(self._on_client_changed)

    @property
    def client(self) -> LocalKernelClient:
        return self._client

    def _on_client_changed(self, change: KernelChange) -> None:
        _apply_change(self, change)

    async def start(self) -> None:
        await self.refresh_running()
        self._mark_ready()

    async def stop(self) -> None:
        self._client.changed.disconnect(self._on_client_changed)
        await super().stop()

    async def refresh_running(self) -> None:
        self._set_running(await self._client.list_running())

    async def start_new(self, name: str | None = None) -> KernelConnection:
        model = await self._client.start_new(name)
        return self.connect_to(model)

    def connect_to(self, model: KernelModel) -> KernelConnection:
        return KernelConnection(model=model, location=Location.LOCAL)

    async def restart(self, kernel_id: str) -> None:
        await self._client.restart(kernel_id)

    async def interrupt(self, kernel_id: str) -> None:
        await self._client.interrupt(kernel_id)

    async def shutdown(self, kernel_id: str) -> None:
        await self._client.shutdown(kernel_id)

    async def shutdown_all(self) -> None:
        await self._client.shutdown_all()


class LocalSessionManager(SessionManager):
    """Session manager over the in-process LocalSessionClient."""

    def __init__(
        self,
        client: LocalSessionClient,
        kernel_connector: KernelConnector | None = None,
    ) -> None:
        super().__init__("local_sessions")
        self._client = client
        self._kernel_connector = kernel_connector
        client.changed.connect(self._on_client_changed)

    def _on_client_changed(self, change: KernelChange) -> None:
        _apply_change(self, change)

    async def start(self) -> None:
        await self.refresh_running()
        self._mark_ready()

    async def stop(self) -> None:
        self._client.changed.disconnect(self._on_client_changed)
        await super().stop()

    async def refresh_running(self) -> None:
        self._set_running(await self._client.list_running())

    async def start_new(
        self,
        path: str,
        name: str = "",
        type: str = "notebook",
        kernel_name: str | None = None,
    ) -> SessionConnection:
        model = await self._client.start_new(
            path, name=name, type=type, kernel_name=kernel_name
        )
        return self.connect_to(model)

    def connect_to(self, model: SessionModel) -> SessionConnection:
        kernel = None
        if model.kernel is not None:
            if self._kernel_connector is not None:
                kernel = self._kernel_connector(model.kernel)
            else:
                kernel = KernelConnection(model=model.kernel, location=Location.LOCAL)
        return SessionConnection(model=model, location=Location.LOCAL, kernel=kernel)

    async def shutdown(self, session_id: str) -> None:
        await self._client.shutdown(session_id)

    async def shutdown_all(self) -> None:
        await self._client.shutdown_all()
