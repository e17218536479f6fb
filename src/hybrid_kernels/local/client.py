"""
In-process clients — lifecycle records for kernels and sessions that live
inside this process.

LocalKernelClient owns the in-process kernels: it assigns their ids, keeps
their models, and calls the optional engine object built by the spec's
factory (restart/interrupt/shutdown hooks). Message execution is the
engine object's business, not ours.

LocalSessionClient owns in-process sessions. It starts and stops the
session's kernel through whatever kernel client it is given; in the
assembled service that is the HybridKernelClient, so a local session's
kernel is itself routed.
"""

from __future__ import annotations

import inspect
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Protocol

from hybrid_kernels.core.signal import Signal
from hybrid_kernels.kernel.contracts import KernelChange, KernelModel, SessionModel
from hybrid_kernels.kernel.errors import NotFoundError
from hybrid_kernels.local.specs import KernelSpecs

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


async def _call_hook(instance: Any, hook: str) -> None:
    """Call instance.<hook>() if it exists, awaiting it when needed."""
    method = getattr(instance, hook, None)
    if method is None:
        return
    result = method()
    if inspect.isawaitable(result):
        await result


class KernelClient(Protocol):
    """What LocalSessionClient needs to manage a session's kernel."""

    async def start_new(self, name: str | None = None) -> KernelModel: ...

    async def shutdown(self, kernel_id: str) -> None: ...


class LocalKernelClient:
    """Kernels running inside this process."""

    def __init__(self, specs: KernelSpecs) -> None:
        self._specs = specs
        self._kernels: dict[str, KernelModel] = {}
        self._instances: dict[str, Any] = {}
        self.changed = Signal("local_kernels.changed")

    @property
    def specs(self) -> KernelSpecs:
        return self._specs

    def _require(self, kernel_id: str) -> KernelModel:
        model = self._kernels.get(kernel_id)
        if model is None:
            raise NotFoundError(f"No in-process kernel with id {kernel_id}")
        return model

    def has_kernel(self, kernel_id: str) -> bool:
        """Whether kernel_id is currently running in this process."""
        return kernel_id in self._kernels

    async def start_new(self, name: str | None = None) -> KernelModel:
        name = name or self._specs.default
        registry = self._specs.specs
        spec = registry.get(name) if registry is not None else None
        if spec is None:
            raise NotFoundError(f"No in-process kernel spec named {name!r}")

        kernel_id = str(uuid.uuid4())
        factory = self._specs.factory(name)
        if factory is not None:
            instance = factory(kernel_id, spec)
            if inspect.isawaitable(instance):
                instance = await instance
            self._instances[kernel_id] = instance

        model = KernelModel(
            id=kernel_id,
            name=name,
            last_activity=_now(),
            execution_state="idle",
        )
        self._kernels[kernel_id] = model
        logger.info(
            "Started in-process kernel %s (%s)",
            kernel_id,
            name,
            extra={"kernel_id": kernel_id, "backend": "local"},
        )
        self.changed.emit(KernelChange(type="add", new_value=model))
        return model

    async def restart(self, kernel_id: str) -> KernelModel:
        old = self._require(kernel_id)
        await _call_hook(self._instances.get(kernel_id), "restart")
        model = KernelModel(
            id=old.id,
            name=old.name,
            last_activity=_now(),
            execution_state="idle",
            connections=old.connections,
        )
        self._kernels[kernel_id] = model
        self.changed.emit(KernelChange(type="change", old_value=old, new_value=model))
        return model

    async def interrupt(self, kernel_id: str) -> None:
        self._require(kernel_id)
        await _call_hook(self._instances.get(kernel_id), "interrupt")

    async def shutdown(self, kernel_id: str) -> None:
        model = self._require(kernel_id)
        instance = self._instances.pop(kernel_id, None)
        del self._kernels[kernel_id]
        await _call_hook(instance, "shutdown")
        logger.info(
            "Shut down in-process kernel %s",
            kernel_id,
            extra={"kernel_id": kernel_id, "backend": "local"},
        )
        self.changed.emit(KernelChange(type="remove", old_value=model))

    async def shutdown_all(self) -> None:
        for kernel_id in list(self._kernels):
            await self.shutdown(kernel_id)

    async def list_running(self) -> list[KernelModel]:
        return list(self._kernels.values())

    async def get_model(self, kernel_id: str) -> KernelModel | None:
        return self._kernels.get(kernel_id)


class LocalSessionClient:
    """Sessions managed inside this process."""

    def __init__(self, kernel_client: KernelClient) -> None:
        self._kernel_client = kernel_client
        self._sessions: dict[str, SessionModel] = {}
        self.changed = Signal("local_sessions.changed")

    def _require(self, session_id: str) -> SessionModel:
        session = self._sessions.get(session_id)
        if session is None:
            raise NotFoundError(f"No in-process session with id {session_id}")
        return session

    async def start_new(
        self,
        path: str,
        name: str = "",
        type: str = "notebook",
        kernel_name: str | None = None,
    ) -> SessionModel:
        kernel = await self._kernel_client.start_new(kernel_name)
        session = SessionModel(
            id=str(uuid.uuid4()),
            path=path,
            name=name or path,
            type=type,
            kernel=kernel,
        )
        self._sessions[session.id] = session
        logger.info(
            "Started in-process session %s for %s (kernel %s)",
            session.id,
            path,
            kernel.id,
            extra={"session_id": session.id, "kernel_id": kernel.id},
        )
        self.changed.emit(KernelChange(type="add", new_value=session))
        return session

    async def shutdown(self, session_id: str) -> None:
        session = self._require(session_id)
        if session.kernel is not None:
            try:
                await self._kernel_client.shutdown(session.kernel.id)
            except NotFoundError:
                # Kernel already gone (e.g. shut down directly); the session still ends
                logger.debug(
                    "Kernel %s of session %s was already gone",
                    session.kernel.id,
                    session_id,
                )
        self._sessions.pop(session_id, None)
        self.changed.emit(KernelChange(type="remove", old_value=session))

    async def shutdown_all(self) -> None:
        for session_id in list(self._sessions):
            await self.shutdown(session_id)

    async def list_running(self) -> list[SessionModel]:
        return list(self._sessions.values())

    async def get_model(self, session_id: str) -> SessionModel | None:
        return self._sessions.get(session_id)
