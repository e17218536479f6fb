"""
KernelPromoter — move a session from the in-process engine to the server.

The in-process engine cannot install native packages or use much memory.
When a local kernel fails with one of the configured errors (by default
ModuleNotFoundError and MemoryError), the session can be relaunched with
the same path, name, type and kernel name on the remote server.

check_error() only detects; promote() acts. The front-end asks the user in
between.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from hybrid_kernels.core.config import PromoterConfig
from hybrid_kernels.core.metrics import metrics
from hybrid_kernels.core.signal import Signal
from hybrid_kernels.kernel.contracts import SessionConnection, SessionModel
from hybrid_kernels.kernel.errors import HybridKernelsError, PromotionError
from hybrid_kernels.kernel.manager import HybridKernelManager
from hybrid_kernels.kernel.session import HybridSessionManager

logger = logging.getLogger(__name__)

Session = SessionModel | SessionConnection


def _model(session: Session) -> SessionModel:
    return session.model if isinstance(session, SessionConnection) else session


class KernelPromoter:
    def __init__(
        self,
        sessions: HybridSessionManager,
        kernels: HybridKernelManager,
        config: PromoterConfig | None = None,
    ) -> None:
        self._sessions = sessions
        self._kernels = kernels
        self._config = config or PromoterConfig()
        self.kernel_promoted = Signal("promoter.kernel_promoted")

    @property
    def auto_promote(self) -> bool:
        return self._config.auto_promote

    def is_local_kernel(self, session: Session) -> bool:
        kernel = _model(session).kernel
        return kernel is not None and self._kernels.is_local(kernel.id)

    def should_promote(self, traceback: str | Iterable[str]) -> bool:
        text = traceback if isinstance(traceback, str) else "\n".join(traceback)
        return any(pattern in text for pattern in self._config.error_patterns)

    def check_error(self, session: Session, error_content: Mapping[str, Any]) -> bool:
        """Whether an execute error on session warrants offering promotion.

        error_content is the content of a Jupyter "error" message
        (ename, evalue, traceback).
        """
        if not self._config.auto_promote or not self.is_local_kernel(session):
            return False
        traceback = error_content.get("traceback") or []
        parts = [str(error_content.get("ename") or ""), *map(str, traceback)]
        return self.should_promote("\n".join(parts))

    async def promote(self, session: Session) -> Session:
        """Relaunch session on the server. Non-local sessions come back as-is."""
        if not self.is_local_kernel(session):
            return session

        model = _model(session)
        kernel_name = model.kernel.name if model.kernel is not None else None
        logger.info(
            "Promoting session %s (%s) to the remote server",
            model.id,
            model.path,
            extra={"session_id": model.id, "backend": "remote"},
        )
        try:
            await self._sessions.shutdown(model.id)
            promoted = await self._sessions.remote.start_new(
                model.path,
                name=model.name,
                type=model.type,
                kernel_name=kernel_name,
            )
        except HybridKernelsError as e:
            metrics.inc("promoter.failures")
            raise PromotionError(f"Could not promote session {model.id}: {e}") from e

        metrics.inc("promoter.promotions")
        self.kernel_promoted.emit(promoted)
        return promoted
