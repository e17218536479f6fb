"""Tests for KernelPromoter — relaunching local sessions on the server."""

from unittest.mock import MagicMock

import pytest

from hybrid_kernels.core.config import PromoterConfig
from hybrid_kernels.core.metrics import metrics
from hybrid_kernels.kernel.contracts import Location, SessionModel
from hybrid_kernels.kernel.errors import PromotionError, RemoteUnreachableError
from hybrid_kernels.kernel.promoter import KernelPromoter

MODULE_ERROR = {
    "ename": "ModuleNotFoundError",
    "evalue": "No module named 'torch'",
    "traceback": ["Traceback (most recent call last):", "ModuleNotFoundError: No module named 'torch'"],
}


# ── Detection ──────────────────────────────────────────────


class TestDetection:
    @pytest.mark.asyncio
    async def test_should_promote_default_patterns(self, services):
        promoter = services.promoter
        assert promoter.should_promote("MemoryError: out of memory")
        assert promoter.should_promote(["line", "ModuleNotFoundError: x"])
        assert not promoter.should_promote("ZeroDivisionError: division by zero")

    @pytest.mark.asyncio
    async def test_custom_patterns(self, services):
        promoter = KernelPromoter(
            services.sessions, services.kernels, PromoterConfig(error_patterns=("OSError",))
        )
        assert promoter.should_promote("OSError: disk")
        assert not promoter.should_promote("MemoryError")

    @pytest.mark.asyncio
    async def test_check_error_on_local_session(self, services):
        session = await services.sessions.start_new("a.ipynb", kernel_name="python")

        assert services.promoter.is_local_kernel(session)
        assert services.promoter.check_error(session, MODULE_ERROR)
        assert not services.promoter.check_error(
            session, {"ename": "KeyError", "traceback": ["KeyError: 'x'"]}
        )

    @pytest.mark.asyncio
    async def test_check_error_on_remote_session(self, services):
        session = await services.sessions.start_new("b.ipynb", kernel_name="ir")

        assert not services.promoter.is_local_kernel(session)
        assert not services.promoter.check_error(session, MODULE_ERROR)

    @pytest.mark.asyncio
    async def test_check_error_disabled(self, services):
        session = await services.sessions.start_new("a.ipynb", kernel_name="python")
        promoter = KernelPromoter(
            services.sessions, services.kernels, PromoterConfig(auto_promote=False)
        )
        assert not promoter.check_error(session, MODULE_ERROR)

    @pytest.mark.asyncio
    async def test_session_without_kernel_is_not_local(self, services):
        assert not services.promoter.is_local_kernel(SessionModel(id="s", path="p"))


# ── Promotion ──────────────────────────────────────────────


class TestPromote:
    @pytest.mark.asyncio
    async def test_promote_moves_session_to_server(self, services, server):
        session = await services.sessions.start_new(
            "work.ipynb", name="Work", kernel_name="python"
        )
        promoted_slot = MagicMock()
        services.promoter.kernel_promoted.connect(promoted_slot)

        promoted = await services.promoter.promote(session)

        assert promoted.location is Location.REMOTE
        assert promoted.path == "work.ipynb"
        assert promoted.model.name == "Work"
        assert promoted.kernel.name == "python"
        assert services.sessions.local.running_count == 0
        assert services.kernels.local.running_count == 0
        assert promoted.id in server.sessions
        promoted_slot.assert_called_once_with(promoted)
        assert metrics.counter("promoter.promotions") == 1

    @pytest.mark.asyncio
    async def test_promote_remote_session_is_unchanged(self, services, server):
        session = await services.sessions.start_new("r.ipynb", kernel_name="ir")
        server.requests.clear()

        assert await services.promoter.promote(session) is session
        assert server.requests == []

    @pytest.mark.asyncio
    async def test_promote_failure_raises_promotion_error(self, services, server):
        session = await services.sessions.start_new("a.ipynb", kernel_name="python")
        server.unreachable = True

        with pytest.raises(PromotionError) as exc_info:
            await services.promoter.promote(session)

        assert isinstance(exc_info.value.__cause__, RemoteUnreachableError)
        assert metrics.counter("promoter.failures") == 1
