"""Tests for the in-process engine: spec registry, clients and managers."""

from unittest.mock import MagicMock

import pytest

from hybrid_kernels.kernel.contracts import KernelSpec, Location
from hybrid_kernels.kernel.errors import NotFoundError
from hybrid_kernels.local import (
    KernelSpecs,
    LocalKernelClient,
    LocalKernelManager,
    LocalSessionClient,
    LocalSessionManager,
)


# ── KernelSpecs ────────────────────────────────────────────


class TestKernelSpecs:
    def test_empty_registry_is_none(self):
        assert KernelSpecs().specs is None

    def test_first_registered_becomes_default(self):
        specs = KernelSpecs()
        specs.register(KernelSpec(name="a", display_name="A"))
        specs.register(KernelSpec(name="b", display_name="B"))
        assert specs.default == "a"
        assert set(specs.specs.kernelspecs) == {"a", "b"}

    def test_register_emits_new_registry(self):
        specs = KernelSpecs()
        slot = MagicMock()
        specs.changed.connect(slot)

        specs.register(KernelSpec(name="a", display_name="A"))

        registry = slot.call_args.args[0]
        assert registry is specs.specs
        assert "a" in registry

    def test_registry_replaced_not_mutated(self):
        specs = KernelSpecs()
        specs.register(KernelSpec(name="a", display_name="A"))
        before = specs.specs
        specs.register(KernelSpec(name="b", display_name="B"))
        assert "b" not in before
        assert specs.specs is not before

    def test_unregister_moves_default(self):
        specs = KernelSpecs()
        specs.register(KernelSpec(name="a", display_name="A"))
        specs.register(KernelSpec(name="b", display_name="B"))
        assert specs.unregister("a") is True
        assert specs.default == "b"
        assert specs.unregister("a") is False

    def test_unregister_last_spec_clears_registry(self):
        specs = KernelSpecs()
        specs.register(KernelSpec(name="a", display_name="A"))
        specs.unregister("a")
        assert specs.specs is None
        assert specs.default == ""

    def test_has(self):
        specs = KernelSpecs()
        specs.register(KernelSpec(name="a", display_name="A"))
        assert specs.has("a")
        assert not specs.has("b")
        assert not specs.has(None)
        assert not specs.has("")


# ── LocalKernelClient ──────────────────────────────────────


class FakeEngine:
    """Engine object with one sync and two async hooks."""

    def __init__(self):
        self.calls = []

    async def restart(self):
        self.calls.append("restart")

    def interrupt(self):
        self.calls.append("interrupt")

    async def shutdown(self):
        self.calls.append("shutdown")


class TestLocalKernelClient:
    @pytest.mark.asyncio
    async def test_start_new_assigns_id_and_emits(self, local_specs):
        client = LocalKernelClient(local_specs)
        slot = MagicMock()
        client.changed.connect(slot)

        model = await client.start_new("python")

        assert model.name == "python"
        assert client.has_kernel(model.id)
        change = slot.call_args.args[0]
        assert change.type == "add"
        assert change.new_value == model

    @pytest.mark.asyncio
    async def test_start_new_without_name_uses_default(self, local_specs):
        client = LocalKernelClient(local_specs)
        model = await client.start_new()
        assert model.name == "python"

    @pytest.mark.asyncio
    async def test_unknown_spec(self, local_specs):
        client = LocalKernelClient(local_specs)
        with pytest.raises(NotFoundError):
            await client.start_new("julia")

    @pytest.mark.asyncio
    async def test_factory_hooks(self):
        engine = FakeEngine()
        factory = MagicMock(return_value=engine)

        specs = KernelSpecs()
        spec = KernelSpec(name="py", display_name="Py")
        specs.register(spec, factory=factory)
        client = LocalKernelClient(specs)

        model = await client.start_new("py")
        factory.assert_called_once_with(model.id, spec)

        await client.restart(model.id)
        await client.interrupt(model.id)
        await client.shutdown(model.id)

        assert engine.calls == ["restart", "interrupt", "shutdown"]
        assert not client.has_kernel(model.id)

    @pytest.mark.asyncio
    async def test_async_factory(self):
        engine = object()

        async def factory(kernel_id, spec):
            return engine

        specs = KernelSpecs()
        specs.register(KernelSpec(name="py", display_name="Py"), factory=factory)
        client = LocalKernelClient(specs)

        model = await client.start_new("py")
        assert client._instances[model.id] is engine

    @pytest.mark.asyncio
    async def test_unknown_id_writes_raise(self, local_specs):
        client = LocalKernelClient(local_specs)
        for op in (client.restart, client.interrupt, client.shutdown):
            with pytest.raises(NotFoundError):
                await op("nope")
        assert await client.get_model("nope") is None

    @pytest.mark.asyncio
    async def test_shutdown_all(self, local_specs):
        client = LocalKernelClient(local_specs)
        await client.start_new("python")
        await client.start_new("python")
        await client.shutdown_all()
        assert await client.list_running() == []


# ── LocalSessionClient ─────────────────────────────────────


class TestLocalSessionClient:
    @pytest.mark.asyncio
    async def test_session_starts_kernel_through_kernel_client(self, local_specs):
        kernels = LocalKernelClient(local_specs)
        sessions = LocalSessionClient(kernels)

        session = await sessions.start_new("nb.ipynb", kernel_name="python")

        assert session.name == "nb.ipynb"
        assert kernels.has_kernel(session.kernel.id)

    @pytest.mark.asyncio
    async def test_shutdown_stops_kernel(self, local_specs):
        kernels = LocalKernelClient(local_specs)
        sessions = LocalSessionClient(kernels)
        session = await sessions.start_new("nb.ipynb", kernel_name="python")

        await sessions.shutdown(session.id)

        assert not kernels.has_kernel(session.kernel.id)
        assert await sessions.list_running() == []

    @pytest.mark.asyncio
    async def test_shutdown_with_kernel_already_gone(self, local_specs):
        kernels = LocalKernelClient(local_specs)
        sessions = LocalSessionClient(kernels)
        session = await sessions.start_new("nb.ipynb", kernel_name="python")
        await kernels.shutdown(session.kernel.id)

        await sessions.shutdown(session.id)

        assert await sessions.get_model(session.id) is None


# ── Managers ───────────────────────────────────────────────


class TestLocalManagers:
    @pytest.mark.asyncio
    async def test_kernel_manager_mirrors_client(self, local_specs):
        client = LocalKernelClient(local_specs)
        manager = LocalKernelManager(client)
        await manager.start()
        assert manager.is_ready

        snapshots = []
        manager.running_changed.connect(snapshots.append)

        conn = await manager.start_new("python")
        assert conn.location is Location.LOCAL
        assert manager.has(conn.id)
        assert snapshots[-1] == list(manager.running())

        await manager.shutdown(conn.id)
        assert not manager.has(conn.id)
        assert snapshots[-1] == []

        await manager.stop()

    @pytest.mark.asyncio
    async def test_kernel_manager_sees_direct_client_starts(self, local_specs):
        client = LocalKernelClient(local_specs)
        manager = LocalKernelManager(client)
        model = await client.start_new("python")
        assert manager.has(model.id)

    @pytest.mark.asyncio
    async def test_session_manager_find_by_path(self, local_specs):
        sessions = LocalSessionManager(LocalSessionClient(LocalKernelClient(local_specs)))
        await sessions.start()
        conn = await sessions.start_new("a.ipynb", kernel_name="python")

        found = await sessions.find_by_path("a.ipynb")
        assert found.id == conn.id
        assert conn.kernel.location is Location.LOCAL
        assert await sessions.find_by_path("b.ipynb") is None

        await sessions.stop_if_needed("a.ipynb")
        assert sessions.running_count == 0
