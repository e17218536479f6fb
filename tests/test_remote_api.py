"""Tests for ServerAPI — the httpx client for the Jupyter REST API."""

import json

import pytest

from hybrid_kernels.kernel.errors import (
    NotFoundError,
    RemoteUnreachableError,
    ServerResponseError,
)


# ── Requests ───────────────────────────────────────────────


class TestRequests:
    @pytest.mark.asyncio
    async def test_token_sent_as_bearer_header(self, api, server, remote_config):
        remote_config.update(token="abc")
        await api.list_kernels()
        assert server.requests[-1].headers["Authorization"] == "Bearer abc"

    @pytest.mark.asyncio
    async def test_no_auth_header_without_token(self, api, server):
        await api.list_kernels()
        assert "Authorization" not in server.requests[-1].headers

    @pytest.mark.asyncio
    async def test_kernelspecs_with_token_in_query(self, api, server, remote_config):
        remote_config.update(token="a b")
        payload = await api.list_kernelspecs(token_in_query=True)

        request = server.requests[-1]
        assert request.url.params["token"] == "a b"
        assert "Authorization" not in request.headers
        assert payload["default"] == "python3"

    @pytest.mark.asyncio
    async def test_settings_change_applies_to_next_call(self, api, server, remote_config):
        await api.list_kernels()
        assert server.requests[-1].url.host == "jupyter.test"

        remote_config.update(base_url="https://other.example/prefix")
        await api.list_kernels()

        request = server.requests[-1]
        assert request.url.host == "other.example"
        assert request.url.path == "/prefix/api/kernels"


# ── Errors ─────────────────────────────────────────────────


class TestErrors:
    @pytest.mark.asyncio
    async def test_unreachable(self, api, server):
        server.unreachable = True
        with pytest.raises(RemoteUnreachableError):
            await api.list_kernels()

    @pytest.mark.asyncio
    async def test_server_error_status(self, api, server):
        server.fail_status = 500
        with pytest.raises(ServerResponseError) as exc_info:
            await api.list_sessions()
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_not_found_on_write(self, api):
        with pytest.raises(NotFoundError):
            await api.shutdown_kernel("missing")

    @pytest.mark.asyncio
    async def test_not_found_on_read_is_none(self, api):
        assert await api.get_kernel("missing") is None
        assert await api.get_session("missing") is None


# ── Kernels & sessions ─────────────────────────────────────


class TestKernels:
    @pytest.mark.asyncio
    async def test_start_and_list(self, api, server):
        model = await api.start_kernel("ir")

        assert model.name == "ir"
        assert model.id in server.kernels
        assert json.loads(server.requests[-1].content) == {"name": "ir"}
        assert [k.id for k in await api.list_kernels()] == [model.id]

    @pytest.mark.asyncio
    async def test_start_without_name_uses_server_default(self, api, server):
        model = await api.start_kernel(None)
        assert json.loads(server.requests[-1].content) == {}
        assert model.name == "python3"

    @pytest.mark.asyncio
    async def test_restart_interrupt_shutdown(self, api, server):
        model = await api.start_kernel("python3")

        restarted = await api.restart_kernel(model.id)
        await api.interrupt_kernel(model.id)
        await api.shutdown_kernel(model.id)

        assert restarted.execution_state == "restarting"
        assert server.requests_for("POST", "/interrupt")
        assert model.id not in server.kernels

    @pytest.mark.asyncio
    async def test_entries_without_id_are_skipped(self, api, server):
        server.kernels["broken"] = {"name": "no-id"}
        server.add_kernel()
        models = await api.list_kernels()
        assert len(models) == 1

    def test_kernel_ws_url(self, api, remote_config):
        remote_config.update(base_url="https://hub.example/user/me/", token="tok")
        assert (
            api.kernel_ws_url("k1")
            == "wss://hub.example/user/me/api/kernels/k1/channels?token=tok"
        )


class TestSessions:
    @pytest.mark.asyncio
    async def test_start_session_body(self, api, server):
        session = await api.start_session("nb.ipynb", kernel_name="ir")

        body = json.loads(server.requests[-1].content)
        assert body == {
            "path": "nb.ipynb",
            "name": "nb.ipynb",
            "type": "notebook",
            "kernel": {"name": "ir"},
        }
        assert session.kernel.name == "ir"

    @pytest.mark.asyncio
    async def test_list_and_shutdown(self, api, server):
        server.add_session("a.ipynb")
        sessions = await api.list_sessions()
        assert [s.path for s in sessions] == ["a.ipynb"]

        await api.shutdown_session(sessions[0].id)
        assert server.sessions == {}
