"""Shared fixtures: an in-memory Jupyter server behind httpx.MockTransport."""

from __future__ import annotations

import json
from typing import Any

import httpx
import pytest
import pytest_asyncio

from hybrid_kernels.core.config import (
    HybridKernelsConfig,
    OperatingMode,
    PollConfig,
    RemoteConfig,
    RemoteServerConfig,
    ServerSettings,
)
from hybrid_kernels.core.metrics import metrics
from hybrid_kernels.kernel.contracts import KernelSpec
from hybrid_kernels.local.specs import KernelSpecs
from hybrid_kernels.remote.api import ServerAPI
from hybrid_kernels.services import HybridServices

SERVER_URL = "http://jupyter.test/"

# Long enough that no scheduled tick fires during a test
QUIET_POLL = PollConfig(
    specs_interval=60.0,
    specs_max_interval=60.0,
    running_interval=60.0,
    running_max_interval=60.0,
)


def server_kernelspecs() -> dict[str, Any]:
    return {
        "default": "python3",
        "kernelspecs": {
            "python3": {
                "name": "python3",
                "spec": {
                    "display_name": "Python 3 (server)",
                    "language": "python",
                    "argv": ["python", "-m", "ipykernel_launcher"],
                },
                "resources": {"logo-64x64": "/kernelspecs/python3/logo-64x64.png"},
            },
            "ir": {
                "name": "ir",
                "spec": {"display_name": "R", "language": "R"},
                "resources": {},
            },
        },
    }


class FakeJupyterServer:
    """Just enough of the Jupyter REST API to exercise routing."""

    def __init__(self) -> None:
        self.kernelspecs: dict[str, Any] = server_kernelspecs()
        self.kernels: dict[str, dict[str, Any]] = {}
        self.sessions: dict[str, dict[str, Any]] = {}
        self.requests: list[httpx.Request] = []
        self.unreachable = False
        self.fail_status: int | None = None
        self._next = 0

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def requests_for(self, method: str, fragment: str = "") -> list[httpx.Request]:
        return [
            r for r in self.requests
            if r.method == method and fragment in r.url.path
        ]

    def add_kernel(self, name: str = "python3") -> dict[str, Any]:
        self._next += 1
        kernel = {
            "id": f"remote-kernel-{self._next}",
            "name": name,
            "last_activity": "2024-01-01T00:00:00Z",
            "execution_state": "idle",
            "connections": 0,
        }
        self.kernels[kernel["id"]] = kernel
        return kernel

    def add_session(self, path: str, kernel_name: str = "python3", **fields) -> dict[str, Any]:
        kernel = self.add_kernel(kernel_name)
        session = {
            "id": f"remote-session-{self._next}",
            "path": path,
            "name": fields.get("name") or path,
            "type": fields.get("type") or "notebook",
            "kernel": kernel,
        }
        self.sessions[session["id"]] = session
        return session

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.unreachable:
            raise httpx.ConnectError("connection refused", request=request)
        if self.fail_status is not None:
            return httpx.Response(self.fail_status, json={"message": "boom"})

        path = request.url.path
        parts = path[path.index("/api/") + 1 :].strip("/").split("/")
        method = request.method
        body = json.loads(request.content) if request.content else {}

        if parts == ["api", "kernelspecs"] and method == "GET":
            return httpx.Response(200, json=self.kernelspecs)

        if parts[:2] == ["api", "kernels"]:
            return self._kernels(method, parts[2:], body)
        if parts[:2] == ["api", "sessions"]:
            return self._sessions(method, parts[2:], body)
        return httpx.Response(404, json={"message": "no route"})

    def _kernels(self, method: str, rest: list[str], body: dict) -> httpx.Response:
        if not rest:
            if method == "GET":
                return httpx.Response(200, json=list(self.kernels.values()))
            if method == "POST":
                name = body.get("name") or self.kernelspecs.get("default", "python3")
                return httpx.Response(201, json=self.add_kernel(name))
        kernel = self.kernels.get(rest[0]) if rest else None
        if kernel is None:
            return httpx.Response(404, json={"message": "Kernel does not exist"})
        if len(rest) == 1 and method == "GET":
            return httpx.Response(200, json=kernel)
        if len(rest) == 1 and method == "DELETE":
            del self.kernels[rest[0]]
            return httpx.Response(204)
        if rest[1:] == ["restart"] and method == "POST":
            kernel["execution_state"] = "restarting"
            return httpx.Response(200, json=kernel)
        if rest[1:] == ["interrupt"] and method == "POST":
            return httpx.Response(204)
        return httpx.Response(405)

    def _sessions(self, method: str, rest: list[str], body: dict) -> httpx.Response:
        if not rest:
            if method == "GET":
                return httpx.Response(200, json=list(self.sessions.values()))
            if method == "POST":
                kernel_name = (body.get("kernel") or {}).get("name") or "python3"
                session = self.add_session(
                    body["path"],
                    kernel_name,
                    name=body.get("name"),
                    type=body.get("type"),
                )
                return httpx.Response(201, json=session)
        session = self.sessions.get(rest[0]) if rest else None
        if session is None:
            return httpx.Response(404, json={"message": "Session not found"})
        if method == "GET":
            return httpx.Response(200, json=session)
        if method == "DELETE":
            del self.sessions[rest[0]]
            self.kernels.pop(session["kernel"]["id"], None)
            return httpx.Response(204)
        return httpx.Response(405)


# ─── Fixtures ─────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def server():
    return FakeJupyterServer()


@pytest.fixture
def remote_config():
    return RemoteServerConfig()


@pytest.fixture
def settings(remote_config):
    return ServerSettings(remote_config, SERVER_URL)


@pytest.fixture
def api(server, settings):
    return ServerAPI(settings, timeout=5.0, transport=server.transport())


@pytest.fixture
def python_spec():
    return KernelSpec(
        name="python",
        display_name="Python (in-process)",
        language="python",
    )


@pytest.fixture
def local_specs(python_spec):
    specs = KernelSpecs()
    specs.register(python_spec, default=True)
    return specs


def make_config(mode: OperatingMode = OperatingMode.HYBRID, **remote) -> HybridKernelsConfig:
    return HybridKernelsConfig(
        mode=mode,
        remote=RemoteConfig(default_server_url=SERVER_URL, **remote),
        poll=QUIET_POLL,
    )


@pytest_asyncio.fixture
async def services(server, local_specs):
    svc = HybridServices(
        make_config(), local_specs=local_specs, transport=server.transport()
    )
    await svc.start()
    yield svc
    await svc.stop()
