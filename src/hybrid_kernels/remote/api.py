"""ServerAPI — thin async client for a Jupyter server's REST endpoints.

Every request reads base_url and token from ServerSettings at call time, so
a remote configuration change applies to the next call without rebuilding
the client.

Errors are translated once, here:
- network failures (DNS, refused, timeouts) → RemoteUnreachableError
- 404 → NotFoundError
- any other non-success status → ServerResponseError
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from hybrid_kernels.core.config import ServerSettings
from hybrid_kernels.kernel.contracts import KernelModel, SessionModel
from hybrid_kernels.kernel.errors import (
    NotFoundError,
    RemoteUnreachableError,
    ServerResponseError,
)
from hybrid_kernels.kernel.urls import append_token, url_path_join

logger = logging.getLogger(__name__)

KERNELSPECS_PATH = "api/kernelspecs"
KERNELS_PATH = "api/kernels"
SESSIONS_PATH = "api/sessions"


class ServerAPI:
    """Async REST client for kernels, sessions and kernel specs."""

    def __init__(
        self,
        settings: ServerSettings,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._timeout = timeout
        self._transport = transport

    @property
    def settings(self) -> ServerSettings:
        return self._settings

    def _headers(self) -> dict[str, str]:
        token = self._settings.token
        if token:
            return {"Authorization": f"Bearer {token}"}
        return {}

    def url(self, *path: str) -> str:
        return url_path_join(self._settings.base_url, *path)

    async def _request(
        self,
        method: str,
        url: str,
        json: Any = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                resp = await client.request(
                    method,
                    url,
                    json=json,
                    headers=self._headers() if headers is None else headers,
                )
        except httpx.TransportError as e:
            raise RemoteUnreachableError(f"{method} {url}: {e}") from e

        if resp.status_code == 404:
            raise NotFoundError(f"{method} {url}: not found")
        if resp.is_error:
            raise ServerResponseError(
                resp.status_code, f"{method} {url}: HTTP {resp.status_code}"
            )
        return resp

    @staticmethod
    def _json(resp: httpx.Response) -> Any:
        if resp.status_code == 204 or not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise ServerResponseError(resp.status_code, "invalid JSON body") from e

    # ─── Kernel specs ────────────────────────────────────────────

    async def list_kernelspecs(self, token_in_query: bool = False) -> Any:
        """Raw /api/kernelspecs payload.

        token_in_query sends the token as ?token= instead of a header, the
        form cross-origin remote servers accept without a preflight.
        """
        url = self.url(KERNELSPECS_PATH)
        if token_in_query:
            resp = await self._request(
                "GET", append_token(url, self._settings.token), headers={}
            )
        else:
            resp = await self._request("GET", url)
        return self._json(resp)

    # ─── Kernels ─────────────────────────────────────────────────

    async def list_kernels(self) -> list[KernelModel]:
        data = self._json(await self._request("GET", self.url(KERNELS_PATH)))
        if not isinstance(data, list):
            raise ServerResponseError(200, "kernel list is not a JSON array")
        return [KernelModel.from_dict(k) for k in data if isinstance(k, dict) and "id" in k]

    async def get_kernel(self, kernel_id: str) -> KernelModel | None:
        try:
            resp = await self._request("GET", self.url(KERNELS_PATH, kernel_id))
        except NotFoundError:
            return None
        return KernelModel.from_dict(self._json(resp))

    async def start_kernel(self, name: str | None = None) -> KernelModel:
        body = {"name": name} if name else {}
        resp = await self._request("POST", self.url(KERNELS_PATH), json=body)
        model = KernelModel.from_dict(self._json(resp))
        logger.info(
            "Started remote kernel %s (%s)",
            model.id,
            model.name,
            extra={"kernel_id": model.id, "backend": "remote"},
        )
        return model

    async def shutdown_kernel(self, kernel_id: str) -> None:
        await self._request("DELETE", self.url(KERNELS_PATH, kernel_id))
        logger.info(
            "Shut down remote kernel %s",
            kernel_id,
            extra={"kernel_id": kernel_id, "backend": "remote"},
        )

    async def restart_kernel(self, kernel_id: str) -> KernelModel | None:
        resp = await self._request("POST", self.url(KERNELS_PATH, kernel_id, "restart"))
        data = self._json(resp)
        return KernelModel.from_dict(data) if isinstance(data, dict) and "id" in data else None

    async def interrupt_kernel(self, kernel_id: str) -> None:
        await self._request("POST", self.url(KERNELS_PATH, kernel_id, "interrupt"))

    def kernel_ws_url(self, kernel_id: str) -> str:
        """Channel endpoint for a remote kernel, token attached."""
        url = url_path_join(self._settings.ws_url, KERNELS_PATH, kernel_id, "channels")
        return append_token(url, self._settings.token)

    # ─── Sessions ────────────────────────────────────────────────

    async def list_sessions(self) -> list[SessionModel]:
        data = self._json(await self._request("GET", self.url(SESSIONS_PATH)))
        if not isinstance(data, list):
            raise ServerResponseError(200, "session list is not a JSON array")
        return [SessionModel.from_dict(s) for s in data if isinstance(s, dict) and "id" in s]

    async def get_session(self, session_id: str) -> SessionModel | None:
        try:
            resp = await self._request("GET", self.url(SESSIONS_PATH, session_id))
        except NotFoundError:
            return None
        return SessionModel.from_dict(self._json(resp))

    async def start_session(
        self,
        path: str,
        name: str = "",
        type: str = "notebook",
        kernel_name: str | None = None,
    ) -> SessionModel:
        body: dict[str, Any] = {"path": path, "name": name or path, "type": type}
        body["kernel"] = {"name": kernel_name} if kernel_name else {}
        resp = await self._request("POST", self.url(SESSIONS_PATH), json=body)
        session = SessionModel.from_dict(self._json(resp))
        logger.info(
            "Started remote session %s for %s",
            session.id,
            path,
            extra={"session_id": session.id, "backend": "remote"},
        )
        return session

    async def shutdown_session(self, session_id: str) -> None:
        await self._request("DELETE", self.url(SESSIONS_PATH, session_id))
