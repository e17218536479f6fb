"""
Hybrid Kernels HTTP API — Jupyter-shaped endpoints over the routers.

Endpoints:
    GET    /api/kernelspecs              merged kernel spec registry
    POST   /api/kernelspecs/refresh      rebuild it now
    GET    /api/kernels                  running kernels on both backends
    POST   /api/kernels                  start a kernel ({"name": ...})
    GET    /api/kernels/{id}             one kernel
    DELETE /api/kernels/{id}             shut it down
    POST   /api/kernels/{id}/restart
    POST   /api/kernels/{id}/interrupt
    GET    /api/kernels/{id}/location    which backend owns it
    GET    /api/sessions[?path=]         running sessions
    POST   /api/sessions                 start a session
    GET    /api/sessions/{id}
    DELETE /api/sessions/{id}
    POST   /api/sessions/{id}/promote    relaunch on the remote server
    GET    /api/remote                   remote server settings
    PUT    /api/remote                   change and test them
    PUT    /api/visibility               front-end hidden/visible
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response

from hybrid_kernels.kernel.contracts import KernelConnection, SessionConnection
from hybrid_kernels.kernel.errors import (
    HybridKernelsError,
    NotFoundError,
    RemoteUnreachableError,
    ServerResponseError,
)

if TYPE_CHECKING:
    from hybrid_kernels.services import HybridServices

logger = logging.getLogger(__name__)


def error_status(error: HybridKernelsError) -> int:
    """HTTP status for a routing or backend error."""
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, RemoteUnreachableError):
        return 502
    if isinstance(error, ServerResponseError):
        return 502 if error.status_code >= 500 else error.status_code
    return 400


def _error(error: HybridKernelsError) -> JSONResponse:
    status = error_status(error)
    logger.warning("Request failed (%d): %s", status, error, extra={"status": status})
    return JSONResponse(
        {"error": {"message": str(error), "type": type(error).__name__}},
        status_code=status,
    )


def _kernel_json(conn: KernelConnection) -> dict[str, Any]:
    data = conn.model.to_dict()
    data["location"] = conn.location.value
    if conn.ws_url:
        data["ws_url"] = conn.ws_url
    return data


def _session_json(conn: SessionConnection) -> dict[str, Any]:
    data = conn.model.to_dict()
    data["location"] = conn.location.value
    if conn.kernel is not None:
        data["kernel"] = _kernel_json(conn.kernel)
    return data


async def _body(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def create_hybrid_router(services: "HybridServices") -> APIRouter:
    """Create the kernel routing router bound to a HybridServices instance."""

    router = APIRouter()
    kernels = services.kernels
    sessions = services.sessions

    # ─── Kernel specs ────────────────────────────────────────────

    @router.get("/api/kernelspecs")
    async def get_kernelspecs() -> JSONResponse:
        specs = services.kernelspecs.specs
        if specs is None:
            return JSONResponse({"default": "", "kernelspecs": {}})
        return JSONResponse(specs.to_dict())

    @router.post("/api/kernelspecs/refresh")
    async def refresh_kernelspecs() -> JSONResponse:
        await services.kernelspecs.refresh_specs()
        return await get_kernelspecs()

    # ─── Kernels ─────────────────────────────────────────────────

    @router.get("/api/kernels")
    async def list_kernels() -> JSONResponse:
        return JSONResponse(
            [_kernel_json(kernels.connect_to(m)) for m in kernels.running()]
        )

    @router.post("/api/kernels")
    async def start_kernel(request: Request) -> JSONResponse:
        body = await _body(request)
        try:
            conn = await kernels.start_new(body.get("name") or None)
        except HybridKernelsError as e:
            return _error(e)
        return JSONResponse(_kernel_json(conn), status_code=201)

    @router.get("/api/kernels/{kernel_id}")
    async def get_kernel(kernel_id: str) -> JSONResponse:
        model = await kernels.find_by_id(kernel_id)
        if model is None:
            return _error(NotFoundError(f"Kernel {kernel_id} not found"))
        return JSONResponse(_kernel_json(kernels.connect_to(model)))

    @router.delete("/api/kernels/{kernel_id}", response_model=None)
    async def shutdown_kernel(kernel_id: str) -> Response:
        try:
            await kernels.shutdown(kernel_id)
        except HybridKernelsError as e:
            return _error(e)
        return Response(status_code=204)

    @router.post("/api/kernels/{kernel_id}/restart")
    async def restart_kernel(kernel_id: str) -> JSONResponse:
        try:
            await kernels.restart(kernel_id)
        except HybridKernelsError as e:
            return _error(e)
        model = await kernels.find_by_id(kernel_id)
        if model is None:
            return JSONResponse({"id": kernel_id})
        return JSONResponse(_kernel_json(kernels.connect_to(model)))

    @router.post("/api/kernels/{kernel_id}/interrupt", response_model=None)
    async def interrupt_kernel(kernel_id: str) -> Response:
        try:
            await kernels.interrupt(kernel_id)
        except HybridKernelsError as e:
            return _error(e)
        return Response(status_code=204)

    @router.get("/api/kernels/{kernel_id}/location")
    async def kernel_location(kernel_id: str) -> JSONResponse:
        location = kernels.classify_id(kernel_id)
        return JSONResponse({"id": kernel_id, "location": location.value})

    # ─── Sessions ────────────────────────────────────────────────

    @router.get("/api/sessions")
    async def list_sessions(path: str | None = None) -> JSONResponse:
        if path is not None:
            session = await sessions.find_by_path(path)
            found = [session] if session is not None else []
        else:
            found = list(sessions.running())
        return JSONResponse([_session_json(sessions.connect_to(s)) for s in found])

    @router.post("/api/sessions")
    async def start_session(request: Request) -> JSONResponse:
        body = await _body(request)
        path = body.get("path")
        if not path:
            return JSONResponse(
                {"error": {"message": "path is required", "type": "ValueError"}},
                status_code=400,
            )
        kernel = body.get("kernel") if isinstance(body.get("kernel"), dict) else {}
        try:
            conn = await sessions.start_new(
                path,
                name=body.get("name") or "",
                type=body.get("type") or "notebook",
                kernel_name=kernel.get("name") or None,
            )
        except HybridKernelsError as e:
            return _error(e)
        return JSONResponse(_session_json(conn), status_code=201)

    @router.get("/api/sessions/{session_id}")
    async def get_session(session_id: str) -> JSONResponse:
        session = await sessions.find_by_id(session_id)
        if session is None:
            return _error(NotFoundError(f"Session {session_id} not found"))
        return JSONResponse(_session_json(sessions.connect_to(session)))

    @router.delete("/api/sessions/{session_id}", response_model=None)
    async def shutdown_session(session_id: str) -> Response:
        try:
            await sessions.shutdown(session_id)
        except HybridKernelsError as e:
            return _error(e)
        return Response(status_code=204)

    @router.post("/api/sessions/{session_id}/promote")
    async def promote_session(session_id: str) -> JSONResponse:
        session = await sessions.find_by_id(session_id)
        if session is None:
            return _error(NotFoundError(f"Session {session_id} not found"))
        try:
            promoted = await services.promoter.promote(sessions.connect_to(session))
        except HybridKernelsError as e:
            return _error(e)
        return JSONResponse(_session_json(promoted))

    # ─── Remote server & front-end state ─────────────────────────

    def _remote_json() -> dict[str, Any]:
        remote = services.remote_config
        return {
            "mode": services.mode.value,
            "base_url": remote.base_url,
            "has_token": bool(remote.token),
            "is_connected": remote.is_connected,
            "server_url": services.settings.base_url,
        }

    @router.get("/api/remote")
    async def get_remote() -> JSONResponse:
        return JSONResponse(_remote_json())

    @router.put("/api/remote")
    async def put_remote(request: Request) -> JSONResponse:
        body = await _body(request)
        base_url = body.get("base_url")
        token = body.get("token")
        await services.configure_remote(
            base_url=base_url.strip() if isinstance(base_url, str) else None,
            token=token.strip() if isinstance(token, str) else None,
        )
        return JSONResponse(_remote_json())

    @router.put("/api/visibility")
    async def put_visibility(request: Request) -> JSONResponse:
        body = await _body(request)
        services.visibility.set_hidden(bool(body.get("hidden", False)))
        return JSONResponse({"hidden": services.visibility.hidden})

    return router
