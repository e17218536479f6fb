"""
Hybrid Kernels — one kernel/session API over an in-process engine and a
Jupyter server.

Run: uv run uvicorn hybrid_kernels.main:app --host 127.0.0.1 --port 8890
 or: hybrid-kernels
"""

from __future__ import annotations

import logging

import uvicorn
from fastapi import FastAPI
from fastapi.responses import JSONResponse

from hybrid_kernels.core.config import HybridKernelsConfig, config
from hybrid_kernels.core.logging import setup_logging
from hybrid_kernels.core.metrics import metrics
from hybrid_kernels.http.api import create_hybrid_router
from hybrid_kernels.services import HybridServices

__version__ = "0.1.0"

logger = logging.getLogger("hybrid_kernels")


def create_app(services: HybridServices | None = None) -> FastAPI:
    """Build the FastAPI app around a HybridServices instance."""
    services = services or HybridServices.from_config()

    app = FastAPI(title="Hybrid Kernels", version=__version__)
    app.state.services = services
    app.include_router(create_hybrid_router(services))

    @app.on_event("startup")
    async def startup():
        await services.start()

    @app.on_event("shutdown")
    async def shutdown():
        await services.stop()

    @app.get("/health")
    async def health():
        """Health check — mode, readiness, remote connection and metrics."""
        return JSONResponse(
            {
                "status": "ok",
                "version": __version__,
                "mode": services.mode.value,
                "ready": services.is_ready,
                "remote": {
                    "server_url": services.settings.base_url,
                    "is_connected": services.remote_config.is_connected,
                },
                "kernels": {
                    "running": services.kernels.running_count,
                    "local": services.kernels.local.running_count,
                },
                "sessions": {"running": services.sessions.running_count},
                "kernelspecs": (
                    sorted(services.kernelspecs.specs.kernelspecs)
                    if services.kernelspecs.specs is not None
                    else []
                ),
                "metrics": metrics.snapshot(),
            }
        )

    return app


setup_logging()
app = create_app()


def run(cfg: HybridKernelsConfig | None = None) -> None:
    """Console entry point."""
    cfg = cfg or config
    logger.info(
        "Hybrid Kernels listening on %s:%d (mode=%s)",
        cfg.server.host,
        cfg.server.port,
        cfg.mode.value,
    )
    uvicorn.run(app, host=cfg.server.host, port=cfg.server.port, log_config=None)
