"""
HybridKernelSpecManager — one kernel spec registry for both backends.

Each refresh reads the server's spec list and the in-process engine's spec
list and merges them:

- kernelspecs: server entries overlaid by in-process entries (a name served
  by both goes to the in-process engine)
- default: the server's default, else the in-process default

In hybrid mode the server is the Jupyter server serving the page. In remote
mode it is the user-configured server, fetched with the token in the query
string and with resource URLs made absolute; the outcome of that fetch
drives RemoteServerConfig.is_connected.

A refresh in which neither side yields specs keeps the previous registry
and emits nothing.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

from hybrid_kernels.core.config import (
    OperatingMode,
    PollConfig,
    RemoteConfigChange,
    RemoteServerConfig,
)
from hybrid_kernels.core.metrics import metrics
from hybrid_kernels.core.signal import Signal
from hybrid_kernels.kernel.contracts import SpecRegistry
from hybrid_kernels.kernel.errors import HybridKernelsError
from hybrid_kernels.kernel.poll import Poller
from hybrid_kernels.kernel.urls import normalize_kernelspecs
from hybrid_kernels.local.specs import KernelSpecs
from hybrid_kernels.remote.api import ServerAPI

logger = logging.getLogger(__name__)


def merge_registries(
    server: SpecRegistry | None, local: SpecRegistry | None
) -> SpecRegistry | None:
    """Union of both registries, in-process entries winning on collision."""
    if server is None and local is None:
        return None
    kernelspecs = dict(server.kernelspecs) if server is not None else {}
    if local is not None:
        kernelspecs.update(local.kernelspecs)
    default = (server.default if server is not None else "") or (
        local.default if local is not None else ""
    )
    return SpecRegistry(default=default, kernelspecs=kernelspecs)


class HybridKernelSpecManager:
    """Merged kernel spec registry, kept fresh by a Poller."""

    def __init__(
        self,
        local_specs: KernelSpecs,
        api: ServerAPI,
        remote_config: RemoteServerConfig,
        mode: OperatingMode = OperatingMode.HYBRID,
        poll: PollConfig | None = None,
        standby: Callable[[], bool] | None = None,
    ) -> None:
        poll = poll or PollConfig()
        self._local_specs = local_specs
        self._api = api
        self._remote_config = remote_config
        self._mode = mode
        self._specs: SpecRegistry | None = None
        self._disposed = False
        self._ready = asyncio.Event()

        self.specs_changed = Signal("kernelspecs.specs_changed")
        self.connection_failure = Signal("kernelspecs.connection_failure")

        self._poller = Poller(
            self._poll_tick,
            interval=poll.specs_interval,
            max_interval=poll.specs_max_interval,
            backoff=poll.backoff if poll.backoff > 1 else False,
            standby=standby,
            name="kernelspecs",
        )

        local_specs.changed.connect(self._on_local_specs_changed)
        remote_config.changed.connect(self._on_remote_config_changed)

    # ─── State ───────────────────────────────────────────────────

    @property
    def mode(self) -> OperatingMode:
        return self._mode

    @property
    def specs(self) -> SpecRegistry | None:
        """Latest merged registry; None until a refresh found any specs."""
        return self._specs

    @property
    def is_ready(self) -> bool:
        return self._ready.is_set()

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    @property
    def poller(self) -> Poller:
        return self._poller

    # ─── Lifecycle ───────────────────────────────────────────────

    async def start(self) -> None:
        """Initial refresh, then periodic polling."""
        await self.refresh_specs()
        if self._disposed:
            return
        self._ready.set()
        self._poller.start()

    async def ready(self) -> None:
        """Wait for the initial refresh."""
        await self._ready.wait()

    async def stop(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        self._local_specs.changed.disconnect(self._on_local_specs_changed)
        self._remote_config.changed.disconnect(self._on_remote_config_changed)
        await self._poller.stop()
        self.specs_changed.close()
        self.connection_failure.close()

    # ─── Refresh ─────────────────────────────────────────────────

    async def _fetch_server_specs(self) -> SpecRegistry | None:
        settings = self._api.settings
        if self._mode is OperatingMode.REMOTE:
            if not settings.is_remote_configured:
                return None
            try:
                payload = await self._api.list_kernelspecs(token_in_query=True)
            except HybridKernelsError as e:
                logger.warning(
                    "Remote server %s unavailable: %s",
                    settings.base_url,
                    e,
                    extra={"backend": "remote", "mode": self._mode.value},
                )
                metrics.inc("remote.failures", labels={"manager": "kernelspecs"})
                self._remote_config.set_connected(False)
                self.connection_failure.emit(e)
                return None
            self._remote_config.set_connected(True)
            return normalize_kernelspecs(
                payload,
                base_url=settings.base_url,
                token=settings.token,
                rewrite=True,
            )

        try:
            payload = await self._api.list_kernelspecs()
        except HybridKernelsError as e:
            logger.debug("Server kernel specs unavailable: %s", e)
            return None
        return normalize_kernelspecs(payload)

    async def _fetch_local_specs(self) -> SpecRegistry | None:
        try:
            return await self._local_specs.list_specs()
        except Exception:
            logger.exception("Failed to list in-process kernel specs")
            return None

    async def refresh_specs(self) -> SpecRegistry | None:
        """Rebuild the merged registry.

        Returns the new registry, or None when nothing was committed (both
        sides empty, or disposed while fetching).
        """
        if self._disposed:
            return None

        server = await self._fetch_server_specs()
        local = await self._fetch_local_specs()

        if self._disposed:
            return None

        if server is not None and server.is_empty:
            server = None
        if local is not None and local.is_empty:
            local = None

        merged = merge_registries(server, local)
        if merged is None:
            logger.debug("No kernel specs from either backend; keeping previous")
            return None

        self._specs = merged
        metrics.inc("kernelspecs.rebuilds")
        metrics.gauge_set("kernelspecs.count", len(merged.kernelspecs))
        logger.debug(
            "Kernel specs refreshed: %d specs, default=%s",
            len(merged.kernelspecs),
            merged.default,
        )
        self.specs_changed.emit(merged)
        return merged

    async def _poll_tick(self) -> bool:
        previous = self._specs
        merged = await self.refresh_specs()
        return merged is not None and merged != previous

    # ─── Change triggers ─────────────────────────────────────────

    def _on_local_specs_changed(self, _registry: SpecRegistry | None):
        if self._disposed:
            return None
        return self.refresh_specs()

    def _on_remote_config_changed(self, change: RemoteConfigChange) -> None:
        if change.connection_changed:
            self._poller.refresh()
