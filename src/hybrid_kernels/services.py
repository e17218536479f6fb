"""
HybridServices — builds and owns every long-lived object.

Wiring:
  RemoteServerConfig ─▶ ServerSettings ─▶ ServerAPI
  KernelSpecs ─▶ LocalKernelClient ─▶ HybridKernelClient ─▶ LocalSessionClient
  HybridKernelSpecManager, HybridKernelManager, HybridSessionManager,
  KernelPromoter on top.

The front-end visibility state is the standby predicate of every poller.
In remote mode the server pollers also stand by until a base URL has been
configured.
"""

from __future__ import annotations

import logging

import httpx

from hybrid_kernels.core.config import (
    HybridKernelsConfig,
    OperatingMode,
    RemoteConfigChange,
    RemoteServerConfig,
    ServerSettings,
)
from hybrid_kernels.kernel.client import HybridKernelClient
from hybrid_kernels.kernel.errors import HybridKernelsError
from hybrid_kernels.kernel.kernelspec import HybridKernelSpecManager
from hybrid_kernels.kernel.manager import HybridKernelManager
from hybrid_kernels.kernel.poll import Visibility
from hybrid_kernels.kernel.promoter import KernelPromoter
from hybrid_kernels.kernel.session import HybridSessionManager
from hybrid_kernels.local import (
    KernelSpecs,
    LocalKernelClient,
    LocalKernelManager,
    LocalSessionClient,
    LocalSessionManager,
)
from hybrid_kernels.remote import ServerAPI, ServerKernelManager, ServerSessionManager

logger = logging.getLogger(__name__)


class HybridServices:
    """Composition root for the routing layer."""

    def __init__(
        self,
        config: HybridKernelsConfig,
        local_specs: KernelSpecs | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self.mode = config.mode
        self.visibility = Visibility()
        self.remote_config = RemoteServerConfig.from_config(config.remote)
        self.settings = ServerSettings(
            self.remote_config, config.remote.default_server_url
        )
        self.api = ServerAPI(
            self.settings, timeout=config.remote.request_timeout, transport=transport
        )

        self.local_specs = local_specs or KernelSpecs()
        self.local_kernel_client = LocalKernelClient(self.local_specs)
        self.kernel_client = HybridKernelClient(
            self.local_kernel_client, self.api, self.local_specs
        )
        self.local_session_client = LocalSessionClient(self.kernel_client)

        self.kernelspecs = HybridKernelSpecManager(
            self.local_specs,
            self.api,
            self.remote_config,
            mode=self.mode,
            poll=config.poll,
            standby=self.visibility.is_hidden,
        )
        self.kernels = HybridKernelManager(
            LocalKernelManager(self.local_kernel_client),
            ServerKernelManager(self.api, config.poll, standby=self._server_standby),
            self.local_specs,
        )
        self.sessions = HybridSessionManager(
            LocalSessionManager(
                self.local_session_client,
                kernel_connector=self.kernel_client.connect_to,
            ),
            ServerSessionManager(self.api, config.poll, standby=self._server_standby),
            self.local_specs,
        )
        self.promoter = KernelPromoter(self.sessions, self.kernels, config.promoter)

        self.remote_config.changed.connect(self._on_remote_config_changed)
        self._started = False

    @classmethod
    def from_config(cls, config: HybridKernelsConfig | None = None, **kwargs) -> HybridServices:
        if config is None:
            from hybrid_kernels.core.config import config as default_config

            config = default_config
        return cls(config, **kwargs)

    # ─── Lifecycle ───────────────────────────────────────────────

    async def start(self) -> None:
        if self._started:
            return
        self._started = True
        logger.info(
            "Starting hybrid kernel services (mode=%s, server=%s)",
            self.mode.value,
            self.settings.base_url,
            extra={"mode": self.mode.value},
        )
        await self.kernelspecs.start()
        await self.kernels.start()
        await self.sessions.start()

    async def stop(self) -> None:
        if not self._started:
            return
        self._started = False
        self.remote_config.changed.disconnect(self._on_remote_config_changed)
        await self.sessions.stop()
        await self.kernels.stop()
        await self.kernelspecs.stop()
        await self.local_kernel_client.changed.drain()
        logger.info("Hybrid kernel services stopped")

    @property
    def is_ready(self) -> bool:
        return (
            self.kernelspecs.is_ready
            and self.kernels.is_ready
            and self.sessions.is_ready
        )

    # ─── Remote server ───────────────────────────────────────────

    def _server_standby(self) -> bool:
        if self.visibility.is_hidden():
            return True
        return self.mode is OperatingMode.REMOTE and not self.settings.is_remote_configured

    def _on_remote_config_changed(self, change: RemoteConfigChange) -> None:
        if change.connection_changed:
            self.kernels.remote.refresh_soon()
            self.sessions.remote.refresh_soon()

    async def configure_remote(
        self, base_url: str | None = None, token: str | None = None
    ) -> bool:
        """Apply a new remote server address/token and test it.

        Returns whether the server answered its kernel spec endpoint.
        """
        self.remote_config.update(base_url=base_url, token=token)
        if self.settings.is_remote_configured:
            try:
                await self.api.list_kernelspecs(token_in_query=True)
            except HybridKernelsError as e:
                logger.warning("Remote server test failed: %s", e)
                self.remote_config.set_connected(False)
            else:
                self.remote_config.set_connected(True)
        else:
            self.remote_config.set_connected(False)
        await self.kernelspecs.refresh_specs()
        return self.remote_config.is_connected
