"""
Hybrid Kernels Configuration — static settings plus the live remote config.

Static settings come from environment variables (a .env file is honored)
and are frozen for the life of the process. The remote server connection
is the one piece users change at runtime, so it lives in RemoteServerConfig
and is read on every outgoing call instead of being captured at startup.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum

from dotenv import load_dotenv

from hybrid_kernels.core.signal import Signal

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_SERVER_URL = "http://localhost:8888/"
DEFAULT_PROMOTE_PATTERNS = ("ModuleNotFoundError", "MemoryError")


class OperatingMode(str, Enum):
    """Which server backs the "remote" slot.

    HYBRID: a real Jupyter server (usually the one serving the page) is
            consulted next to the in-process engine.
    REMOTE: only the in-process engine, plus a user-configured remote server
            once a base URL has been entered.
    """

    HYBRID = "hybrid"
    REMOTE = "remote"

    @classmethod
    def parse(cls, value: str | None) -> OperatingMode:
        if (value or "").strip().lower() == cls.REMOTE.value:
            return cls.REMOTE
        return cls.HYBRID


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class RemoteConfig:
    """Initial remote server connection settings."""

    base_url: str = ""
    token: str = ""
    default_server_url: str = DEFAULT_SERVER_URL
    request_timeout: float = 10.0  # seconds

    @classmethod
    def from_env(cls) -> RemoteConfig:
        return cls(
            base_url=os.getenv("HYBRID_KERNELS_BASE_URL", ""),
            token=os.getenv("HYBRID_KERNELS_TOKEN", ""),
            default_server_url=os.getenv(
                "HYBRID_KERNELS_DEFAULT_SERVER_URL", DEFAULT_SERVER_URL
            ),
            request_timeout=float(os.getenv("HYBRID_KERNELS_REQUEST_TIMEOUT", "10.0")),
        )


@dataclass(frozen=True)
class PollConfig:
    """Polling cadence for kernel specs and running kernels/sessions."""

    specs_interval: float = 10.0
    specs_max_interval: float = 300.0
    running_interval: float = 10.0
    running_max_interval: float = 300.0
    backoff: float = 2.0  # growth factor; <= 1 disables backoff

    @classmethod
    def from_env(cls) -> PollConfig:
        return cls(
            specs_interval=float(os.getenv("HYBRID_KERNELS_SPECS_INTERVAL", "10.0")),
            specs_max_interval=float(
                os.getenv("HYBRID_KERNELS_SPECS_MAX_INTERVAL", "300.0")
            ),
            running_interval=float(
                os.getenv("HYBRID_KERNELS_RUNNING_INTERVAL", "10.0")
            ),
            running_max_interval=float(
                os.getenv("HYBRID_KERNELS_RUNNING_MAX_INTERVAL", "300.0")
            ),
            backoff=float(os.getenv("HYBRID_KERNELS_POLL_BACKOFF", "2.0")),
        )


@dataclass(frozen=True)
class PromoterConfig:
    """Kernel promotion settings."""

    auto_promote: bool = True
    error_patterns: tuple[str, ...] = DEFAULT_PROMOTE_PATTERNS

    @classmethod
    def from_env(cls) -> PromoterConfig:
        raw = os.getenv("HYBRID_KERNELS_PROMOTE_PATTERNS")
        patterns = (
            tuple(p.strip() for p in raw.split(",") if p.strip())
            if raw is not None
            else DEFAULT_PROMOTE_PATTERNS
        )
        return cls(
            auto_promote=_env_bool("HYBRID_KERNELS_AUTO_PROMOTE", True),
            error_patterns=patterns,
        )


@dataclass(frozen=True)
class ServerConfig:
    """HTTP server settings."""

    host: str = "127.0.0.1"
    port: int = 8890

    @classmethod
    def from_env(cls) -> ServerConfig:
        return cls(
            host=os.getenv("HYBRID_KERNELS_HOST", "127.0.0.1"),
            port=int(os.getenv("HYBRID_KERNELS_PORT", "8890")),
        )


@dataclass(frozen=True)
class HybridKernelsConfig:
    """Root configuration."""

    mode: OperatingMode = OperatingMode.HYBRID
    remote: RemoteConfig = field(default_factory=RemoteConfig)
    poll: PollConfig = field(default_factory=PollConfig)
    promoter: PromoterConfig = field(default_factory=PromoterConfig)
    server: ServerConfig = field(default_factory=ServerConfig)

    @classmethod
    def from_env(cls) -> HybridKernelsConfig:
        return cls(
            mode=OperatingMode.parse(os.getenv("HYBRID_KERNELS_MODE")),
            remote=RemoteConfig.from_env(),
            poll=PollConfig.from_env(),
            promoter=PromoterConfig.from_env(),
            server=ServerConfig.from_env(),
        )


config = HybridKernelsConfig.from_env()


def reload_config() -> HybridKernelsConfig:
    """Re-read the environment and replace the module-level config."""
    global config
    config = HybridKernelsConfig.from_env()
    return config


# ─── Runtime remote server configuration ──────────────────────


@dataclass(frozen=True)
class RemoteConfigChange:
    """Payload of RemoteServerConfig.changed: which fields moved."""

    fields: frozenset[str]

    @property
    def connection_changed(self) -> bool:
        """True when the server address or credentials changed."""
        return bool(self.fields & {"base_url", "token"})


class RemoteServerConfig:
    """
    User-editable remote server settings.

    Every consumer reads base_url/token through this object at call time,
    so an update takes effect on the next request without rebuilding any
    manager.
    """

    def __init__(self, base_url: str = "", token: str = "") -> None:
        self._base_url = base_url
        self._token = token
        self._is_connected = False
        self.changed = Signal("remote_config.changed")

    @classmethod
    def from_config(cls, remote: RemoteConfig) -> RemoteServerConfig:
        return cls(base_url=remote.base_url, token=remote.token)

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def token(self) -> str:
        return self._token

    @property
    def is_connected(self) -> bool:
        return self._is_connected

    def set_connected(self, connected: bool) -> None:
        if self._is_connected != connected:
            self._is_connected = connected
            self.changed.emit(RemoteConfigChange(frozenset({"is_connected"})))

    def update(self, base_url: str | None = None, token: str | None = None) -> bool:
        """Apply new values. Returns True (and notifies) if anything changed."""
        changed: set[str] = set()
        if base_url is not None and base_url != self._base_url:
            self._base_url = base_url
            changed.add("base_url")
        if token is not None and token != self._token:
            self._token = token
            changed.add("token")
        if changed:
            logger.info("Remote server config updated: %s", sorted(changed))
            self.changed.emit(RemoteConfigChange(frozenset(changed)))
        return bool(changed)


class ServerSettings:
    """Connection settings whose values are resolved on every access.

    Falls back to the default server URL (the page's own Jupyter server in
    hybrid mode) when no remote base URL is configured.
    """

    def __init__(
        self,
        remote: RemoteServerConfig,
        default_base_url: str = DEFAULT_SERVER_URL,
    ) -> None:
        self._remote = remote
        self._default_base_url = default_base_url

    @property
    def base_url(self) -> str:
        base_url = self._remote.base_url or self._default_base_url
        return base_url if base_url.endswith("/") else f"{base_url}/"

    @property
    def ws_url(self) -> str:
        base_url = self.base_url
        if base_url.startswith("http"):
            return "ws" + base_url[len("http"):]
        return base_url

    @property
    def token(self) -> str:
        return self._remote.token

    @property
    def is_remote_configured(self) -> bool:
        return bool(self._remote.base_url)
