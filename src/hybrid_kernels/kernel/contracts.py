"""
Kernel Contracts — data structures shared by both backends and the routers.

These contracts define the interface between:
- The in-process engine and the remote server client (produce models)
- The routers (classify and merge models)
- The HTTP surface (serializes models)

Models are frozen dataclasses. Backends assign ids; nothing here generates
an id for the remote side.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping


class Location(str, Enum):
    """Which backend owns a kernel, session, or operation."""

    LOCAL = "local"  # In-process engine
    REMOTE = "remote"  # Jupyter server over HTTP/WebSocket


@dataclass(frozen=True)
class KernelSpec:
    """Static description of a launchable kernel type."""

    name: str
    display_name: str
    language: str = ""
    argv: tuple[str, ...] = ()
    env: Mapping[str, str] = field(default_factory=dict)
    metadata: Mapping[str, Any] = field(default_factory=dict)
    resources: Mapping[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "display_name": self.display_name,
            "language": self.language,
            "argv": list(self.argv),
            "env": dict(self.env),
            "metadata": dict(self.metadata),
            "resources": dict(self.resources),
        }


@dataclass(frozen=True)
class SpecRegistry:
    """
    A complete set of kernel specs plus the default kernel name.

    Always replaced as a whole; never mutate kernelspecs after construction.
    """

    default: str
    kernelspecs: Mapping[str, KernelSpec]

    def __contains__(self, name: object) -> bool:
        return name in self.kernelspecs

    def get(self, name: str) -> KernelSpec | None:
        return self.kernelspecs.get(name)

    @property
    def is_empty(self) -> bool:
        return not self.kernelspecs

    def to_dict(self) -> dict[str, Any]:
        return {
            "default": self.default,
            "kernelspecs": {
                name: spec.to_dict() for name, spec in self.kernelspecs.items()
            },
        }


@dataclass(frozen=True)
class KernelModel:
    """A running kernel as reported by its backend."""

    id: str
    name: str
    last_activity: str = ""
    execution_state: str = "unknown"
    connections: int = 0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> KernelModel:
        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or ""),
            last_activity=str(data.get("last_activity") or ""),
            execution_state=str(data.get("execution_state") or "unknown"),
            connections=int(data.get("connections") or 0),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "last_activity": self.last_activity,
            "execution_state": self.execution_state,
            "connections": self.connections,
        }


@dataclass(frozen=True)
class SessionModel:
    """A running session (a document bound to a kernel)."""

    id: str
    path: str
    name: str = ""
    type: str = "notebook"
    kernel: KernelModel | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SessionModel:
        kernel = data.get("kernel")
        return cls(
            id=str(data["id"]),
            path=str(data.get("path") or ""),
            name=str(data.get("name") or ""),
            type=str(data.get("type") or "notebook"),
            kernel=KernelModel.from_dict(kernel) if kernel else None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "path": self.path,
            "name": self.name,
            "type": self.type,
            "kernel": self.kernel.to_dict() if self.kernel else None,
        }


@dataclass(frozen=True)
class KernelConnection:
    """
    Handle returned by start_new/connect_to.

    ws_url is the remote kernel's channel endpoint; in-process kernels have
    no socket and leave it empty.
    """

    model: KernelModel
    location: Location
    ws_url: str = ""

    @property
    def id(self) -> str:
        return self.model.id

    @property
    def name(self) -> str:
        return self.model.name


@dataclass(frozen=True)
class SessionConnection:
    """Handle returned by session start_new/connect_to."""

    model: SessionModel
    location: Location
    kernel: KernelConnection | None = None

    @property
    def id(self) -> str:
        return self.model.id

    @property
    def path(self) -> str:
        return self.model.path


@dataclass(frozen=True)
class KernelChange:
    """A single add/remove/change of the in-process engine's kernel map."""

    type: str  # "add", "remove", "change"
    old_value: Any = None
    new_value: Any = None
