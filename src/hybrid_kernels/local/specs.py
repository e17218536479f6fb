"""
KernelSpecs — the in-process engine's registry of kernel types.

Kernel types are registered in code, optionally with a factory that
builds the engine object backing each kernel instance. Whatever is
registered here is, by definition, servable locally: the routers use this
registry to decide where a new kernel goes.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from hybrid_kernels.core.signal import Signal
from hybrid_kernels.kernel.contracts import KernelSpec, SpecRegistry

logger = logging.getLogger(__name__)

KernelFactory = Callable[[str, KernelSpec], Any]


class KernelSpecs:
    """Mutable registry of in-process kernel types.

    Every mutation replaces the published SpecRegistry and fires changed.
    """

    def __init__(self) -> None:
        self._specs: dict[str, KernelSpec] = {}
        self._factories: dict[str, KernelFactory] = {}
        self._default = ""
        self._registry: SpecRegistry | None = None
        self.changed = Signal("local_specs.changed")

    def register(
        self,
        spec: KernelSpec,
        factory: KernelFactory | None = None,
        default: bool = False,
    ) -> None:
        """Register (or replace) a kernel type."""
        self._specs[spec.name] = spec
        if factory is not None:
            self._factories[spec.name] = factory
        else:
            self._factories.pop(spec.name, None)
        if default or not self._default:
            self._default = spec.name
        logger.info("Registered in-process kernel spec: %s", spec.name)
        self._publish()

    def unregister(self, name: str) -> bool:
        if name not in self._specs:
            return False
        del self._specs[name]
        self._factories.pop(name, None)
        if self._default == name:
            self._default = next(iter(self._specs), "")
        logger.info("Unregistered in-process kernel spec: %s", name)
        self._publish()
        return True

    def _publish(self) -> None:
        self._registry = (
            SpecRegistry(default=self._default, kernelspecs=dict(self._specs))
            if self._specs
            else None
        )
        self.changed.emit(self._registry)

    @property
    def specs(self) -> SpecRegistry | None:
        """Current registry, or None when nothing is registered."""
        return self._registry

    @property
    def default(self) -> str:
        return self._default

    def has(self, name: str | None) -> bool:
        return bool(name) and name in self._specs

    def factory(self, name: str) -> KernelFactory | None:
        return self._factories.get(name)

    async def list_specs(self) -> SpecRegistry | None:
        """The engine's spec list, in the same shape a server would return."""
        return self._registry
