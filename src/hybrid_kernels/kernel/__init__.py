"""
Kernel Package — routing between the in-process engine and a Jupyter server.

This package provides:
- Contracts: KernelSpec, SpecRegistry, KernelModel, SessionModel, Location
- Errors: the exception taxonomy shared by backends and routers
- HybridKernelSpecManager (kernelspec), HybridKernelManager (manager),
  HybridSessionManager (session), HybridKernelClient (client) and
  KernelPromoter (promoter), imported from their modules
"""

from hybrid_kernels.kernel.contracts import (
    KernelChange,
    KernelConnection,
    KernelModel,
    KernelSpec,
    Location,
    SessionConnection,
    SessionModel,
    SpecRegistry,
)
from hybrid_kernels.kernel.errors import (
    HybridKernelsError,
    NotFoundError,
    PromotionError,
    RemoteUnreachableError,
    ServerResponseError,
)

__all__ = [
    # Contracts
    "KernelSpec",
    "SpecRegistry",
    "KernelModel",
    "SessionModel",
    "KernelConnection",
    "SessionConnection",
    "KernelChange",
    "Location",
    # Errors
    "HybridKernelsError",
    "RemoteUnreachableError",
    "ServerResponseError",
    "NotFoundError",
    "PromotionError",
]
