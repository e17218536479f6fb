"""
In-process engine — kernel types and kernel/session records that live in
this process.

Key components:
- KernelSpecs: registry of locally servable kernel types
- LocalKernelClient / LocalSessionClient: lifecycle records and engine hooks
- LocalKernelManager / LocalSessionManager: running caches for the routers
"""

from hybrid_kernels.local.client import LocalKernelClient, LocalSessionClient
from hybrid_kernels.local.manager import LocalKernelManager, LocalSessionManager
from hybrid_kernels.local.specs import KernelSpecs

__all__ = [
    "KernelSpecs",
    "LocalKernelClient",
    "LocalSessionClient",
    "LocalKernelManager",
    "LocalSessionManager",
]
