"""
Remote backend — a Jupyter server reached over its REST API.

Key components:
- ServerAPI: httpx client for kernelspecs, kernels and sessions
- ServerKernelManager / ServerSessionManager: polled running caches
"""

from hybrid_kernels.remote.api import ServerAPI
from hybrid_kernels.remote.manager import ServerKernelManager, ServerSessionManager

__all__ = [
    "ServerAPI",
    "ServerKernelManager",
    "ServerSessionManager",
]
