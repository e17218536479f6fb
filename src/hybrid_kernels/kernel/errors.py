"""Error taxonomy for routing and backend calls."""

from __future__ import annotations


class HybridKernelsError(Exception):
    """Base class for every error raised by this package."""


class RemoteUnreachableError(HybridKernelsError):
    """The remote server could not be reached (DNS, refused, timeout)."""


class ServerResponseError(HybridKernelsError):
    """The remote server answered with a non-success status."""

    def __init__(self, status_code: int, message: str = "") -> None:
        self.status_code = status_code
        self.message = message or f"HTTP {status_code}"
        super().__init__(self.message)


class NotFoundError(HybridKernelsError):
    """A kernel, session or kernel spec id is unknown to its backend."""


class PromotionError(HybridKernelsError):
    """Relaunching a local session on the remote server failed."""
