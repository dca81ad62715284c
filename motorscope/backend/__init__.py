"""Remote API client."""

from motorscope.backend.client import BackendClient, BackendError

__all__ = ["BackendClient", "BackendError"]
