"""Bot status and admin HTTP service."""

from .server import StatusApiServer

__all__ = ["StatusApiServer"]
