"""API routers for modulegate."""

from . import capabilities
from . import access
from . import admin

__all__ = [
    "capabilities",
    "access",
    "admin",
]
