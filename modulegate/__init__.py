"""modulegate - capability-based access control for multi-tenant applications."""

__version__ = "0.1.0"
