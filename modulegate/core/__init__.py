"""Core configuration, security and access control for modulegate."""
