"""HTTP API for modulegate."""
