"""Persistence layer for modulegate."""
