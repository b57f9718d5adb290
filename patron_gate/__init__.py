"""Patreon membership verification service."""

__version__ = "0.1.0"
