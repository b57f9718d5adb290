"""
FastAPI dependency utilities for injecting configuration.
"""

from fastapi import Request

from patron_gate.core.config import AppSettings

from .services import get_container


def get_app_settings(request: Request) -> AppSettings:
    """FastAPI dependency returning the settings the running app was built with."""
    return get_container(request).settings


__all__ = ["get_app_settings"]
