"""Current user service: a single MongoDB-backed user record over HTTP."""

from __future__ import annotations

from typing import Any

from .config import Settings, load_settings


def create_app(*args: Any, **kwargs: Any):
    """Factory function that returns the FastAPI application."""

    from .service import create_app as _create_app

    return _create_app(*args, **kwargs)


__all__ = [
    "Settings",
    "load_settings",
    "create_app",
]
