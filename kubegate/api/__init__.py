"""Operational REST API for kubegate.

Exposes:
    create_app -- FastAPI application factory.
    build_app  -- Alias for create_app (used by kubegate.app bootstrap).
"""

from kubegate.api.app import create_app

build_app = create_app

__all__ = ["build_app", "create_app"]
