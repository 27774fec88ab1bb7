"""HTTP API for usage accounting."""

from .app import create_app

__all__ = ["create_app"]
