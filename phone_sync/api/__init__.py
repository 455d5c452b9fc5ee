"""HTTP status and trigger routes over the integration facade."""

from .app import create_app

__all__ = ["create_app"]
