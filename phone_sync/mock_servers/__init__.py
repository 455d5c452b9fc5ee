"""Mock API servers for testing."""

from .app import create_app, create_gsmarena_app, create_price_app

__all__ = ["create_app", "create_gsmarena_app", "create_price_app"]
