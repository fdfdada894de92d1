"""HTTP surface for the router."""

from .main import create_app, create_default_app

__all__ = ["create_app", "create_default_app"]
