"""HTTP surface: JSON API, OAuth callback and webhook endpoint."""
from .app import AppServices, create_app

__all__ = ["AppServices", "create_app"]
