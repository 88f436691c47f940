"""HTTP front-end for the deepcrawl service."""

from .app import create_app

__all__ = ["create_app"]
