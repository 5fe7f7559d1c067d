"""Dropship API package."""

from dropship.api.routes import dropship_router

__all__ = ["dropship_router"]
