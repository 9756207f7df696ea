"""API routers for all endpoints."""

from flowlens.routers import analytics

__all__ = ["analytics"]
