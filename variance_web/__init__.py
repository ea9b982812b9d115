"""HTTP surface for the two operator views (FastAPI)."""

from variance_web.app import create_app

__all__ = ["create_app"]
