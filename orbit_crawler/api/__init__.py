"""HTTP API package."""

from orbit_crawler.api.app import create_app

__all__ = ["create_app"]
