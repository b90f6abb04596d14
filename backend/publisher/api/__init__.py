"""API routes for the video publishing pipeline."""

from publisher.api import routes

__all__ = ["routes"]
