"""Route modules for the homecal server."""

from .feed_routes import register_feed_routes
from .health_routes import register_health_routes

__all__ = [
    "register_feed_routes",
    "register_health_routes",
]
