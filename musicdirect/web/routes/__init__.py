"""
Web Routes Package.

This package contains FastAPI route modules:
- api: REST API endpoints (/api/*)
- ws: real-time event push (/ws)
"""

from musicdirect.web.routes.api import register_api_routes
from musicdirect.web.routes.ws import register_ws_routes

__all__ = [
    "register_api_routes",
    "register_ws_routes",
]
