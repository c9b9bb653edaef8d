"""
Web layer for MusicDirect: FastAPI app, REST and WebSocket routes, and the
chat-bot command dispatcher.
"""

from musicdirect.web.server import WebServer

__all__ = ["WebServer"]
