"""
MusicDirect - a shared, room-scoped playlist controller.

Clients join a room by its short code, collaboratively build a playlist of
catalog tracks, and receive real-time transport and playlist notifications
over WebSockets.
"""

__version__ = "0.1.0"
__author__ = "MusicDirect Contributors"
__license__ = "GPL-2.0"

from musicdirect.server import MusicDirectServer

__all__ = ["MusicDirectServer", "__version__"]
