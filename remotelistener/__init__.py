"""
Remote Listener - remote control for a media player over a compact binary protocol.

A phone app connects over TCP, sends one request per connection and gets the
player status, the current song, playlists and their tracks, cover art or a
reduced copy of the track database back.
"""

__version__ = "0.1.0"
__author__ = "Remote Listener Contributors"
__license__ = "GPL-2.0"

from remotelistener.server import RemoteListenerServer

__all__ = ["RemoteListenerServer", "__version__"]
