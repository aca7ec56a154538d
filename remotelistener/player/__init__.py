"""
Playback for Remote Listener.

This package defines the capabilities the protocol needs from a media player
and the in-process reference implementation.
"""

from remotelistener.player.base import (
    PlaybackController,
    PlayerEngine,
    PlayState,
    RepeatMode,
    ShuffleMode,
)
from remotelistener.player.local import LocalPlayer

__all__ = [
    "LocalPlayer",
    "PlaybackController",
    "PlayerEngine",
    "PlayState",
    "RepeatMode",
    "ShuffleMode",
]
