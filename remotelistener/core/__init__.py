"""
Core domain package.

This package contains the library, cover store, cached database and playlist
sources. It is independent of the wire protocol; the protocol handlers only
consume it through the objects defined here.

Consumers should usually import from the specific module they need
(e.g. `remotelistener.core.library`).
"""

from __future__ import annotations

__all__: list[str] = [
    "CoreError",
    "NotFoundError",
]


class CoreError(Exception):
    """Base class for core-layer exceptions."""


class NotFoundError(CoreError):
    """Raised when a track, playlist or cover cannot be found."""
