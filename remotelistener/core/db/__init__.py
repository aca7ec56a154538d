"""
Internal DB subpackage for Remote Listener.

This package splits the library DB into focused units (models, schema/migrations,
and query groups) while keeping `LibraryDb` as the single public interface that
the rest of the codebase imports.

External code should import `LibraryDb` from `remotelistener.core.library_db`.
"""

from __future__ import annotations

# Models / DTOs
from .models import PlaylistRow, TrackRow, UpsertTrack

# Schema / migrations
from .schema import ensure_schema, migrate

__all__ = [
    # models
    "PlaylistRow",
    "TrackRow",
    "UpsertTrack",
    # schema
    "ensure_schema",
    "migrate",
]
