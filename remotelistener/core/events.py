"""
Event Bus for Remote Listener.

This module provides a simple pub/sub event system for decoupled communication
between components. The primary use case is restarting the listener when the
configured port changes.

Event types:
- config.changed: A configuration value changed (one event per key)
- playback.changed: Play state or active track changed
- playlist.changed: A track was added to or removed from a reserved playlist
- library.scan: Library scan started/completed/failed
- database.cache: The cached database copy was rebuilt (or the rebuild failed)

Usage:
    from remotelistener.core.events import event_bus

    async def on_config(event: ConfigChangedEvent) -> None:
        print(f"{event.key}: {event.old_value} -> {event.new_value}")

    await event_bus.subscribe("config.changed", on_config)
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Coroutine

logger = logging.getLogger(__name__)

# Type alias for event handlers
EventHandler = Callable[["Event"], Coroutine[Any, Any, None]]


@dataclass
class Event:
    """Base class for all events."""

    event_type: str = ""


@dataclass
class ConfigChangedEvent(Event):
    """Fired once per configuration key whose value changed."""

    event_type: str = field(default="config.changed", init=False)
    key: str = ""
    old_value: Any = None
    new_value: Any = None


@dataclass
class PlaybackChangedEvent(Event):
    """Fired when the player starts, pauses, stops or switches track."""

    event_type: str = field(default="playback.changed", init=False)
    state: str = ""  # idle, playing, paused
    track_id: int = 0
    source_id: int = 0


@dataclass
class PlaylistChangedEvent(Event):
    """Fired when a reserved playlist is modified remotely."""

    event_type: str = field(default="playlist.changed", init=False)
    playlist_id: int = 0
    action: str = ""  # add, remove
    track_id: int = 0
    count: int = 0


@dataclass
class LibraryScanEvent(Event):
    """Fired during library scanning."""

    event_type: str = field(default="library.scan", init=False)
    status: str = ""  # started, completed, failed
    scanned: int = 0
    errors: int = 0
    error: str = ""


@dataclass
class DatabaseCacheEvent(Event):
    """Fired after a cached database build attempt."""

    event_type: str = field(default="database.cache", init=False)
    status: str = ""  # rebuilt, failed
    timestamp: int = 0
    size: int = 0


class EventBus:
    """
    Simple async pub/sub event bus.

    Supports:
    - Multiple handlers per event type
    - Wildcard subscriptions (e.g., "config.*")
    - Async handlers
    - Error isolation (one handler failing doesn't affect others)
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = {}
        self._lock = asyncio.Lock()

    async def subscribe(self, event_type: str, handler: EventHandler) -> None:
        """
        Subscribe to events of a specific type.

        Args:
            event_type: Event type to subscribe to. Use ".*" suffix for wildcards.
            handler: Async function to call when event is published.
        """
        async with self._lock:
            self._handlers.setdefault(event_type, []).append(handler)
            logger.debug("Subscribed to %s: %s", event_type, handler)

    async def unsubscribe(self, event_type: str, handler: EventHandler) -> bool:
        """
        Unsubscribe a handler from an event type.

        Returns True if handler was found and removed.
        """
        async with self._lock:
            if event_type in self._handlers:
                try:
                    self._handlers[event_type].remove(handler)
                    logger.debug("Unsubscribed from %s: %s", event_type, handler)
                    return True
                except ValueError:
                    pass
            return False

    async def publish(self, event: Event) -> int:
        """
        Publish an event to all subscribed handlers.

        Returns:
            Number of handlers that received the event.
        """
        event_type = event.event_type
        handlers_called = 0

        async with self._lock:
            matching_handlers: list[EventHandler] = []

            if event_type in self._handlers:
                matching_handlers.extend(self._handlers[event_type])

            for pattern, handlers in self._handlers.items():
                if pattern.endswith(".*"):
                    prefix = pattern[:-2]
                    if event_type.startswith(prefix + "."):
                        matching_handlers.extend(handlers)
                elif pattern == "*":
                    matching_handlers.extend(handlers)

        # Call handlers outside of lock
        for handler in matching_handlers:
            try:
                await handler(event)
                handlers_called += 1
            except Exception as e:
                logger.exception("Error in event handler for %s: %s", event_type, e)

        if handlers_called > 0:
            logger.debug("Published %s to %d handlers", event_type, handlers_called)

        return handlers_called


# Global event bus instance
event_bus = EventBus()
