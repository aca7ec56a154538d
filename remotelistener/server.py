"""
Remote Listener - Main Server Module

This module contains the RemoteListenerServer class that wires the library,
the sources, the player and the protocol listener together and manages the
application lifecycle.
"""

import asyncio
import logging
import signal

from remotelistener.config import ConfigError, ConfigProvider
from remotelistener.core import CoreError
from remotelistener.core.artwork import CoverStore
from remotelistener.core.db_cache import DatabaseCache
from remotelistener.core.events import ConfigChangedEvent, Event
from remotelistener.core.library import MusicLibrary
from remotelistener.core.library_db import LibraryDb
from remotelistener.core.sources import SourceManager
from remotelistener.player.local import LocalPlayer
from remotelistener.protocol.dispatcher import CommandDispatcher
from remotelistener.protocol.handlers import HandlerContext, PlaybackOverride
from remotelistener.protocol.listener import RemoteListener

logger = logging.getLogger(__name__)


class RemoteListenerServer:
    """
    Coordinates all server components.

    The server manages:
    - The library database, scanner and cover store
    - Track sources (library, user playlists, remote playlist, play queue)
    - The reference player
    - The reduced database copy served to clients
    - The protocol listener, rebound on port changes
    """

    def __init__(self, config: ConfigProvider, *, scan_on_start: bool = False) -> None:
        self.config = config
        self.scan_on_start = scan_on_start
        bus = config.bus
        current = config.current

        self.library_db = LibraryDb(db_path=current.library_db)
        self.covers = CoverStore(cover_dir=current.cover_dir)
        self.music_library = MusicLibrary(
            db=self.library_db,
            covers=self.covers,
            music_root=current.music_root,
            bus=bus,
        )
        self.sources = SourceManager(bus=bus)
        self.player = LocalPlayer(library=self.music_library, sources=self.sources, bus=bus)
        self.db_cache = DatabaseCache(
            source_db=current.library_db,
            cache_db=current.cache_db,
            max_age=current.cache_max_age,
            bus=bus,
        )

        self.context = HandlerContext(
            player=self.player,
            controller=self.player,
            library=self.music_library,
            sources=self.sources,
            covers=self.covers,
            db_cache=self.db_cache,
            config=config,
            override=PlaybackOverride(window=current.override_window),
        )
        self.dispatcher = CommandDispatcher(self.context, token_source=lambda: config.auth_token)
        self.listener = RemoteListener(config, self.dispatcher)

        self._running = False
        self._shutdown_event: asyncio.Event | None = None

    async def start(self) -> None:
        """Start all server components."""
        logger.info("Starting Remote Listener on %s:%d", self.config.current.host, self.config.port)

        self._running = True
        self._shutdown_event = asyncio.Event()

        await self.library_db.open()
        await self.music_library.initialize()

        if self.scan_on_start:
            try:
                await self.rescan()
            except CoreError as e:
                logger.error("Startup scan skipped: %s", e)
                await self.sources.refresh_from_library(self.music_library)
        else:
            await self.sources.refresh_from_library(self.music_library)

        await self.config.bus.subscribe("config.changed", self._on_config_changed)

        # A failed bind is logged by the listener; a later port change retries
        await self.listener.start()

        logger.info("Remote Listener started")

    async def stop(self) -> None:
        """Stop all server components gracefully."""
        if not self._running:
            return

        logger.info("Stopping Remote Listener...")
        self._running = False

        await self.listener.stop()
        await self.config.bus.unsubscribe("config.changed", self._on_config_changed)

        # Close library DB last, after the listener is stopped.
        await self.library_db.close()

        if self._shutdown_event:
            self._shutdown_event.set()

        logger.info("Remote Listener stopped")

    async def rescan(self) -> None:
        """Scan the music folder and refresh the sources and the database copy."""
        await self.music_library.scan()
        await self.sources.refresh_from_library(self.music_library)
        await self.db_cache.rebuild()

    async def reload_config(self) -> None:
        try:
            changed = await self.config.reload()
        except (ConfigError, OSError) as e:
            logger.error("Config reload failed, keeping current configuration: %s", e)
            return
        logger.info("Config reloaded (%d changes)", len(changed))

    async def _on_config_changed(self, event: Event) -> None:
        if not isinstance(event, ConfigChangedEvent):
            return
        if event.key == "override_window":
            self.context.override.window = float(event.new_value)
        elif event.key == "cache_max_age":
            self.db_cache.max_age = int(event.new_value)

    async def run(self) -> None:
        """
        Run the server until shutdown is requested.

        SIGINT/SIGTERM stop the server; SIGHUP reloads the configuration file.
        """
        await self.start()

        loop = asyncio.get_running_loop()
        reload_tasks: set[asyncio.Task[None]] = set()

        def handle_signal() -> None:
            logger.info("Received shutdown signal")
            if self._shutdown_event:
                self._shutdown_event.set()

        def handle_reload() -> None:
            logger.info("Received reload signal")
            task = loop.create_task(self.reload_config())
            reload_tasks.add(task)
            task.add_done_callback(reload_tasks.discard)

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, handle_signal)
            except NotImplementedError:
                # Signal handlers not supported on Windows
                pass

        sighup = getattr(signal, "SIGHUP", None)
        if sighup is not None:
            try:
                loop.add_signal_handler(sighup, handle_reload)
            except NotImplementedError:
                pass

        if self._shutdown_event:
            await self._shutdown_event.wait()

        await self.stop()

    @property
    def is_running(self) -> bool:
        """Check if the server is currently running."""
        return self._running

    @property
    def port(self) -> int:
        """The port the listener is bound to."""
        return self.listener.port
