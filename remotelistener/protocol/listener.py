"""
Connection server for the remote protocol.

One request per connection: the listener reads once into a buffer owned by
the connection, dispatches the request, writes at most one reply and closes.
asyncio keeps accepting while handlers run, so a slow handler never blocks
new connections.

The listener follows the configured port: it subscribes to "config.changed"
and rebinds when `port` or `host` changes. A bind failure is logged and
leaves the listener stopped until the next successful (re)start.
"""

from __future__ import annotations

import asyncio
import logging

from remotelistener.config import ConfigProvider
from remotelistener.core.events import ConfigChangedEvent, Event
from remotelistener.protocol.dispatcher import CommandDispatcher
from remotelistener.protocol.frames import ProtocolError, parse_request

logger = logging.getLogger(__name__)

# Config keys that require a rebind
_REBIND_KEYS = frozenset({"port", "host"})


class RemoteListener:
    """
    TCP listener serving remote protocol requests.

    Attributes:
        host: The bound host (after start()).
        port: The bound port (after start()).
    """

    def __init__(self, config: ConfigProvider, dispatcher: CommandDispatcher) -> None:
        self._config = config
        self._dispatcher = dispatcher
        self._server: asyncio.Server | None = None
        self._connection_tasks: set[asyncio.Task[None]] = set()
        self._restart_lock = asyncio.Lock()
        self._subscribed = False

        self.host = config.current.host
        self.port = config.current.port

    @property
    def is_running(self) -> bool:
        return self._server is not None

    async def start(self) -> bool:
        """
        Bind and start accepting connections.

        Returns:
            True if the listener is accepting connections.
        """
        if not self._subscribed:
            await self._config.bus.subscribe("config.changed", self.on_config_changed)
            self._subscribed = True
        return await self._bind()

    async def _bind(self) -> bool:
        if self._server is not None:
            logger.warning("Remote listener already running")
            return True

        config = self._config.current
        try:
            self._server = await asyncio.start_server(
                self._handle_connection,
                host=config.host,
                port=config.port,
                reuse_address=True,
            )
        except OSError as e:
            logger.error("Remote listener cannot bind %s:%d: %s", config.host, config.port, e)
            self._server = None
            return False

        self.host = config.host
        sockets = self._server.sockets or ()
        self.port = sockets[0].getsockname()[1] if sockets else config.port
        logger.info("Remote listener listening on %s:%d", self.host, self.port)
        return True

    async def stop(self) -> None:
        """Stop accepting, cancel in-flight connections and unsubscribe."""
        if self._subscribed:
            await self._config.bus.unsubscribe("config.changed", self.on_config_changed)
            self._subscribed = False
        await self._close()

    async def _close(self) -> None:
        if self._server is None:
            return

        logger.info("Stopping remote listener on %s:%d", self.host, self.port)
        self._server.close()

        for task in list(self._connection_tasks):
            task.cancel()
        if self._connection_tasks:
            await asyncio.gather(*self._connection_tasks, return_exceptions=True)
            self._connection_tasks.clear()

        await self._server.wait_closed()
        self._server = None

    async def restart(self) -> bool:
        """Rebind with the current configuration."""
        async with self._restart_lock:
            await self._close()
            return await self._bind()

    async def on_config_changed(self, event: Event) -> None:
        if not isinstance(event, ConfigChangedEvent):
            return
        if event.key in _REBIND_KEYS:
            logger.info("Listener %s changed to %r; restarting", event.key, event.new_value)
            await self.restart()

    async def _handle_connection(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        """Serve exactly one request on this connection."""
        peername = writer.get_extra_info("peername")
        remote_addr = f"{peername[0]}:{peername[1]}" if peername else "unknown"

        task = asyncio.current_task()
        if task is not None:
            self._connection_tasks.add(task)

        try:
            # Per-connection buffer; a request must arrive in one read
            data = await reader.read(self._config.current.max_request_bytes)
            if not data:
                logger.debug("Empty request from %s", remote_addr)
                return

            request = parse_request(data)
            logger.debug(
                "Request %s from %s (%d payload bytes)",
                request.opcode_name,
                remote_addr,
                request.length,
            )

            response = await self._dispatcher.dispatch(request)
            if response:
                writer.write(response)
                await writer.drain()
        except asyncio.CancelledError:
            logger.debug("Connection handler cancelled for %s", remote_addr)
        except ConnectionError as e:
            logger.debug("Connection error with %s: %s", remote_addr, e)
        except ProtocolError as e:
            logger.warning("Protocol error from %s: %s", remote_addr, e)
        except Exception as e:
            logger.exception("Error handling connection from %s: %s", remote_addr, e)
        finally:
            if task is not None:
                self._connection_tasks.discard(task)
            writer.close()
            try:
                await writer.wait_closed()
            except (ConnectionError, asyncio.CancelledError):
                pass
