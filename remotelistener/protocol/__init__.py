"""
Remote protocol implementation for Remote Listener.

This package contains:
- codec: little-endian integers and length-prefixed strings
- frames: request parsing ([opcode][token u16][payload])
- dispatcher: auth gate and opcode -> handler table
- handlers: one module per command group
- listener: the TCP connection server (one request per connection)
"""

from remotelistener.protocol.dispatcher import CommandDispatcher
from remotelistener.protocol.frames import Opcode, ProtocolError, Request, parse_request
from remotelistener.protocol.listener import RemoteListener

__all__ = [
    "CommandDispatcher",
    "Opcode",
    "ProtocolError",
    "RemoteListener",
    "Request",
    "parse_request",
]
