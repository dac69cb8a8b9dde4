"""WebSocket server package."""

from .connections import ConnectionPool, DeviceConnection
from .messages import MessageDispatcher, decode, encode
from .websocket import TimerServer

__all__ = [
    "ConnectionPool",
    "DeviceConnection",
    "MessageDispatcher",
    "TimerServer",
    "decode",
    "encode",
]
