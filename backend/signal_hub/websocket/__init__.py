"""
WebSocket Package

Real-time observer channel for the emergency signal hub. The same JSON
frames travel over Socket.IO `message` events and the raw /ws endpoint.

Components:
- events: messageType constants and wire models
- protocol: inbound frame parsing and validation
- connections: per-transport observer handles
- emitter: observer registry and best-effort broadcast
- handlers: transport events routed into the coordination hub

Usage:
    from signal_hub.websocket import WebSocketHandlers

    handlers = WebSocketHandlers(sio, hub)
"""

from .events import MessageType, utc_timestamp
from .protocol import InboundMessage, parse_inbound, decode_frame
from .connections import ObserverConnection, SocketIOConnection, WebSocketConnection
from .emitter import ObserverRegistry
from .handlers import WebSocketHandlers, get_handlers, set_handlers

__all__ = [
    "MessageType",
    "utc_timestamp",
    "InboundMessage",
    "parse_inbound",
    "decode_frame",
    "ObserverConnection",
    "SocketIOConnection",
    "WebSocketConnection",
    "ObserverRegistry",
    "WebSocketHandlers",
    "get_handlers",
    "set_handlers",
]
