"""
Observer Connections

An observer connection is the hub's only handle on a connected dashboard.
The hub needs exactly two things from it: whether it is currently open, and
a way to send one text frame. Two transports are supported:

- SocketIOConnection: a Socket.IO session (frames sent as `message` events)
- WebSocketConnection: a plain WebSocket on the FastAPI /ws endpoint
"""

import time
import uuid

from starlette.websockets import WebSocket, WebSocketState

from signal_hub.errors import DeliveryFailure


class ObserverConnection:
    """Base observer handle"""

    transport = "unknown"

    def __init__(self, connection_id: str, remote_addr: str = "unknown"):
        self.connection_id = connection_id
        self.remote_addr = remote_addr
        self.connected_at = time.time()
        self._closed = False

    @property
    def is_open(self) -> bool:
        return not self._closed

    def mark_closed(self):
        self._closed = True

    async def send_text(self, text: str):
        raise NotImplementedError

    def describe(self) -> dict:
        return {
            "connectionId": self.connection_id,
            "transport": self.transport,
            "remoteAddr": self.remote_addr,
            "connectedAt": self.connected_at,
            "open": self.is_open,
        }


class SocketIOConnection(ObserverConnection):
    """Observer attached through the Socket.IO server"""

    transport = "socket.io"

    def __init__(self, sio, sid: str, remote_addr: str = "unknown"):
        super().__init__(sid, remote_addr)
        self.sio = sio

    async def send_text(self, text: str):
        if not self.is_open:
            raise DeliveryFailure(self.connection_id)
        await self.sio.send(text, to=self.connection_id)


class WebSocketConnection(ObserverConnection):
    """Observer attached through the raw /ws endpoint"""

    transport = "websocket"

    def __init__(self, websocket: WebSocket, connection_id: str = None):
        client = getattr(websocket, "client", None)
        remote_addr = client.host if client else "unknown"
        super().__init__(connection_id or f"ws-{uuid.uuid4().hex[:12]}", remote_addr)
        self.websocket = websocket

    @property
    def is_open(self) -> bool:
        return (
            not self._closed and
            self.websocket.client_state == WebSocketState.CONNECTED and
            self.websocket.application_state == WebSocketState.CONNECTED
        )

    async def send_text(self, text: str):
        if not self.is_open:
            raise DeliveryFailure(self.connection_id)
        try:
            await self.websocket.send_text(text)
        except (RuntimeError, OSError) as e:
            self.mark_closed()
            raise DeliveryFailure(self.connection_id, str(e))
