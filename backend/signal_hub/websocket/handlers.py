"""
Observer Channel Handlers

Attaches both transports to the coordination hub:
- Socket.IO: connect / disconnect / message events on the AsyncServer
- Raw WebSocket: the FastAPI /ws endpoint loop

Handlers only translate transport events into hub calls; every frame is
queued on the hub and parsed by its dispatcher.
"""

from typing import Any, Dict, Optional

from starlette.websockets import WebSocket, WebSocketDisconnect

from .connections import SocketIOConnection, WebSocketConnection


class WebSocketHandlers:
    """
    Transport event handlers

    Usage:
        handlers = WebSocketHandlers(sio, hub)

        @app.websocket("/ws")
        async def ws_endpoint(websocket: WebSocket):
            await handlers.serve_websocket(websocket)
    """

    def __init__(self, sio, hub):
        """
        Initialize handlers

        Args:
            sio: Socket.IO AsyncServer instance
            hub: CoordinationHub receiving connections and frames
        """
        self.sio = sio
        self.hub = hub

        if sio is not None:
            self._register_handlers()

    def _register_handlers(self):
        """Register Socket.IO event handlers"""
        self.sio.on("connect", self.handle_connect)
        self.sio.on("disconnect", self.handle_disconnect)
        self.sio.on("message", self.handle_message)

    # ============================================
    # Socket.IO Handlers
    # ============================================

    async def handle_connect(self, sid: str, environ: Dict, auth: Optional[Dict] = None):
        """
        Handle Socket.IO connection

        Args:
            sid: Session ID
            environ: Connection environment
            auth: Optional auth payload (unused)
        """
        remote_addr = environ.get("REMOTE_ADDR", "unknown")
        self.hub.connect(SocketIOConnection(self.sio, sid, remote_addr))

    async def handle_disconnect(self, sid: str, reason: Any = None):
        """
        Handle Socket.IO disconnection

        Args:
            sid: Session ID
            reason: Disconnect reason (newer python-socketio versions)
        """
        self.hub.disconnect(sid)

    async def handle_message(self, sid: str, data: Any):
        """Queue one frame sent with socket.send(...)"""
        self.hub.submit(sid, data)

    # ============================================
    # Raw WebSocket
    # ============================================

    async def serve_websocket(self, websocket: WebSocket):
        """
        Run one raw WebSocket observer until it disconnects

        Text and binary frames are both accepted; parsing happens in the hub.
        """
        await websocket.accept()

        connection = WebSocketConnection(websocket)
        connection_id = connection.connection_id
        self.hub.connect(connection)

        try:
            while True:
                frame = await websocket.receive()
                if frame["type"] == "websocket.disconnect":
                    break
                data = frame.get("text")
                if data is None:
                    data = frame.get("bytes")
                if data is not None:
                    self.hub.submit(connection_id, data)
        except WebSocketDisconnect:
            pass
        finally:
            self.hub.disconnect(connection_id)


# Global handlers instance
handlers: Optional[WebSocketHandlers] = None


def get_handlers() -> Optional[WebSocketHandlers]:
    """Get the global WebSocket handlers instance"""
    return handlers


def set_handlers(h: WebSocketHandlers):
    """Set the global WebSocket handlers instance"""
    global handlers
    handlers = h
