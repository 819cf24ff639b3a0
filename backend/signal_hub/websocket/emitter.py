"""
Observer Registry and Broadcast Emitter

Holds the set of connected observers and performs best-effort fan-out:
- observers that are not open are skipped for that message
- a failed send removes the observer (it is treated as disconnected)
- a send that does not complete within the send timeout counts as failed
- no retry, no per-observer queue
"""

import asyncio
import json
import time
from typing import Any, Dict, List, Optional

from signal_hub.errors import DeliveryFailure

from .connections import ObserverConnection


# Seconds one observer may take to accept a frame
DEFAULT_SEND_TIMEOUT = 5.0


class ObserverRegistry:
    """
    Connected observer set owned by the coordination hub

    Usage:
        registry = ObserverRegistry()
        registry.add(connection)
        await registry.broadcast({"messageType": "coordinateUpdate", ...})
        registry.remove(connection.connection_id)
    """

    def __init__(self, send_timeout: float = DEFAULT_SEND_TIMEOUT):
        """
        Initialize registry

        Args:
            send_timeout: Seconds before a stalled send is treated as failed
        """
        self.send_timeout = send_timeout
        self._connections: Dict[str, ObserverConnection] = {}

        # Statistics
        self._emit_count = 0
        self._skipped_count = 0
        self._error_count = 0
        self._broadcast_count = 0
        self._last_emit_time = 0

    # ============================================
    # Membership
    # ============================================

    def add(self, connection: ObserverConnection):
        self._connections[connection.connection_id] = connection

    def remove(self, connection_id: str) -> Optional[ObserverConnection]:
        connection = self._connections.pop(connection_id, None)
        if connection:
            connection.mark_closed()
        return connection

    def get(self, connection_id: str) -> Optional[ObserverConnection]:
        return self._connections.get(connection_id)

    def __contains__(self, connection_id: str) -> bool:
        return connection_id in self._connections

    def __len__(self) -> int:
        return len(self._connections)

    def connection_ids(self) -> List[str]:
        return list(self._connections.keys())

    # ============================================
    # Emission
    # ============================================

    async def broadcast(self, message: Dict[str, Any], exclude: str = None) -> int:
        """
        Send a message to every open observer

        Args:
            message: JSON-serializable event
            exclude: Connection id that must not receive it (the sender)

        Returns:
            Number of observers the message was delivered to
        """
        text = json.dumps(message)

        targets = []
        for connection_id, connection in list(self._connections.items()):
            if connection_id == exclude:
                continue
            if not connection.is_open:
                self._skipped_count += 1
                continue
            targets.append(connection)

        self._broadcast_count += 1
        if not targets:
            return 0

        results = await asyncio.gather(
            *(self._deliver(connection, text) for connection in targets),
            return_exceptions=True
        )

        delivered = 0
        for connection, result in zip(targets, results):
            if isinstance(result, Exception):
                self._error_count += 1
                print(f"[WS] Delivery to {connection.connection_id} failed, dropping observer: {result}")
                self.remove(connection.connection_id)
            else:
                delivered += 1

        self._emit_count += delivered
        self._last_emit_time = time.time()
        return delivered

    async def _deliver(self, connection: ObserverConnection, text: str):
        try:
            await asyncio.wait_for(connection.send_text(text), timeout=self.send_timeout)
        except asyncio.TimeoutError:
            raise DeliveryFailure(
                connection.connection_id,
                f"send timed out after {self.send_timeout}s"
            )

    def describe_connections(self) -> List[Dict[str, Any]]:
        return [connection.describe() for connection in self._connections.values()]

    def get_stats(self) -> Dict[str, Any]:
        """Get emitter statistics"""
        return {
            "connectedObservers": len(self._connections),
            "totalBroadcasts": self._broadcast_count,
            "totalEmits": self._emit_count,
            "skippedCount": self._skipped_count,
            "errorCount": self._error_count,
            "sendTimeout": self.send_timeout,
            "lastEmitTime": self._last_emit_time,
        }
