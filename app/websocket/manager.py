"""WebSocket connection manager keyed by scan id"""
import logging
from typing import Dict, Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionManager:
    """
    Tracks the sockets watching each scan.

    A scan can be watched by several clients (multiple tabs, teammates);
    every event for the scan goes to all of them.
    """

    def __init__(self):
        self.connections: Dict[str, Set[WebSocket]] = {}

    async def connect(self, scan_id: str, websocket: WebSocket) -> None:
        await websocket.accept()
        self.connections.setdefault(scan_id, set()).add(websocket)
        logger.info(f"WebSocket subscribed to scan {scan_id}. Total connections: {self.get_connection_count()}")

    def disconnect(self, scan_id: str, websocket: WebSocket) -> None:
        sockets = self.connections.get(scan_id)
        if sockets is None:
            return
        sockets.discard(websocket)
        if not sockets:
            del self.connections[scan_id]
        logger.info(f"WebSocket unsubscribed from scan {scan_id}. Total connections: {self.get_connection_count()}")

    async def broadcast(self, scan_id: str, message: dict) -> int:
        """Send `message` to every socket watching the scan; returns the delivery count"""
        sockets = self.connections.get(scan_id)
        if not sockets:
            logger.debug(f"No connections for scan {scan_id}, skipping broadcast")
            return 0

        dead: Set[WebSocket] = set()
        sent = 0
        for websocket in list(sockets):
            try:
                await websocket.send_json(message)
                sent += 1
            except Exception as e:
                logger.warning(f"Failed to send to WebSocket: {e}")
                dead.add(websocket)

        for websocket in dead:
            self.disconnect(scan_id, websocket)

        return sent

    def get_connection_count(self, scan_id: str = None) -> int:
        if scan_id:
            return len(self.connections.get(scan_id, set()))
        return sum(len(s) for s in self.connections.values())

    def get_active_scans(self) -> list:
        return list(self.connections.keys())


# Global singleton instance
websocket_manager = ConnectionManager()
