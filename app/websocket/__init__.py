"""Real-time scan progress over WebSockets"""
from app.websocket.manager import websocket_manager
from app.websocket.broadcast import (
    SCAN_EVENTS_CHANNEL,
    publish_event,
    publish_progress,
    publish_completed,
    publish_error,
)

__all__ = [
    "websocket_manager",
    "SCAN_EVENTS_CHANNEL",
    "publish_event",
    "publish_progress",
    "publish_completed",
    "publish_error",
]
