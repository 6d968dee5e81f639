"""
Cross-process scan events.

Celery workers publish to a Redis channel; the web process subscribes
(see `redis_pubsub_listener` in app.main) and relays to WebSocket clients.
"""
import json
import logging
from typing import Any, Dict, Optional

import redis

from app.config import settings

logger = logging.getLogger(__name__)

# Redis channel for scan events
SCAN_EVENTS_CHANNEL = "label-checker:scan-events"

_client: Optional[redis.Redis] = None


def get_redis_client() -> redis.Redis:
    global _client
    if _client is None:
        _client = redis.from_url(settings.REDIS_URL)
    return _client


def publish_event(scan_id: int, event_type: str, data: Dict[str, Any]) -> bool:
    """
    Publish an event for a scan. Failures are logged, never raised.

    Returns:
        bool: True if published successfully
    """
    message = json.dumps({"scanId": scan_id, "type": event_type, **data}, default=str)
    try:
        get_redis_client().publish(SCAN_EVENTS_CHANNEL, message)
        logger.debug(f"Published {event_type} event for scan {scan_id}")
        return True
    except redis.RedisError as e:
        logger.error(f"Failed to publish event: {e}")
        return False


def publish_progress(scan_id: int, stage: str, progress: int, message: str) -> bool:
    return publish_event(scan_id, "progress", {"stage": stage, "progress": progress, "message": message})


def publish_completed(scan_id: int, score: int, passed: bool, summary: str) -> bool:
    return publish_event(
        scan_id,
        "completed",
        {
            "status": "COMPLETED",
            "complianceScore": score,
            "compliancePassed": passed,
            "summary": summary,
        },
    )


def publish_error(scan_id: int, message: str) -> bool:
    return publish_event(scan_id, "error", {"message": message})
