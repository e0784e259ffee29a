"""
backend/slotbook/services/events.py

Event emitter: pushes events to a Redis queue for downstream consumers
(notifications, external calendars).

Queue:
- events:p2p : instant delivery (booking/subscription notifications)

Delivery is best-effort: failures are logged, never raised.
"""

import json
import logging
import time

from redis import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

P2P_QUEUE = "events:p2p"


def emit_event(event_type: str, payload: dict, redis: Redis | None = None) -> bool:
    """
    Emit a p2p event.

    Returns True if the event was queued.
    """
    if redis is None:
        logger.debug(f"Event {event_type} not queued: Redis not configured")
        return False

    event = {
        "type": event_type,
        **payload,
        "ts": int(time.time()),
    }
    try:
        redis.rpush(P2P_QUEUE, json.dumps(event, default=str))
        logger.info(f"Event emitted: {event_type} → {P2P_QUEUE}")
        return True
    except RedisError as e:
        logger.error(f"Failed to emit event {event_type}: {e}")
        return False
