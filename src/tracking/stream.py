"""Server-sent-event stream for one tracking viewer.

Wire format: one ``data: <json>\\n\\n`` frame per event. The first frame
is always the ``connected`` acknowledgement; a ``ping`` frame goes out
whenever the connection has been idle for the keep-alive interval.
"""

import json
from collections.abc import AsyncIterator
from uuid import uuid4

import structlog

from shared.database import utcnow
from shared.events import EventType
from tracking.broker import NotificationBroker, SubscriptionClosed

logger = structlog.get_logger(__name__)


def format_sse(data: dict | str) -> str:
    if not isinstance(data, str):
        data = json.dumps(data, separators=(",", ":"))
    return f"data: {data}\n\n"


def _timestamp_ms() -> int:
    return int(utcnow().timestamp() * 1000)


async def event_stream(broker: NotificationBroker, keepalive_seconds: float = 30.0) -> AsyncIterator[str]:
    """Yield SSE frames until the broker closes or the client goes away.

    The subscription is released on every exit path, including client
    disconnect (generator cancellation).
    """
    stream_id = uuid4().hex[:12]
    subscription = await broker.subscribe()
    logger.info("tracking_stream_opened", stream_id=stream_id, subscribers=broker.subscriber_count)

    try:
        yield format_sse(
            {
                "type": EventType.CONNECTED.value,
                "message": "Connected to order notifications",
                "timestamp": _timestamp_ms(),
            }
        )

        while True:
            try:
                message = await subscription.get(timeout=keepalive_seconds)
            except SubscriptionClosed:
                break

            if message is None:
                yield format_sse({"type": EventType.PING.value, "timestamp": _timestamp_ms()})
            else:
                yield format_sse(message)
    finally:
        await subscription.close()
        logger.info("tracking_stream_closed", stream_id=stream_id)
