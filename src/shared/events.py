"""Tracking events: the contract between state changes and live viewers.

Aggregates record these while they change (``raise_``); services hand them
to the notification broker once the unit of work has committed. Every
viewer receives every event verbatim and filters on ``orderId``/``driverId``
itself.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import Field

from shared.database import utcnow
from shared.schema import CamelModel


class EventType(Enum):
    CONNECTED = "connected"
    PING = "ping"
    ORDER_CREATED = "order_created"
    ORDER_UPDATE = "order_update"
    PAYMENT_COMPLETED = "payment_completed"
    DRIVER_ASSIGNED = "driver_assigned"
    DRIVER_LOCATION = "driver_location"


class TrackingEvent(CamelModel):
    type: str
    order_id: str | None = None
    driver_id: str | None = None
    payload: dict[str, Any] = Field(default_factory=dict)
    at: datetime = Field(default_factory=utcnow)

    def to_message(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


class RaisesEvents:
    """Mixin for aggregates that record tracking events as they change."""

    @property
    def _events(self) -> list[TrackingEvent]:
        events = self.__dict__.get("_pending_events")
        if events is None:
            events = []
            self.__dict__["_pending_events"] = events
        return events

    def raise_(self, event: TrackingEvent) -> None:
        self._events.append(event)

    def collect_events(self) -> list[TrackingEvent]:
        events = list(self._events)
        self._events.clear()
        return events
