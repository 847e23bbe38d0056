# File: src/campus_parking/infrastructure/messaging.py
"""
Messaging Infrastructure for the booking core

This module implements:
1. Domain events for the booking lifecycle
2. Event Bus - in-process publish/subscribe
3. Redis forwarding - pushes lifecycle events to a pub/sub channel where the
   notification service picks them up

Delivery to handlers is best effort: a failing handler is logged and never
rolls back the booking operation that raised the event.
"""

from abc import ABC, abstractmethod
from typing import Optional, Dict, List, Any
from datetime import datetime
from dataclasses import dataclass, asdict, field
from enum import Enum
from uuid import uuid4
import logging
import json

import redis


# ============================================================================
# EVENT TYPES
# ============================================================================

class EventType(str, Enum):
    """Booking lifecycle event types"""
    BOOKING_HELD = "booking_held"
    BOOKING_CONFIRMED = "booking_confirmed"
    BOOKING_CANCELLED = "booking_cancelled"
    BOOKING_COMPLETED = "booking_completed"
    SPOT_RELEASED = "spot_released"


@dataclass
class DomainEvent:
    """A booking lifecycle event with its payload"""
    event_type: EventType
    aggregate_id: str
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)
    event_id: str = field(default_factory=lambda: str(uuid4()))
    aggregate_type: str = "Booking"

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary"""
        data = asdict(self)
        data['event_type'] = self.event_type.value
        data['timestamp'] = self.timestamp.isoformat()
        return data

    def to_json(self) -> str:
        """Convert event to JSON string"""
        return json.dumps(self.to_dict(), default=str)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DomainEvent':
        data = dict(data)
        data['event_type'] = EventType(data['event_type'])
        data['timestamp'] = datetime.fromisoformat(data['timestamp'])
        return cls(**data)

    @classmethod
    def from_json(cls, json_str: str) -> 'DomainEvent':
        return cls.from_dict(json.loads(json_str))


# ============================================================================
# EVENT HANDLERS
# ============================================================================

class EventHandler(ABC):
    """Receives lifecycle events from the EventBus"""

    @abstractmethod
    def handle(self, event: DomainEvent) -> None:
        """React to one event"""
        pass

    def can_handle(self, event: DomainEvent) -> bool:
        """Whether this handler wants the event; all events by default"""
        return True


class RecordingEventHandler(EventHandler):
    """Keeps every event it receives; used by tests and local tooling"""

    def __init__(self):
        self.events: List[DomainEvent] = []

    def handle(self, event: DomainEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: EventType) -> List[DomainEvent]:
        return [e for e in self.events if e.event_type == event_type]


class RedisEventForwarder(EventHandler):
    """Forwards events as JSON to a Redis pub/sub channel"""

    def __init__(
        self,
        channel: str,
        redis_url: str = "redis://localhost:6379",
        client: Optional[redis.Redis] = None
    ):
        self.channel = channel
        self.redis_client = client or redis.Redis.from_url(redis_url)
        self._logger = logging.getLogger(self.__class__.__name__)

    def handle(self, event: DomainEvent) -> None:
        receivers = self.redis_client.publish(self.channel, event.to_json())
        self._logger.debug(f"Forwarded {event.event_type.value} for {event.aggregate_id} to {receivers} receiver(s)")

    def close(self) -> None:
        self.redis_client.close()


# ============================================================================
# EVENT BUS (In-memory)
# ============================================================================

class EventBus:
    """
    Synchronous in-process delivery of booking lifecycle events

    Handlers run synchronously in subscription order.
    """

    def __init__(self):
        self._subscribers: Dict[EventType, List[EventHandler]] = {}
        self._logger = logging.getLogger(self.__class__.__name__)

    def subscribe(self, event_type: EventType, handler: EventHandler) -> None:
        """Register handler for one event type, once"""
        if event_type not in self._subscribers:
            self._subscribers[event_type] = []

        if handler not in self._subscribers[event_type]:
            self._subscribers[event_type].append(handler)
            self._logger.debug(f"Subscribed {handler.__class__.__name__} to {event_type.value}")

    def subscribe_all(self, handler: EventHandler) -> None:
        for event_type in EventType:
            self.subscribe(event_type, handler)

    def unsubscribe(self, event_type: EventType, handler: EventHandler) -> None:
        """Remove handler from one event type"""
        handlers = self._subscribers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)
            self._logger.debug(f"Unsubscribed {handler.__class__.__name__} from {event_type.value}")

    def publish(self, event: DomainEvent) -> None:
        """Deliver the event to each handler subscribed to its type"""
        self._logger.info(f"Publishing event: {event.event_type.value} (ID: {event.event_id})")

        for handler in list(self._subscribers.get(event.event_type, [])):
            if not handler.can_handle(event):
                continue
            try:
                handler.handle(event)
            except Exception as e:
                self._logger.error(
                    f"Error handling event {event.event_type.value} with {handler.__class__.__name__}: {e}",
                    exc_info=True
                )

    def clear_subscribers(self) -> None:
        """Drop every subscription"""
        self._subscribers.clear()
