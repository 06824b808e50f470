# File: src/parkwise/infrastructure/messaging.py
"""
Messaging Infrastructure for the Parking Core

1. Event Bus - intra-process publish/subscribe of domain events
2. Message Queue - outbound channel to other processes (in-memory or Redis Pub/Sub)
3. Event Handlers - forwarding to the queue and operator notifications

Handlers never break the publisher: their errors are logged and swallowed
by the bus so a failed notification cannot undo a committed entry or exit.
"""

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4
import json
import logging

import redis

from ..domain.models import DomainEvent, OverstayDetectedEvent


# ============================================================================
# MESSAGE ENVELOPES
# ============================================================================

@dataclass
class Message:
    """Base message class"""
    message_id: str = field(default_factory=lambda: str(uuid4()))
    message_type: str = "domain_event"
    timestamp: datetime = field(default_factory=datetime.now)
    source: Optional[str] = "parkwise"
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['timestamp'] = self.timestamp.isoformat()
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Message':
        known = {f.name for f in fields(cls)}
        data = {k: v for k, v in data.items() if k in known}
        data['timestamp'] = datetime.fromisoformat(data['timestamp'])
        return cls(**data)

    @classmethod
    def from_json(cls, json_str: str) -> 'Message':
        return cls.from_dict(json.loads(json_str))


@dataclass
class DomainEventMessage(Message):
    """Envelope carrying one domain event"""
    event_type: str = ""

    @classmethod
    def from_event(cls, event: DomainEvent) -> 'DomainEventMessage':
        return cls(
            message_id=event.event_id,
            timestamp=event.timestamp,
            event_type=event.event_type,
            data=event.payload(),
        )


# ============================================================================
# EVENT HANDLERS
# ============================================================================

class EventHandler(ABC):
    """Abstract base class for event handlers"""

    @abstractmethod
    def handle(self, event: DomainEvent) -> None:
        pass

    def can_handle(self, event: DomainEvent) -> bool:
        return True


class EventBus:
    """
    In-memory event bus for intra-process event publishing

    Subscriptions are keyed by ``event_type``; ``"*"`` receives everything.
    """

    WILDCARD = "*"

    def __init__(self):
        self._subscribers: Dict[str, List[EventHandler]] = {}
        self._logger = logging.getLogger(self.__class__.__name__)

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        handlers = self._subscribers.setdefault(event_type, [])
        if handler not in handlers:
            handlers.append(handler)
            self._logger.debug(f"Subscribed {handler.__class__.__name__} to {event_type}")

    def unsubscribe(self, event_type: str, handler: EventHandler) -> None:
        if handler in self._subscribers.get(event_type, []):
            self._subscribers[event_type].remove(handler)
            self._logger.debug(f"Unsubscribed {handler.__class__.__name__} from {event_type}")

    def publish(self, event: DomainEvent) -> int:
        """Deliver to every matching handler; returns how many handled it"""
        self._logger.info(f"Publishing event: {event.event_type} (ID: {event.event_id})")

        handlers = self._subscribers.get(event.event_type, []) + self._subscribers.get(self.WILDCARD, [])
        delivered = 0
        for handler in handlers:
            if not handler.can_handle(event):
                continue
            try:
                handler.handle(event)
                delivered += 1
            except Exception as e:
                self._logger.error(
                    f"Error handling event {event.event_type} with {handler.__class__.__name__}: {e}"
                )
        return delivered

    def clear_subscribers(self) -> None:
        self._subscribers.clear()


# ============================================================================
# MESSAGE QUEUES
# ============================================================================

class MessageQueue(ABC):
    """Abstract base class for message queues"""

    @abstractmethod
    def publish(self, topic: str, message: Message) -> bool:
        pass

    @abstractmethod
    def subscribe(self, topic: str, callback: Callable[[Message], None]) -> str:
        pass

    @abstractmethod
    def unsubscribe(self, subscription_id: str) -> bool:
        pass

    def close(self) -> None:
        pass


class InMemoryMessageQueue(MessageQueue):
    """In-memory message queue, keeps every published message per topic"""

    def __init__(self):
        self._callbacks: Dict[str, Dict[str, Callable[[Message], None]]] = {}
        self._messages: Dict[str, List[Message]] = {}
        self._logger = logging.getLogger(self.__class__.__name__)

    def publish(self, topic: str, message: Message) -> bool:
        self._messages.setdefault(topic, []).append(message)

        for callback in list(self._callbacks.get(topic, {}).values()):
            try:
                callback(message)
            except Exception as e:
                self._logger.error(f"Error in callback for topic {topic}: {e}")

        self._logger.debug(f"Published to {topic}: {message.message_id}")
        return True

    def subscribe(self, topic: str, callback: Callable[[Message], None]) -> str:
        subscription_id = str(uuid4())
        self._callbacks.setdefault(topic, {})[subscription_id] = callback
        self._logger.debug(f"Subscribed to {topic} with ID {subscription_id}")
        return subscription_id

    def unsubscribe(self, subscription_id: str) -> bool:
        for callbacks in self._callbacks.values():
            if subscription_id in callbacks:
                del callbacks[subscription_id]
                return True
        return False

    def get_messages(self, topic: str) -> List[Message]:
        return list(self._messages.get(topic, []))

    def topics(self) -> List[str]:
        return sorted(self._messages)

    def clear(self) -> None:
        self._callbacks.clear()
        self._messages.clear()


class RedisMessageQueue(MessageQueue):
    """Redis-based message queue using Pub/Sub"""

    def __init__(self, redis_url: str = "redis://localhost:6379/0", client: Optional[redis.Redis] = None):
        self.redis_url = redis_url
        self._logger = logging.getLogger(self.__class__.__name__)
        self.redis_client = client or redis.Redis.from_url(redis_url)
        self._pubsub = None
        self._thread = None
        self._subscriptions: Dict[str, str] = {}

    def publish(self, topic: str, message: Message) -> bool:
        """Returns True when at least one subscriber received the message"""
        try:
            receivers = self.redis_client.publish(topic, message.to_json())
            self._logger.debug(f"Published message to {topic}: {message.message_id}")
            return receivers > 0
        except redis.RedisError as e:
            self._logger.error(f"Error publishing to Redis: {e}")
            return False

    def subscribe(self, topic: str, callback: Callable[[Message], None]) -> str:
        """Listen on a channel from a background thread owned by redis-py"""
        if self._pubsub is None:
            self._pubsub = self.redis_client.pubsub(ignore_subscribe_messages=True)

        def _on_message(raw: Dict[str, Any]) -> None:
            try:
                callback(DomainEventMessage.from_json(raw['data']))
            except Exception as e:
                self._logger.error(f"Error handling message from {topic}: {e}")

        self._pubsub.subscribe(**{topic: _on_message})
        if self._thread is None:
            self._thread = self._pubsub.run_in_thread(sleep_time=0.1, daemon=True)
        subscription_id = str(uuid4())
        self._subscriptions[subscription_id] = topic
        return subscription_id

    def unsubscribe(self, subscription_id: str) -> bool:
        topic = self._subscriptions.pop(subscription_id, None)
        if topic is None or self._pubsub is None:
            return False
        if topic not in self._subscriptions.values():
            self._pubsub.unsubscribe(topic)
        return True

    def close(self) -> None:
        if self._pubsub is not None:
            if self._thread is not None:
                self._thread.stop()
            self._pubsub.close()
        self.redis_client.close()


# ============================================================================
# DOMAIN EVENT HANDLERS
# ============================================================================

class QueueForwardingHandler(EventHandler):
    """Bridges the in-process bus to a message queue, one channel per event type"""

    def __init__(self, queue: MessageQueue, channel_prefix: str = "parkwise"):
        self.queue = queue
        self.channel_prefix = channel_prefix
        self._logger = logging.getLogger(self.__class__.__name__)

    def channel_for(self, event: DomainEvent) -> str:
        return f"{self.channel_prefix}.{event.event_type}"

    def handle(self, event: DomainEvent) -> None:
        message = DomainEventMessage.from_event(event)
        self.queue.publish(self.channel_for(event), message)


class OverstayNotificationHandler(EventHandler):
    """Operator notification for overstay alerts; critical ones are logged as warnings"""

    def __init__(self):
        self._logger = logging.getLogger(self.__class__.__name__)
        self.notified: List[str] = []

    def can_handle(self, event: DomainEvent) -> bool:
        return isinstance(event, OverstayDetectedEvent)

    def handle(self, event: DomainEvent) -> None:
        data = event.payload()
        text = (
            f"Overstay {data.get('severity')}: {data.get('number_plate')} in slot "
            f"{data.get('slot_number')} for {data.get('duration')} "
            f"(expected {data.get('expected_duration')}h)"
        )
        if data.get('severity') == 'critical':
            self._logger.warning(text)
        else:
            self._logger.info(text)
        self.notified.append(data.get('session_id', ''))


# ============================================================================
# MESSAGE BROKER FACTORY
# ============================================================================

class MessageBrokerFactory:
    """Factory for creating message brokers"""

    @staticmethod
    def create_redis_broker(redis_url: str = "redis://localhost:6379/0") -> RedisMessageQueue:
        return RedisMessageQueue(redis_url)

    @staticmethod
    def create_in_memory_broker() -> InMemoryMessageQueue:
        return InMemoryMessageQueue()

    @classmethod
    def create(cls, broker_type: str = "memory", redis_url: str = "redis://localhost:6379/0") -> MessageQueue:
        if broker_type == "redis":
            return cls.create_redis_broker(redis_url)
        if broker_type == "memory":
            return cls.create_in_memory_broker()
        raise ValueError(f"Unknown broker type: {broker_type}")
