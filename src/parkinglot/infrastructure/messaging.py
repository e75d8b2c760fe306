# File: src/parkinglot/infrastructure/messaging.py
"""
Messaging Infrastructure for the Parking Allocation Engine

This module implements the outbound side of the allocator's collaborators:
1. Message Queue - topic-based publish/subscribe (Redis Pub/Sub or in-memory)
2. Notification Service - user messages published as Notification messages
3. Event Log - structured domain events stored in MongoDB

Key Patterns:
- Publish/Subscribe
- Adapter: infrastructure classes satisfy the domain collaborator Protocols
- Factory for selecting a broker at configuration time

Supported Brokers:
- Redis Pub/Sub
- In-memory (for testing and single-process deployments)
"""

from abc import ABC, abstractmethod
from typing import Optional, Dict, List, Any, Callable, Mapping
from datetime import datetime, timezone
from dataclasses import dataclass, asdict, field
from enum import Enum
from uuid import UUID, uuid4
import json
import logging
import threading
import time

import redis
import pymongo
from pymongo.errors import PyMongoError

from ..domain.bounded_contexts import EventCategory


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# MESSAGE TYPES
# ============================================================================

class MessageType(str, Enum):
    DOMAIN_EVENT = "domain_event"
    NOTIFICATION = "notification"


@dataclass
class Message:
    """Base message class"""
    message_id: UUID = field(default_factory=uuid4)
    message_type: MessageType = MessageType.DOMAIN_EVENT
    timestamp: datetime = field(default_factory=_utcnow)
    source: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['message_id'] = str(self.message_id)
        data['message_type'] = self.message_type.value
        data['timestamp'] = self.timestamp.isoformat()
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Message':
        data = dict(data)
        data['timestamp'] = datetime.fromisoformat(data['timestamp'])
        data['message_id'] = UUID(data['message_id'])
        data['message_type'] = MessageType(data['message_type'])
        return cls(**data)

    @classmethod
    def from_json(cls, json_str: str) -> 'Message':
        return cls.from_dict(json.loads(json_str))


@dataclass
class Notification(Message):
    """Message addressed to one user"""
    recipient: Optional[str] = None
    title: str = ""
    body: str = ""
    priority: str = "normal"

    def __post_init__(self):
        self.message_type = MessageType.NOTIFICATION


# ============================================================================
# MESSAGE QUEUE INTERFACE
# ============================================================================

class MessageQueue(ABC):
    """Abstract message queue interface"""

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


# ============================================================================
# REDIS MESSAGE QUEUE
# ============================================================================

class RedisMessageQueue(MessageQueue):
    """Redis-based message queue using Pub/Sub"""

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        client: Optional[redis.Redis] = None,
        message_class: type = Notification,
        **kwargs
    ):
        self.redis_url = redis_url
        self._logger = logging.getLogger(self.__class__.__name__)

        self.redis_client = client if client is not None else redis.Redis.from_url(redis_url, **kwargs)
        self.pubsub = self.redis_client.pubsub()
        self.message_class = message_class

        self._subscriptions: Dict[str, str] = {}  # subscription_id -> topic
        self._callbacks: Dict[str, Callable[[Message], None]] = {}
        self._running = False
        self._thread: Optional[threading.Thread] = None

    def publish(self, topic: str, message: Message) -> bool:
        """Publish a message; True when at least one subscriber received it"""
        try:
            receivers = self.redis_client.publish(topic, message.to_json())
            self._logger.debug(f"Published message to {topic}: {message.message_id}")
            return receivers > 0
        except redis.RedisError as e:
            self._logger.error(f"Error publishing to Redis: {e}")
            return False

    def subscribe(self, topic: str, callback: Callable[[Message], None]) -> str:
        subscription_id = str(uuid4())
        self._subscriptions[subscription_id] = topic
        self._callbacks[subscription_id] = callback

        self.pubsub.subscribe(topic)
        if not self._running:
            self._start_listener()

        self._logger.debug(f"Subscribed to {topic} with ID {subscription_id}")
        return subscription_id

    def unsubscribe(self, subscription_id: str) -> bool:
        if subscription_id not in self._subscriptions:
            return False

        topic = self._subscriptions.pop(subscription_id)
        del self._callbacks[subscription_id]

        if topic not in self._subscriptions.values():
            self.pubsub.unsubscribe(topic)
            self._logger.debug(f"Unsubscribed from {topic}")
        return True

    def _start_listener(self) -> None:
        if self._running:
            return
        self._running = True
        self._thread = threading.Thread(target=self._listen, daemon=True)
        self._thread.start()
        self._logger.info("Started Redis message listener")

    def _listen(self) -> None:
        while self._running:
            try:
                message = self.pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                if message and message['type'] == 'message':
                    self._handle_message(message)
            except redis.RedisError as e:
                self._logger.error(f"Error in Redis listener: {e}")
                time.sleep(1)

    def _handle_message(self, redis_message: Dict[str, Any]) -> None:
        topic = _decode(redis_message['channel'])
        try:
            message = self.message_class.from_json(_decode(redis_message['data']))
        except (ValueError, KeyError, TypeError) as e:
            self._logger.error(f"Discarding malformed message on {topic}: {e}")
            return

        for subscription_id, callback_topic in list(self._subscriptions.items()):
            if callback_topic != topic:
                continue
            try:
                self._callbacks[subscription_id](message)
            except Exception as e:
                self._logger.error(f"Error in callback for subscription {subscription_id}: {e}")

    def close(self) -> None:
        self._running = False
        if self._thread:
            self._thread.join(timeout=5.0)
        self.pubsub.close()
        self.redis_client.close()
        self._logger.info("Redis message queue closed")


def _decode(value: Any) -> str:
    return value.decode('utf-8') if isinstance(value, bytes) else value


# ============================================================================
# IN-MEMORY MESSAGE QUEUE
# ============================================================================

class InMemoryMessageQueue(MessageQueue):
    """In-process message queue; keeps every published message per topic"""

    def __init__(self):
        self._subscribers: Dict[str, Dict[str, Callable[[Message], None]]] = {}
        self._messages: Dict[str, List[Message]] = {}
        self._subscription_topics: Dict[str, str] = {}
        self._lock = threading.Lock()
        self._logger = logging.getLogger(self.__class__.__name__)

    def publish(self, topic: str, message: Message) -> bool:
        with self._lock:
            self._messages.setdefault(topic, []).append(message)
            callbacks = list(self._subscribers.get(topic, {}).values())

        for callback in callbacks:
            try:
                callback(message)
            except Exception as e:
                self._logger.error(f"Error in callback for topic {topic}: {e}")

        self._logger.debug(f"Published to {topic}: {message.message_id}")
        return True

    def subscribe(self, topic: str, callback: Callable[[Message], None]) -> str:
        subscription_id = str(uuid4())
        with self._lock:
            self._subscribers.setdefault(topic, {})[subscription_id] = callback
            self._subscription_topics[subscription_id] = topic
        return subscription_id

    def unsubscribe(self, subscription_id: str) -> bool:
        with self._lock:
            topic = self._subscription_topics.pop(subscription_id, None)
            if topic is None:
                return False
            self._subscribers.get(topic, {}).pop(subscription_id, None)
            return True

    def get_messages(self, topic: str) -> List[Message]:
        with self._lock:
            return list(self._messages.get(topic, []))

    def clear(self) -> None:
        with self._lock:
            self._subscribers.clear()
            self._messages.clear()
            self._subscription_topics.clear()


# ============================================================================
# NOTIFICATION SERVICE
# ============================================================================

class QueueNotificationService:
    """Notification collaborator that publishes each message to a topic"""

    DEFAULT_TOPIC = "parking.notifications"

    def __init__(self, queue: MessageQueue, topic: str = DEFAULT_TOPIC, source: str = "parkinglot"):
        self.queue = queue
        self.topic = topic
        self.source = source
        self._logger = logging.getLogger(self.__class__.__name__)

    def notify(self, user_id: str, message: str) -> None:
        notification = Notification(
            source=self.source,
            recipient=user_id,
            title="Parking update",
            body=message,
        )
        self._logger.info(f"Notification to {user_id}: {message}")
        if not self.queue.publish(self.topic, notification):
            self._logger.debug(f"No subscriber received notification {notification.message_id}")


# ============================================================================
# EVENT LOG (MONGODB)
# ============================================================================

class MongoEventLog:
    """
    Log collaborator backed by MongoDB

    One document per event with its category, timestamp and fields.
    Enables audit of entries/exits, reservations, waitlist activity and
    violations across restarts.
    """

    def __init__(
        self,
        mongo_url: str = "mongodb://localhost:27017",
        database: str = "parkinglot",
        collection: str = "events",
        client: Optional[pymongo.MongoClient] = None,
        **kwargs
    ):
        self.mongo_url = mongo_url
        self._logger = logging.getLogger(self.__class__.__name__)

        self.client = client if client is not None else pymongo.MongoClient(mongo_url, **kwargs)
        self.events_collection = self.client[database][collection]

        self.events_collection.create_index([('category', pymongo.ASCENDING), ('timestamp', pymongo.ASCENDING)])
        self.events_collection.create_index([('fields.license_plate', pymongo.ASCENDING)])

    def record_event(self, category: EventCategory, fields: Mapping[str, Any]) -> bool:
        document = {
            '_id': str(uuid4()),
            'category': EventCategory(category).value,
            'timestamp': _utcnow(),
            'fields': dict(fields),
        }
        try:
            result = self.events_collection.insert_one(document)
            self._logger.debug(f"Saved {document['category']} event {document['_id']}")
            return result.acknowledged
        except PyMongoError as e:
            self._logger.error(f"Error saving event to store: {e}")
            return False

    def get_events(self, category: EventCategory, limit: int = 100) -> List[Dict[str, Any]]:
        try:
            cursor = (
                self.events_collection
                .find({'category': EventCategory(category).value})
                .sort('timestamp', pymongo.ASCENDING)
                .limit(limit)
            )
            return [document['fields'] for document in cursor]
        except PyMongoError as e:
            self._logger.error(f"Error reading events: {e}")
            return []

    def close(self) -> None:
        self.client.close()


# ============================================================================
# FACTORY
# ============================================================================

class MessageBrokerFactory:
    """Factory for creating message brokers and event logs"""

    @staticmethod
    def create_redis_broker(redis_url: str = "redis://localhost:6379/0", **kwargs) -> RedisMessageQueue:
        return RedisMessageQueue(redis_url, **kwargs)

    @staticmethod
    def create_in_memory_broker() -> InMemoryMessageQueue:
        return InMemoryMessageQueue()

    @staticmethod
    def create_broker(broker_type: str = "memory", **kwargs) -> MessageQueue:
        if broker_type == "redis":
            return MessageBrokerFactory.create_redis_broker(**kwargs)
        if broker_type == "memory":
            return MessageBrokerFactory.create_in_memory_broker()
        raise ValueError(f"Unsupported broker type: {broker_type}")

    @staticmethod
    def create_event_log(mongo_url: str = "mongodb://localhost:27017", **kwargs) -> MongoEventLog:
        return MongoEventLog(mongo_url, **kwargs)
