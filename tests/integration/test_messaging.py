#!/usr/bin/env python3
"""
Integration Tests: message queues and the queue-backed notification service
"""

import json
import unittest
from unittest.mock import MagicMock, Mock, patch

import redis

from parkinglot.infrastructure.messaging import (
    InMemoryMessageQueue, Message, MessageBrokerFactory, MessageType,
    Notification, QueueNotificationService, RedisMessageQueue,
)


class TestMessages(unittest.TestCase):

    def test_notification_json(self):
        notification = Notification(source="parkinglot", recipient="U1", title="Parking update", body="Hello")

        data = json.loads(notification.to_json())
        restored = Notification.from_json(notification.to_json())

        self.assertEqual(data["message_type"], "notification")
        self.assertEqual(restored.message_id, notification.message_id)
        self.assertEqual(restored.recipient, "U1")
        self.assertEqual(restored.body, "Hello")
        self.assertIs(restored.message_type, MessageType.NOTIFICATION)

    def test_message_defaults(self):
        message = Message()
        self.assertIs(message.message_type, MessageType.DOMAIN_EVENT)
        self.assertEqual(Message.from_dict(message.to_dict()).timestamp, message.timestamp)


class TestInMemoryMessageQueue(unittest.TestCase):

    def setUp(self):
        self.queue = InMemoryMessageQueue()

    def test_publish_and_subscribe(self):
        received = []
        subscription = self.queue.subscribe("topic", received.append)
        message = Message(source="test")

        self.assertTrue(self.queue.publish("topic", message))
        self.assertTrue(self.queue.unsubscribe(subscription))
        self.queue.publish("topic", Message())

        self.assertEqual(received, [message])
        self.assertEqual(len(self.queue.get_messages("topic")), 2)
        self.assertFalse(self.queue.unsubscribe(subscription))

    def test_failing_callback_does_not_stop_delivery(self):
        received = []
        self.queue.subscribe("topic", Mock(side_effect=RuntimeError("boom")))
        self.queue.subscribe("topic", received.append)

        with self.assertLogs("InMemoryMessageQueue", level="ERROR"):
            self.queue.publish("topic", Message())
        self.assertEqual(len(received), 1)

    def test_clear(self):
        self.queue.publish("topic", Message())
        self.queue.clear()
        self.assertEqual(self.queue.get_messages("topic"), [])


class TestQueueNotificationService(unittest.TestCase):

    def test_notify_publishes_notification(self):
        queue = InMemoryMessageQueue()
        service = QueueNotificationService(queue, topic="alerts")

        service.notify("U1", "You earned 2 loyalty points!")

        [notification] = queue.get_messages("alerts")
        self.assertIsInstance(notification, Notification)
        self.assertEqual(notification.recipient, "U1")
        self.assertEqual(notification.body, "You earned 2 loyalty points!")
        self.assertEqual(notification.source, "parkinglot")

    def test_unheard_notification_is_not_an_error(self):
        queue = Mock()
        queue.publish.return_value = False
        QueueNotificationService(queue).notify("U1", "hello")
        queue.publish.assert_called_once()


class TestRedisMessageQueue(unittest.TestCase):

    def setUp(self):
        self.client = MagicMock()
        self.queue = RedisMessageQueue(client=self.client)

    def test_publish(self):
        self.client.publish.return_value = 1
        message = Notification(recipient="U1", body="hi")

        self.assertTrue(self.queue.publish("alerts", message))
        topic, payload = self.client.publish.call_args.args
        self.assertEqual(topic, "alerts")
        self.assertEqual(json.loads(payload)["recipient"], "U1")

    def test_publish_without_subscribers(self):
        self.client.publish.return_value = 0
        self.assertFalse(self.queue.publish("alerts", Message()))

    def test_publish_error(self):
        self.client.publish.side_effect = redis.ConnectionError("down")
        with self.assertLogs("RedisMessageQueue", level="ERROR"):
            self.assertFalse(self.queue.publish("alerts", Message()))

    def test_subscribe_and_dispatch(self):
        received = []
        with patch.object(RedisMessageQueue, "_start_listener") as start:
            subscription = self.queue.subscribe("alerts", received.append)
        start.assert_called_once_with()
        self.queue.pubsub.subscribe.assert_called_once_with("alerts")

        notification = Notification(recipient="U2", body="A spot may be available")
        self.queue._handle_message({"channel": b"alerts", "data": notification.to_json().encode("utf-8")})
        self.queue._handle_message({"channel": b"other", "data": notification.to_json().encode("utf-8")})

        self.assertEqual(len(received), 1)
        self.assertEqual(received[0].recipient, "U2")

        self.assertTrue(self.queue.unsubscribe(subscription))
        self.queue.pubsub.unsubscribe.assert_called_once_with("alerts")

    def test_malformed_message_discarded(self):
        callback = Mock()
        with patch.object(RedisMessageQueue, "_start_listener"):
            self.queue.subscribe("alerts", callback)

        with self.assertLogs("RedisMessageQueue", level="ERROR"):
            self.queue._handle_message({"channel": "alerts", "data": "not json"})
        callback.assert_not_called()


class TestMessageBrokerFactory(unittest.TestCase):

    def test_create_broker(self):
        self.assertIsInstance(MessageBrokerFactory.create_broker("memory"), InMemoryMessageQueue)
        redis_broker = MessageBrokerFactory.create_broker("redis", client=MagicMock())
        self.assertIsInstance(redis_broker, RedisMessageQueue)
        with self.assertRaises(ValueError):
            MessageBrokerFactory.create_broker("kafka")


if __name__ == '__main__':
    unittest.main()
