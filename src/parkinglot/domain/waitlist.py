# File: src/parkinglot/domain/waitlist.py
"""
Per-zone waitlists

Each zone has a FIFO queue of user ids, each user at most once. When a spot
in a zone may have become available, the head of that zone's queue is
dequeued and sent a hint. The hint does not hold a spot for the user.

Storage is pluggable: InMemoryWaitlistStore here, a Redis-backed store in
the infrastructure layer.
"""

from abc import ABC, abstractmethod
from collections import deque
from typing import Callable, Deque, Dict, Optional, Set, Tuple
import logging
import threading

from .models import InvalidZoneError
from .bounded_contexts import NotificationCollaborator, LoggingNotifier


class WaitlistStore(ABC):
    """FIFO queue of unique user ids per zone"""

    @abstractmethod
    def register_zone(self, zone_id: str) -> None:
        pass

    @abstractmethod
    def has_zone(self, zone_id: str) -> bool:
        pass

    @abstractmethod
    def enqueue(self, zone_id: str, user_id: str) -> bool:
        """Append a user; False when the user is already queued for the zone"""
        pass

    @abstractmethod
    def dequeue(self, zone_id: str) -> Optional[str]:
        pass

    @abstractmethod
    def members(self, zone_id: str) -> Tuple[str, ...]:
        pass


class InMemoryWaitlistStore(WaitlistStore):

    def __init__(self):
        self._queues: Dict[str, Deque[str]] = {}
        self._members: Dict[str, Set[str]] = {}

    def register_zone(self, zone_id: str) -> None:
        self._queues.setdefault(zone_id, deque())
        self._members.setdefault(zone_id, set())

    def has_zone(self, zone_id: str) -> bool:
        return zone_id in self._queues

    def enqueue(self, zone_id: str, user_id: str) -> bool:
        members = self._members[zone_id]
        if user_id in members:
            return False
        members.add(user_id)
        self._queues[zone_id].append(user_id)
        return True

    def dequeue(self, zone_id: str) -> Optional[str]:
        queue = self._queues.get(zone_id)
        if not queue:
            return None
        user_id = queue.popleft()
        self._members[zone_id].discard(user_id)
        return user_id

    def members(self, zone_id: str) -> Tuple[str, ...]:
        return tuple(self._queues.get(zone_id, ()))


class WaitlistManager:
    """
    Serializes waitlist operations and sends the user-facing messages.
    Zones must be registered before users can queue for them.
    """

    def __init__(
        self,
        store: Optional[WaitlistStore] = None,
        notifier: Optional[NotificationCollaborator] = None,
    ):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.store = store or InMemoryWaitlistStore()
        self.notifier = notifier or LoggingNotifier()
        self._lock = threading.Lock()

    def register_zone(self, zone_id: str) -> None:
        with self._lock:
            self.store.register_zone(zone_id)

    def has_zone(self, zone_id: str) -> bool:
        with self._lock:
            return self.store.has_zone(zone_id)

    def add_to_waitlist(self, user_id: str, zone_id: str, notify: bool = True) -> bool:
        """
        Queue a user for a zone. Returns False if the user is already waiting.
        With notify=False the caller sends the notice via send_added_notice.
        """
        with self._lock:
            if not self.store.has_zone(zone_id):
                raise InvalidZoneError(zone_id)
            added = self.store.enqueue(zone_id, user_id)

        if added:
            self.logger.info(f"User {user_id} added to waitlist for zone {zone_id}")
            if notify:
                self.send_added_notice(user_id, zone_id)
        else:
            self.logger.debug(f"User {user_id} already waiting for zone {zone_id}")
        return added

    def process_waitlist(self, zone_id: str, has_available_spot: Callable[[], bool]) -> Optional[str]:
        """
        Dequeue and hint the head of the zone's queue when the zone has any
        free spot. Returns the notified user id, or None.
        """
        with self._lock:
            if not self.store.has_zone(zone_id) or not has_available_spot():
                return None
            user_id = self.store.dequeue(zone_id)

        if user_id is not None:
            self.logger.info(f"Waitlist hint sent to {user_id} for zone {zone_id}")
            self._notify(user_id, f"A spot may be available in zone {zone_id}! Please check availability.")
        return user_id

    def send_added_notice(self, user_id: str, zone_id: str) -> None:
        self._notify(user_id, f"You've been added to the waitlist for zone {zone_id}")

    def waiting_users(self, zone_id: str) -> Tuple[str, ...]:
        with self._lock:
            return self.store.members(zone_id)

    def _notify(self, user_id: str, message: str) -> None:
        try:
            self.notifier.notify(user_id, message)
        except Exception as e:
            self.logger.error(f"Failed to notify {user_id}: {e}")
