# File: src/parkinglot/infrastructure/repositories.py
"""
Repository implementations for the Parking Allocation Engine

The allocator keeps spot state in memory. What can outlive a process is the
per-zone waitlist, which is stored in Redis so that several front-ends can
share it:

- <prefix>:zones                 set of registered zone ids
- <prefix>:<zone_id>:queue       list, FIFO order of waiting user ids
- <prefix>:<zone_id>:members     set, membership check for uniqueness
"""

from typing import Optional, Tuple
import logging

import redis

from ..domain.waitlist import WaitlistStore


class RedisWaitlistStore(WaitlistStore):
    """Waitlist store backed by Redis lists and sets"""

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        prefix: str = "parkinglot:waitlist",
        client: Optional[redis.Redis] = None,
        **kwargs
    ):
        self.prefix = prefix
        self._logger = logging.getLogger(self.__class__.__name__)
        self.client = client if client is not None else redis.Redis.from_url(
            redis_url, decode_responses=True, **kwargs
        )

    def _zones_key(self) -> str:
        return f"{self.prefix}:zones"

    def _queue_key(self, zone_id: str) -> str:
        return f"{self.prefix}:{zone_id}:queue"

    def _members_key(self, zone_id: str) -> str:
        return f"{self.prefix}:{zone_id}:members"

    def register_zone(self, zone_id: str) -> None:
        try:
            self.client.sadd(self._zones_key(), zone_id)
        except redis.RedisError as e:
            self._logger.error(f"Error registering zone {zone_id}: {e}")
            raise

    def has_zone(self, zone_id: str) -> bool:
        try:
            return bool(self.client.sismember(self._zones_key(), zone_id))
        except redis.RedisError as e:
            self._logger.error(f"Error checking zone {zone_id}: {e}")
            raise

    def enqueue(self, zone_id: str, user_id: str) -> bool:
        """Add the user to both the queue and the member set in one MULTI/EXEC"""
        members_key = self._members_key(zone_id)
        try:
            with self.client.pipeline(transaction=True) as pipe:
                while True:
                    try:
                        pipe.watch(members_key)
                        if pipe.sismember(members_key, user_id):
                            return False
                        pipe.multi()
                        pipe.sadd(members_key, user_id)
                        pipe.rpush(self._queue_key(zone_id), user_id)
                        pipe.execute()
                        break
                    except redis.WatchError:
                        continue
            self._logger.debug(f"Queued {user_id} for zone {zone_id}")
            return True
        except redis.RedisError as e:
            self._logger.error(f"Error queueing {user_id} for zone {zone_id}: {e}")
            raise

    def dequeue(self, zone_id: str) -> Optional[str]:
        """Pop the head of the queue and drop it from the member set in one MULTI/EXEC"""
        queue_key = self._queue_key(zone_id)
        try:
            with self.client.pipeline(transaction=True) as pipe:
                while True:
                    try:
                        pipe.watch(queue_key)
                        head = pipe.lindex(queue_key, 0)
                        if head is None:
                            return None
                        user_id = _decode(head)
                        pipe.multi()
                        pipe.lpop(queue_key)
                        pipe.srem(self._members_key(zone_id), user_id)
                        pipe.execute()
                        return user_id
                    except redis.WatchError:
                        continue
        except redis.RedisError as e:
            self._logger.error(f"Error dequeueing from zone {zone_id}: {e}")
            raise

    def members(self, zone_id: str) -> Tuple[str, ...]:
        try:
            return tuple(_decode(user_id) for user_id in self.client.lrange(self._queue_key(zone_id), 0, -1))
        except redis.RedisError as e:
            self._logger.error(f"Error reading waitlist for zone {zone_id}: {e}")
            raise

    def clear_zone(self, zone_id: str) -> None:
        self.client.delete(self._queue_key(zone_id), self._members_key(zone_id))


def _decode(value) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else value
