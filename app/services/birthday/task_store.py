from abc import ABC, abstractmethod
from typing import List, Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError, WatchError

from app.schemas.birthday_schemas import NotificationTask
from app.utils.errors import TaskStoreError
from app.utils.logging import get_logger

logger = get_logger()


class DelayedTaskStore(ABC):
    """Durable store of pending notification tasks ordered by due time"""

    @abstractmethod
    async def insert(self, task: NotificationTask) -> bool:
        """Insert a task unless one is already pending for the same user"""

    @abstractmethod
    async def remove_exact(self, task: NotificationTask) -> bool:
        """Remove a task only if the stored payload is identical to it"""

    @abstractmethod
    async def requeue(
        self, current: NotificationTask, updated: NotificationTask
    ) -> bool:
        """Replace a task with its updated version only if it is still the stored one"""

    @abstractmethod
    async def range_due(self, now_ms: int) -> List[NotificationTask]:
        """All tasks due at or before now_ms, earliest first"""

    @abstractmethod
    async def rank_of(self, user_id: str) -> Optional[int]:
        """Position of the user's pending task in due order, or None"""


class RedisDelayedTaskStore(DelayedTaskStore):
    """
    Delayed task store backed by Redis.

    Layout:
      {prefix}:pending           sorted set, member = user id, score = due time (ms)
      {prefix}:pending:payloads  hash, user id -> task payload JSON

    Keying the sorted set by user id gives one live task per user and a direct
    rank lookup. Every mutation runs as a WATCH/MULTI transaction on the
    payload hash, so concurrent schedulers and dispatchers never interleave
    half-applied writes.
    """

    def __init__(self, redis: Redis, key_prefix: str = "birthday"):
        self.redis = redis
        self.pending_key = f"{key_prefix}:pending"
        self.payloads_key = f"{key_prefix}:pending:payloads"

    async def insert(self, task: NotificationTask) -> bool:
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                while True:
                    try:
                        await pipe.watch(self.payloads_key)
                        if await pipe.hexists(self.payloads_key, task.user_id):
                            await pipe.unwatch()
                            return False
                        pipe.multi()
                        pipe.zadd(
                            self.pending_key,
                            {task.user_id: task.due_at_epoch_millis},
                        )
                        pipe.hset(self.payloads_key, task.user_id, task.to_payload())
                        await pipe.execute()
                        return True
                    except WatchError:
                        continue
        except RedisError as e:
            raise TaskStoreError(f"Failed to insert task {task.task_id}: {e}") from e

    async def remove_exact(self, task: NotificationTask) -> bool:
        return await self._compare_and_swap(task, None)

    async def requeue(
        self, current: NotificationTask, updated: NotificationTask
    ) -> bool:
        if current.user_id != updated.user_id:
            raise ValueError("A task can only be requeued for the same user")
        return await self._compare_and_swap(current, updated)

    async def _compare_and_swap(
        self, expected: NotificationTask, replacement: Optional[NotificationTask]
    ) -> bool:
        expected_payload = expected.to_payload()
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                while True:
                    try:
                        await pipe.watch(self.payloads_key)
                        stored = await pipe.hget(self.payloads_key, expected.user_id)
                        if stored != expected_payload:
                            await pipe.unwatch()
                            return False
                        pipe.multi()
                        if replacement is None:
                            pipe.zrem(self.pending_key, expected.user_id)
                            pipe.hdel(self.payloads_key, expected.user_id)
                        else:
                            pipe.zadd(
                                self.pending_key,
                                {replacement.user_id: replacement.due_at_epoch_millis},
                            )
                            pipe.hset(
                                self.payloads_key,
                                replacement.user_id,
                                replacement.to_payload(),
                            )
                        await pipe.execute()
                        return True
                    except WatchError:
                        continue
        except RedisError as e:
            raise TaskStoreError(
                f"Failed to update task {expected.task_id}: {e}"
            ) from e

    async def range_due(self, now_ms: int) -> List[NotificationTask]:
        try:
            user_ids = await self.redis.zrangebyscore(self.pending_key, "-inf", now_ms)
            if not user_ids:
                return []
            payloads = await self.redis.hmget(self.payloads_key, user_ids)
        except RedisError as e:
            raise TaskStoreError(f"Failed to read due tasks: {e}") from e

        tasks = []
        for user_id, payload in zip(user_ids, payloads):
            if payload is None:
                # Removed between the two reads
                continue
            try:
                tasks.append(NotificationTask.from_payload(payload))
            except ValueError:
                logger.error(f"Unreadable task payload for user {user_id}: {payload!r}")
        return tasks

    async def rank_of(self, user_id: str) -> Optional[int]:
        try:
            return await self.redis.zrank(self.pending_key, user_id)
        except RedisError as e:
            raise TaskStoreError(f"Failed to look up task for user {user_id}: {e}") from e

    async def pending_count(self) -> int:
        try:
            return await self.redis.zcard(self.pending_key)
        except RedisError as e:
            raise TaskStoreError(f"Failed to count pending tasks: {e}") from e
