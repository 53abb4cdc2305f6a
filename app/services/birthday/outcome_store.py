from typing import List

from redis.asyncio import Redis
from redis.exceptions import RedisError

from app.schemas.birthday_schemas import NotificationTask
from app.utils.errors import TaskStoreError
from app.utils.logging import get_logger

logger = get_logger()


class OutcomeStore:
    """
    Terminal outcome sets for birthday notifications.

      {prefix}:sent:{cycle_year}  set of user ids delivered in that cycle
      {prefix}:failed             set of task payloads that exhausted retries
      {prefix}:failed_retry       set of user ids that exhausted retries
    """

    def __init__(
        self,
        redis: Redis,
        key_prefix: str = "birthday",
        sent_ttl_seconds: int = 400 * 24 * 3600,
    ):
        self.redis = redis
        self.key_prefix = key_prefix
        self.failed_key = f"{key_prefix}:failed"
        self.failed_retry_key = f"{key_prefix}:failed_retry"
        self.sent_ttl_seconds = sent_ttl_seconds

    def sent_key(self, cycle_year: int) -> str:
        return f"{self.key_prefix}:sent:{cycle_year}"

    async def is_sent(self, user_id: str, cycle_year: int) -> bool:
        try:
            return bool(await self.redis.sismember(self.sent_key(cycle_year), user_id))
        except RedisError as e:
            raise TaskStoreError(f"Failed to read sent messages: {e}") from e

    async def mark_sent(self, user_id: str, cycle_year: int) -> bool:
        """Record a delivery. Returns False if the user was already recorded."""
        key = self.sent_key(cycle_year)
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.sadd(key, user_id)
                pipe.expire(key, self.sent_ttl_seconds)
                added, _ = await pipe.execute()
            return bool(added)
        except RedisError as e:
            raise TaskStoreError(f"Failed to record sent message: {e}") from e

    async def is_failed(self, user_id: str) -> bool:
        try:
            return bool(await self.redis.sismember(self.failed_retry_key, user_id))
        except RedisError as e:
            raise TaskStoreError(f"Failed to read failed messages: {e}") from e

    async def record_failure(self, task: NotificationTask) -> None:
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.sadd(self.failed_key, task.to_payload())
                pipe.sadd(self.failed_retry_key, task.user_id)
                await pipe.execute()
        except RedisError as e:
            raise TaskStoreError(
                f"Failed to record failed task {task.task_id}: {e}"
            ) from e

    async def failed_user_ids(self) -> List[str]:
        try:
            return sorted(await self.redis.smembers(self.failed_retry_key))
        except RedisError as e:
            raise TaskStoreError(f"Failed to read failed retry messages: {e}") from e

    async def failed_tasks(self) -> List[NotificationTask]:
        try:
            payloads = await self.redis.smembers(self.failed_key)
        except RedisError as e:
            raise TaskStoreError(f"Failed to read failed messages: {e}") from e

        tasks = []
        for payload in payloads:
            try:
                tasks.append(NotificationTask.from_payload(payload))
            except ValueError:
                logger.error(f"Unreadable failed payload: {payload!r}")
        return sorted(tasks, key=lambda t: t.due_at_epoch_millis)

    async def failed_tasks_for(self, user_id: str) -> List[NotificationTask]:
        return [task for task in await self.failed_tasks() if task.user_id == user_id]

    async def clear_failure(self, task: NotificationTask) -> None:
        """Drop a failed payload, and the user's failed marker once no payload is left"""
        try:
            await self.redis.srem(self.failed_key, task.to_payload())
            remaining = await self.failed_tasks_for(task.user_id)
            if not remaining:
                await self.redis.srem(self.failed_retry_key, task.user_id)
        except RedisError as e:
            raise TaskStoreError(
                f"Failed to clear failed task {task.task_id}: {e}"
            ) from e

    async def forget_failed_user(self, user_id: str) -> None:
        try:
            await self.redis.srem(self.failed_retry_key, user_id)
        except RedisError as e:
            raise TaskStoreError(f"Failed to clear failed user {user_id}: {e}") from e
