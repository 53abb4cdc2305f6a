from datetime import datetime
from typing import Callable

from app.providers.birthday_candidate_provider import BirthdayCandidateSource
from app.schemas.birthday_schemas import (
    NotificationTask,
    ScheduleCycleReport,
    UserRecord,
    render_birthday_message,
)
from app.services.birthday.task_store import DelayedTaskStore
from app.utils.datetime_utils import (
    next_occurrence_of_local_time,
    to_epoch_millis,
    utc_now,
)
from app.utils.errors import EligibilitySourceError
from app.utils.logging import get_logger

logger = get_logger()


class BirthdayScheduler:
    """Turns today's birthday candidates into pending notification tasks"""

    def __init__(
        self,
        candidate_source: BirthdayCandidateSource,
        task_store: DelayedTaskStore,
        notify_hour: int = 9,
        notify_minute: int = 0,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.candidate_source = candidate_source
        self.task_store = task_store
        self.notify_hour = notify_hour
        self.notify_minute = notify_minute
        self.clock = clock

    async def run_schedule_cycle(self) -> ScheduleCycleReport:
        report = ScheduleCycleReport()

        try:
            candidates = await self.candidate_source.find_todays_birthday_candidates()
        except EligibilitySourceError as e:
            logger.error(f"Schedule cycle aborted, candidates unavailable: {e.message}")
            report.failed += 1
            return report

        for user in candidates:
            try:
                scheduled = await self._schedule_user(user)
            except Exception as e:
                # One user's failure never blocks the rest of the batch
                logger.error(f"Failed to schedule birthday message for user {user.id}: {e}")
                report.failed += 1
                continue

            if scheduled:
                report.scheduled += 1
            else:
                report.skipped += 1

        logger.info(
            f"Schedule cycle completed: {report.scheduled} scheduled, "
            f"{report.skipped} skipped, {report.failed} failed"
        )
        return report

    async def _schedule_user(self, user: UserRecord) -> bool:
        now = self.clock()
        due_at = next_occurrence_of_local_time(
            user.location, self.notify_hour, self.notify_minute, now
        )

        if due_at < now:
            logger.info(
                f"Skipping user {user.id}: local {self.notify_hour:02d}:{self.notify_minute:02d} "
                f"already passed in {user.location}"
            )
            return False

        if user.scheduled_today:
            logger.debug(f"Birthday message already scheduled for user {user.id}")
            return False

        if await self.task_store.rank_of(user.id) is not None:
            logger.debug(f"Birthday message already queued for user {user.id}")
            return False

        # The flag write decides which of several racing schedulers may enqueue
        if not await self.candidate_source.mark_scheduled(user.id, user.cycle_year):
            logger.info(f"User {user.id} was scheduled concurrently, not enqueuing")
            return False

        task = NotificationTask(
            user_id=user.id,
            rendered_message=render_birthday_message(user.first_name, user.last_name),
            due_at_epoch_millis=to_epoch_millis(due_at),
        )

        try:
            inserted = await self.task_store.insert(task)
        except Exception:
            await self._release_flag(user)
            raise

        if not inserted:
            logger.info(f"A task for user {user.id} was queued concurrently")
            return False

        logger.info(
            f"Scheduled birthday message {task.task_id} for user {user.id} "
            f"at {due_at.isoformat()}"
        )
        return True

    async def _release_flag(self, user: UserRecord) -> None:
        """Undo the scheduled flag so the user is picked up again next cycle"""
        try:
            await self.candidate_source.clear_scheduled(user.id, user.cycle_year)
        except EligibilitySourceError as e:
            logger.error(
                f"Could not clear scheduled flag of user {user.id}, "
                f"birthday message will not be retried: {e.message}"
            )
