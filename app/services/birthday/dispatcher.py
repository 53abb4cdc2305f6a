from datetime import datetime, timedelta
from typing import Callable

from app.providers.birthday_candidate_provider import BirthdayCandidateSource
from app.schemas.birthday_schemas import (
    DispatchCycleReport,
    NotificationTask,
    UserRecord,
)
from app.services.birthday.email_notifier import EmailNotifier
from app.services.birthday.outcome_store import OutcomeStore
from app.services.birthday.task_store import DelayedTaskStore
from app.services.birthday.transitions import (
    MAX_RETRY_ATTEMPTS,
    DeliveryOutcome,
    Failed,
    Removed,
    Requeued,
    TaskTransition,
    advance_task,
)
from app.utils.datetime_utils import (
    delivery_window,
    local_now,
    to_epoch_millis,
    utc_now,
)
from app.utils.errors import EligibilitySourceError, NotificationDeliveryError
from app.utils.logging import get_logger

logger = get_logger()


class BirthdayDispatcher:
    """Sends due birthday notifications and routes each task to its next state"""

    def __init__(
        self,
        candidate_source: BirthdayCandidateSource,
        task_store: DelayedTaskStore,
        outcome_store: OutcomeStore,
        notifier: EmailNotifier,
        notify_hour: int = 9,
        notify_minute: int = 0,
        window: timedelta = timedelta(minutes=900),
        max_attempts: int = MAX_RETRY_ATTEMPTS,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.candidate_source = candidate_source
        self.task_store = task_store
        self.outcome_store = outcome_store
        self.notifier = notifier
        self.notify_hour = notify_hour
        self.notify_minute = notify_minute
        self.window = window
        self.max_attempts = max_attempts
        self.clock = clock

    async def run_dispatch_cycle(self) -> DispatchCycleReport:
        report = DispatchCycleReport()

        try:
            due_tasks = await self.task_store.range_due(to_epoch_millis(self.clock()))
        except Exception as e:
            logger.error(f"Dispatch cycle aborted, due tasks unavailable: {e}")
            report.errored += 1
            return report

        # range_due returns earliest-due first
        for task in due_tasks:
            try:
                result = await self._dispatch_task(task)
            except Exception as e:
                # The task stays in the store and is picked up on the next tick
                logger.error(f"Failed to dispatch task {task.task_id} for user {task.user_id}: {e}")
                report.errored += 1
                continue
            setattr(report, result, getattr(report, result) + 1)

        if due_tasks:
            logger.info(
                f"Dispatch cycle completed: {report.sent} sent, {report.requeued} requeued, "
                f"{report.failed} failed, {report.stale} stale, "
                f"{report.duplicate} duplicate, {report.errored} errored"
            )
        return report

    async def _dispatch_task(self, task: NotificationTask) -> str:
        now = self.clock()

        user = await self.candidate_source.find_user(task.user_id)
        if user is None:
            logger.warning(f"Discarding task {task.task_id}: user {task.user_id} no longer exists")
            await self._apply(advance_task(task, DeliveryOutcome.STALE, now))
            return "stale"

        if self.is_stale(task, user, now):
            logger.info(
                f"Discarding stale task {task.task_id} for user {user.id} "
                f"due {task.due_at.isoformat()}"
            )
            await self._apply(advance_task(task, DeliveryOutcome.STALE, now))
            return "stale"

        cycle_year = local_now(user.location, task.due_at).year

        # Re-read at point of use; another dispatcher may have handled this user
        if await self._already_handled(user, cycle_year):
            logger.info(f"Removing duplicate task {task.task_id} for user {user.id}")
            await self._apply(advance_task(task, DeliveryOutcome.DUPLICATE, now))
            return "duplicate"

        if await self.deliver(task, user, cycle_year):
            outcome = DeliveryOutcome.DELIVERED
        else:
            outcome = DeliveryOutcome.FAILED

        transition = advance_task(task, outcome, now, self.max_attempts)
        applied = await self._apply(transition)

        if isinstance(transition, Requeued):
            return "requeued" if applied else "duplicate"
        if isinstance(transition, Failed):
            return "failed"
        return "sent"

    async def _already_handled(self, user: UserRecord, cycle_year: int) -> bool:
        if await self.outcome_store.is_sent(user.id, cycle_year):
            return True
        if not await self.outcome_store.is_failed(user.id):
            return False
        # Failures of an earlier birthday belong to the recovery sweep
        return any(
            local_now(user.location, failed.due_at).year == cycle_year
            for failed in await self.outcome_store.failed_tasks_for(user.id)
        )

    def is_stale(self, task: NotificationTask, user: UserRecord, now: datetime) -> bool:
        """A task is stale unless it falls inside the user's current local delivery window"""
        start, end = delivery_window(
            user.location, self.notify_hour, self.notify_minute, self.window, now
        )
        return not (start <= task.due_at < end) or now >= end

    async def _apply(self, transition: TaskTransition) -> bool:
        """Write the transition; returns False when the stored task had already changed"""
        # Outcome sets are written before the task leaves the store, so a crash in
        # between is caught by the duplicate check on the next cycle
        if isinstance(transition, Removed):
            removed = await self.task_store.remove_exact(transition.task)
            if not removed:
                logger.debug(f"Task {transition.task.task_id} was already changed or removed")
            return removed

        if isinstance(transition, Requeued):
            requeued = await self.task_store.requeue(transition.previous, transition.task)
            if requeued:
                logger.info(
                    f"Requeued task {transition.task.task_id} for user {transition.task.user_id} "
                    f"(attempt {transition.task.retry_attempts} of {self.max_attempts})"
                )
            else:
                logger.warning(
                    f"Task {transition.task.task_id} changed before it could be requeued, "
                    f"leaving it to the current owner"
                )
            return requeued

        await self.outcome_store.record_failure(transition.task)
        await self.task_store.remove_exact(transition.previous)
        logger.error(
            f"Giving up on task {transition.task.task_id} for user {transition.task.user_id} "
            f"after {transition.task.retry_attempts} attempts"
        )
        return True

    async def deliver(
        self, task: NotificationTask, user: UserRecord, cycle_year: int
    ) -> bool:
        """
        Send one notification and record the delivery on success.

        Returns False when the email service call failed or timed out.
        """
        try:
            await self.notifier.send(user.email, task.rendered_message)
        except NotificationDeliveryError as e:
            logger.warning(
                f"Delivery attempt for task {task.task_id} to user {user.id} failed: {e.message}"
            )
            return False
        await self._record_delivery(task, user, cycle_year)
        return True

    async def _record_delivery(
        self, task: NotificationTask, user: UserRecord, cycle_year: int
    ) -> None:
        if not await self.outcome_store.mark_sent(user.id, cycle_year):
            logger.warning(f"User {user.id} was already recorded as sent for {cycle_year}")
        try:
            if not await self.candidate_source.mark_notified(user.id, cycle_year):
                logger.warning(f"Notified flag of user {user.id} was not updated")
        except EligibilitySourceError as e:
            # The sent set stays authoritative
            logger.warning(f"Could not mark user {user.id} notified: {e.message}")
        logger.info(f"Sent birthday message {task.task_id} to user {user.id}")
