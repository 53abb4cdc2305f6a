from collections import defaultdict
from datetime import date, datetime
from typing import Callable, Dict, List, Optional

from app.providers.birthday_candidate_provider import BirthdayCandidateSource
from app.schemas.birthday_schemas import NotificationTask, RecoverySweepReport
from app.services.birthday.dispatcher import BirthdayDispatcher
from app.services.birthday.outcome_store import OutcomeStore
from app.utils.datetime_utils import local_now, to_utc, utc_now
from app.utils.logging import get_logger

logger = get_logger()


class DailyGate:
    """In-memory marker of the last UTC day a sweep completed; unset on process start"""

    def __init__(self):
        self.last_executed_day: Optional[date] = None

    def is_open(self, now: datetime) -> bool:
        return self.last_executed_day != to_utc(now).date()

    def close(self, now: datetime) -> None:
        self.last_executed_day = to_utc(now).date()


class RecoverySweep:
    """
    Daily slow path for tasks that exhausted their retries.

    Each failed payload gets one fresh send attempt per sweep; there is no
    attempt ceiling at this layer. Recovered payloads never go back to the
    live task store.
    """

    def __init__(
        self,
        candidate_source: BirthdayCandidateSource,
        outcome_store: OutcomeStore,
        dispatcher: BirthdayDispatcher,
        gate: Optional[DailyGate] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.candidate_source = candidate_source
        self.outcome_store = outcome_store
        self.dispatcher = dispatcher
        self.gate = gate or DailyGate()
        self.clock = clock

    async def run_if_due(self) -> RecoverySweepReport:
        """Run the sweep unless it already ran today (UTC)"""
        now = self.clock()
        if not self.gate.is_open(now):
            return RecoverySweepReport(
                executed=False, swept_day=self.gate.last_executed_day
            )

        report = await self.run_recovery_sweep()
        # Only reached when the failed sets could be read
        self.gate.close(now)
        report.swept_day = self.gate.last_executed_day
        return report

    async def run_recovery_sweep(self) -> RecoverySweepReport:
        report = RecoverySweepReport(executed=True)

        user_ids = await self.outcome_store.failed_user_ids()
        if not user_ids:
            logger.debug("Recovery sweep found no failed messages")
            return report

        tasks_by_user: Dict[str, List[NotificationTask]] = defaultdict(list)
        for task in await self.outcome_store.failed_tasks():
            tasks_by_user[task.user_id].append(task)

        for user_id in user_ids:
            tasks = tasks_by_user.get(user_id)
            if not tasks:
                logger.warning(f"No failed payload left for user {user_id}, dropping marker")
                try:
                    await self.outcome_store.forget_failed_user(user_id)
                    report.cleared += 1
                except Exception as e:
                    logger.error(f"Failed to drop failed marker of user {user_id}: {e}")
                    report.errored += 1
                continue

            for task in tasks:
                try:
                    result = await self._recover_task(task)
                except Exception as e:
                    logger.error(f"Recovery of task {task.task_id} for user {user_id} failed: {e}")
                    report.errored += 1
                    continue
                setattr(report, result, getattr(report, result) + 1)

        logger.info(
            f"Recovery sweep completed: {report.recovered} recovered, "
            f"{report.still_failing} still failing, {report.cleared} cleared, "
            f"{report.errored} errored"
        )
        return report

    async def _recover_task(self, task: NotificationTask) -> str:
        user = await self.candidate_source.find_user(task.user_id)
        if user is None:
            logger.warning(f"Dropping failed task {task.task_id}: user {task.user_id} no longer exists")
            await self.outcome_store.clear_failure(task)
            return "cleared"

        cycle_year = local_now(user.location, task.due_at).year

        if await self.outcome_store.is_sent(user.id, cycle_year):
            logger.info(f"Failed task {task.task_id} was already delivered, clearing")
            await self.outcome_store.clear_failure(task)
            return "cleared"

        if not await self.dispatcher.deliver(task, user, cycle_year):
            return "still_failing"

        await self.outcome_store.clear_failure(task)
        logger.info(f"Recovered birthday message {task.task_id} for user {user.id}")
        return "recovered"
