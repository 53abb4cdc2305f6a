from datetime import datetime, timedelta, timezone
from typing import List

import pytest
import pytest_asyncio

from app.db.models import User
from app.schemas.birthday_schemas import NotificationTask
from app.services.birthday.outcome_store import OutcomeStore
from app.services.birthday.recovery import DailyGate, RecoverySweep
from app.utils.datetime_utils import to_epoch_millis
from app.utils.errors import DeliveryNetworkError, TaskStoreError

UTC = timezone.utc
LOCAL_NINE_AM = datetime(2024, 6, 10, 13, 0, tzinfo=UTC)


class UnreadableOutcomeStore(OutcomeStore):
    async def failed_user_ids(self) -> List[str]:
        raise TaskStoreError("redis unavailable")


@pytest_asyncio.fixture
async def exhausted(make_user, scheduler, dispatcher, notifier, outcome_store, clock):
    """A user whose birthday message exhausted every dispatch attempt."""
    user = make_user()
    await scheduler.run_schedule_cycle()
    clock.set(LOCAL_NINE_AM)
    notifier.default_error = DeliveryNetworkError("connection refused")
    for _ in range(3):
        await dispatcher.run_dispatch_cycle()
        clock.advance(minutes=1)

    assert await outcome_store.failed_user_ids() == [user.id]
    notifier.default_error = None
    notifier.calls.clear()
    return user


class TestDailyGate:
    """Test the once-per-UTC-day gate."""

    def test_open_until_closed_for_the_day(self):
        gate = DailyGate()
        morning = datetime(2024, 6, 10, 1, 0, tzinfo=UTC)

        assert gate.last_executed_day is None
        assert gate.is_open(morning)

        gate.close(morning)

        assert not gate.is_open(morning + timedelta(hours=22))
        assert gate.is_open(morning + timedelta(days=1))

    def test_uses_utc_date(self):
        gate = DailyGate()
        gate.close(datetime(2024, 6, 10, 23, 30, tzinfo=UTC))

        # Already 11 June in UTC, though still 10 June in New York
        assert gate.is_open(datetime(2024, 6, 11, 0, 30, tzinfo=UTC))


class TestRecoverySweep:
    """Test resurrection of messages that exhausted their retries."""

    @pytest.mark.asyncio
    async def test_failed_message_is_recovered(
        self, exhausted, recovery, notifier, outcome_store, task_store, db_session
    ):
        report = await recovery.run_if_due()

        assert report.executed is True
        assert report.recovered == 1
        assert notifier.sent == [
            ("ada.lovelace@mail.com", "Hey, Ada Lovelace, it's your birthday!")
        ]
        assert await outcome_store.is_sent(exhausted.id, 2024) is True
        assert await outcome_store.failed_user_ids() == []
        assert await outcome_store.failed_tasks() == []
        assert await task_store.pending_count() == 0
        assert db_session.get(User, exhausted.id).notified_year == 2024

    @pytest.mark.asyncio
    async def test_still_failing_message_stays_for_tomorrow(
        self, exhausted, recovery, notifier, outcome_store, clock
    ):
        notifier.default_error = DeliveryNetworkError("connection refused")

        report = await recovery.run_if_due()

        assert report.still_failing == 1
        assert await outcome_store.failed_user_ids() == [exhausted.id]
        assert len(await outcome_store.failed_tasks()) == 1

        # Same UTC day: the gate keeps the sweep from running again
        clock.advance(hours=2)
        again = await recovery.run_if_due()
        assert again.executed is False
        assert len(notifier.calls) == 1

        # Next day the message gets another attempt
        notifier.default_error = None
        clock.advance(days=1)
        next_day = await recovery.run_if_due()
        assert next_day.executed is True
        assert next_day.recovered == 1

    @pytest.mark.asyncio
    async def test_already_sent_message_is_cleared_without_sending(
        self, exhausted, recovery, notifier, outcome_store
    ):
        await outcome_store.mark_sent(exhausted.id, 2024)

        report = await recovery.run_if_due()

        assert report.cleared == 1
        assert notifier.calls == []
        assert await outcome_store.failed_user_ids() == []

    @pytest.mark.asyncio
    async def test_deleted_user_is_cleared(
        self, exhausted, recovery, notifier, outcome_store, db_session
    ):
        db_session.delete(db_session.get(User, exhausted.id))
        db_session.commit()

        report = await recovery.run_if_due()

        assert report.cleared == 1
        assert notifier.calls == []
        assert await outcome_store.failed_tasks() == []

    @pytest.mark.asyncio
    async def test_marker_without_payload_is_dropped(
        self, recovery, outcome_store, redis_client
    ):
        await redis_client.sadd(outcome_store.failed_retry_key, "orphan")

        report = await recovery.run_if_due()

        assert report.cleared == 1
        assert await outcome_store.failed_user_ids() == []

    @pytest.mark.asyncio
    async def test_empty_sweep_still_closes_the_gate(self, recovery, clock):
        report = await recovery.run_if_due()

        assert report.executed is True
        assert report.swept_day == clock().date()
        assert recovery.gate.is_open(clock()) is False

    @pytest.mark.asyncio
    async def test_unreadable_failed_sets_leave_gate_open(
        self, candidate_source, dispatcher, redis_client, clock
    ):
        gate = DailyGate()
        sweep = RecoverySweep(
            candidate_source,
            UnreadableOutcomeStore(redis_client),
            dispatcher,
            gate=gate,
            clock=clock,
        )

        with pytest.raises(TaskStoreError):
            await sweep.run_if_due()

        assert gate.last_executed_day is None

    @pytest.mark.asyncio
    async def test_recovered_payload_is_not_requeued(
        self, make_user, recovery, outcome_store, task_store
    ):
        user = make_user()
        failed = NotificationTask(
            user_id=user.id,
            rendered_message="Hey, Ada Lovelace, it's your birthday!",
            due_at_epoch_millis=to_epoch_millis(LOCAL_NINE_AM),
            retry_attempts=3,
        )
        await outcome_store.record_failure(failed)

        report = await recovery.run_if_due()

        assert report.recovered == 1
        assert await task_store.rank_of(user.id) is None
