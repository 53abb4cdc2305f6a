from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import timedelta
from typing import AsyncIterator, Optional

from redis.asyncio import Redis
from sqlalchemy.orm import Session

from app.config.settings import settings
from app.providers.birthday_candidate_provider import BirthdayCandidateProvider
from app.services.birthday.dispatcher import BirthdayDispatcher
from app.services.birthday.email_notifier import EmailNotifier
from app.services.birthday.outcome_store import OutcomeStore
from app.services.birthday.recovery import DailyGate, RecoverySweep
from app.services.birthday.scheduler import BirthdayScheduler
from app.services.birthday.task_store import RedisDelayedTaskStore


@dataclass
class BirthdayComponents:
    scheduler: BirthdayScheduler
    dispatcher: BirthdayDispatcher
    recovery: RecoverySweep


@asynccontextmanager
async def birthday_components(
    db_session: Session,
    gate: Optional[DailyGate] = None,
    redis: Optional[Redis] = None,
) -> AsyncIterator[BirthdayComponents]:
    """Wire the scheduler, dispatcher and recovery sweep from settings"""
    owns_redis = redis is None
    if redis is None:
        redis = Redis.from_url(settings.REDIS_URL, decode_responses=True)

    candidate_source = BirthdayCandidateProvider(db_session)
    task_store = RedisDelayedTaskStore(redis, settings.BIRTHDAY_KEY_PREFIX)
    outcome_store = OutcomeStore(
        redis,
        settings.BIRTHDAY_KEY_PREFIX,
        sent_ttl_seconds=settings.SENT_MESSAGES_TTL_DAYS * 24 * 3600,
    )
    notifier = EmailNotifier(
        settings.EMAIL_SERVICE_URL, settings.EMAIL_SEND_TIMEOUT_SECONDS
    )

    dispatcher = BirthdayDispatcher(
        candidate_source,
        task_store,
        outcome_store,
        notifier,
        notify_hour=settings.BIRTHDAY_NOTIFY_HOUR,
        notify_minute=settings.BIRTHDAY_NOTIFY_MINUTE,
        window=timedelta(minutes=settings.BIRTHDAY_DELIVERY_WINDOW_MINUTES),
        max_attempts=settings.MAX_RETRY_ATTEMPTS,
    )
    components = BirthdayComponents(
        scheduler=BirthdayScheduler(
            candidate_source,
            task_store,
            notify_hour=settings.BIRTHDAY_NOTIFY_HOUR,
            notify_minute=settings.BIRTHDAY_NOTIFY_MINUTE,
        ),
        dispatcher=dispatcher,
        recovery=RecoverySweep(candidate_source, outcome_store, dispatcher, gate),
    )

    try:
        yield components
    finally:
        await notifier.aclose()
        if owns_redis:
            await redis.aclose()
