import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Generator, List, Optional, Tuple

import fakeredis
import pytest
import pytest_asyncio
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.db.models import Base, User
from app.providers.birthday_candidate_provider import BirthdayCandidateProvider
from app.services.birthday.dispatcher import BirthdayDispatcher
from app.services.birthday.outcome_store import OutcomeStore
from app.services.birthday.recovery import DailyGate, RecoverySweep
from app.services.birthday.scheduler import BirthdayScheduler
from app.services.birthday.task_store import RedisDelayedTaskStore

# Test database setup
TEST_DATABASE_URL = "sqlite://"

# 08:00 in New York (EDT, UTC-4) on 10 June 2024; local 09:00 is 13:00 UTC
START_OF_BIRTHDAY = datetime(2024, 6, 10, 12, 0, tzinfo=timezone.utc)


class MutableClock:
    """Injectable clock that tests move forward by hand"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now

    def set(self, now: datetime) -> datetime:
        self.now = now
        return self.now


class FakeNotifier:
    """
    Stand-in for EmailNotifier.

    Outcomes queued with `script` are consumed one per call (None means
    success); once the script runs out `default_error` is raised, or the call
    succeeds when it is None.
    """

    def __init__(self):
        self.calls: List[Tuple[str, str]] = []
        self.sent: List[Tuple[str, str]] = []
        self._script: List[Optional[Exception]] = []
        self.default_error: Optional[Exception] = None

    def script(self, *outcomes: Optional[Exception]) -> None:
        self._script.extend(outcomes)

    async def send(self, recipient_address: str, message_text: str) -> None:
        self.calls.append((recipient_address, message_text))
        if self._script:
            outcome = self._script.pop(0)
        else:
            outcome = self.default_error
        if outcome is not None:
            raise outcome
        self.sent.append((recipient_address, message_text))

    async def aclose(self) -> None:
        pass


@pytest.fixture
def db_session() -> Generator[Session, None, None]:
    """Create an in-memory database session for each test."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    Base.metadata.create_all(bind=engine)
    session_maker = sessionmaker(bind=engine, class_=Session, expire_on_commit=False)

    session = session_maker()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest_asyncio.fixture
async def redis_client():
    """Fake async Redis with its own server so tests never share keys."""
    client = fakeredis.FakeAsyncRedis(
        server=fakeredis.FakeServer(), decode_responses=True
    )
    yield client
    await client.aclose()


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock(START_OF_BIRTHDAY)


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def make_user(db_session: Session) -> Callable[..., User]:
    """Factory for persisted users; defaults to a New York user born on 10 June."""

    def _make_user(
        first_name: str = "Ada",
        last_name: str = "Lovelace",
        email: Optional[str] = None,
        birth_date: date = date(1990, 6, 10),
        location: str = "America/New_York",
        scheduled_year: Optional[int] = None,
        notified_year: Optional[int] = None,
    ) -> User:
        user = User(
            id=str(uuid.uuid4()),
            first_name=first_name,
            last_name=last_name,
            email=email or f"{first_name.lower()}.{last_name.lower()}@mail.com",
            birth_date=birth_date,
            location=location,
            scheduled_year=scheduled_year,
            notified_year=notified_year,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _make_user


@pytest.fixture
def candidate_source(db_session: Session, clock: MutableClock) -> BirthdayCandidateProvider:
    return BirthdayCandidateProvider(db_session, clock=clock)


@pytest.fixture
def task_store(redis_client) -> RedisDelayedTaskStore:
    return RedisDelayedTaskStore(redis_client, key_prefix="test-birthday")


@pytest.fixture
def outcome_store(redis_client) -> OutcomeStore:
    return OutcomeStore(redis_client, key_prefix="test-birthday", sent_ttl_seconds=3600)


@pytest.fixture
def scheduler(candidate_source, task_store, clock) -> BirthdayScheduler:
    return BirthdayScheduler(candidate_source, task_store, clock=clock)


@pytest.fixture
def dispatcher(
    candidate_source, task_store, outcome_store, notifier, clock
) -> BirthdayDispatcher:
    return BirthdayDispatcher(
        candidate_source, task_store, outcome_store, notifier, clock=clock
    )


@pytest.fixture
def recovery(candidate_source, outcome_store, dispatcher, clock) -> RecoverySweep:
    return RecoverySweep(
        candidate_source, outcome_store, dispatcher, gate=DailyGate(), clock=clock
    )
