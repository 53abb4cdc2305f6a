from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Callable, List, Optional

from sqlalchemy import and_, extract, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.db.models import User
from app.schemas.birthday_schemas import UserRecord
from app.utils.datetime_utils import (
    candidate_month_days,
    is_birthday_on,
    local_now,
    utc_now,
)
from app.utils.errors import EligibilitySourceError, InvalidLocationError
from app.utils.logging import get_logger

logger = get_logger()


class BirthdayCandidateSource(ABC):
    """Read access to user records plus the scheduled / notified flag writes"""

    @abstractmethod
    async def find_todays_birthday_candidates(self) -> List[UserRecord]:
        """Users whose birthday is today in their own timezone and who were not notified yet"""

    @abstractmethod
    async def find_user(self, user_id: str) -> Optional[UserRecord]:
        pass

    @abstractmethod
    async def mark_scheduled(self, user_id: str, cycle_year: int) -> bool:
        """Set the scheduled flag; False when another caller already set it for this cycle"""

    @abstractmethod
    async def clear_scheduled(self, user_id: str, cycle_year: int) -> bool:
        pass

    @abstractmethod
    async def mark_notified(self, user_id: str, cycle_year: int) -> bool:
        pass


class BirthdayCandidateProvider(BirthdayCandidateSource):
    """BirthdayCandidateSource over the users table"""

    def __init__(self, db_session: Session, clock: Callable[[], datetime] = utc_now):
        self.db = db_session
        self.clock = clock

    async def find_todays_birthday_candidates(self) -> List[UserRecord]:
        now = self.clock()
        month_days = candidate_month_days(now)
        birthday_filter = or_(
            *[
                and_(
                    extract("month", User.birth_date) == month,
                    extract("day", User.birth_date) == day,
                )
                for month, day in sorted(month_days)
            ]
        )

        try:
            users = self.db.scalars(select(User).where(birthday_filter)).all()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise EligibilitySourceError(f"Failed to query birthday users: {e}") from e

        candidates = []
        for user in users:
            try:
                local_date = local_now(user.location, now).date()
            except InvalidLocationError:
                logger.warning(
                    f"Skipping user {user.id} with unknown location {user.location!r}"
                )
                continue

            if not is_birthday_on(user.birth_date, local_date):
                continue

            record = self._to_record(user, local_date)
            if record.notified_today:
                continue
            candidates.append(record)

        logger.debug(
            f"Found {len(candidates)} birthday candidates among {len(users)} users"
        )
        return candidates

    async def find_user(self, user_id: str) -> Optional[UserRecord]:
        try:
            user = self.db.get(User, user_id)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise EligibilitySourceError(f"Failed to load user {user_id}: {e}") from e

        if user is None:
            return None
        try:
            local_date = local_now(user.location, self.clock()).date()
        except InvalidLocationError:
            logger.warning(f"User {user.id} has unknown location {user.location!r}")
            return None
        return self._to_record(user, local_date)

    async def mark_scheduled(self, user_id: str, cycle_year: int) -> bool:
        # Conditional update: only one of several racing schedulers sees a row change
        stmt = (
            update(User)
            .where(
                User.id == user_id,
                or_(User.scheduled_year.is_(None), User.scheduled_year != cycle_year),
            )
            .values(scheduled_year=cycle_year)
        )
        return await self._execute_flag_update(stmt, f"mark user {user_id} scheduled")

    async def clear_scheduled(self, user_id: str, cycle_year: int) -> bool:
        stmt = (
            update(User)
            .where(User.id == user_id, User.scheduled_year == cycle_year)
            .values(scheduled_year=None)
        )
        return await self._execute_flag_update(
            stmt, f"clear scheduled flag of user {user_id}"
        )

    async def mark_notified(self, user_id: str, cycle_year: int) -> bool:
        stmt = update(User).where(User.id == user_id).values(notified_year=cycle_year)
        return await self._execute_flag_update(stmt, f"mark user {user_id} notified")

    async def _execute_flag_update(self, stmt, description: str) -> bool:
        try:
            result = self.db.execute(stmt)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise EligibilitySourceError(f"Failed to {description}: {e}") from e
        return result.rowcount == 1

    @staticmethod
    def _to_record(user: User, local_date: date) -> UserRecord:
        return UserRecord(
            id=user.id,
            first_name=user.first_name,
            last_name=user.last_name,
            email=user.email,
            birth_date=user.birth_date,
            location=user.location,
            cycle_year=local_date.year,
            scheduled_today=user.scheduled_year == local_date.year,
            notified_today=user.notified_year == local_date.year,
        )
