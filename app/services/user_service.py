from typing import List, Optional, Tuple

from fastapi import Depends
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.db.models import User
from app.db.session import get_sync_session
from app.schemas.user_schemas import CreateUserRequest, UserResponse
from app.utils.logging import get_logger

logger = get_logger()


class UserService:
    """Service provider for user records"""

    def __init__(self, db_session: Session):
        self.db = db_session

    async def get_user_by_id(self, user_id: str) -> Optional[User]:
        """Get user by ID or return None if not found"""
        return self.db.get(User, user_id)

    async def create_user(self, user_data: CreateUserRequest) -> UserResponse:
        new_user = User(
            first_name=user_data.first_name,
            last_name=user_data.last_name,
            email=str(user_data.email),
            birth_date=user_data.birth_date,
            location=user_data.location,
        )

        try:
            self.db.add(new_user)
            self.db.commit()
            self.db.refresh(new_user)
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Created user {new_user.id} in {new_user.location}")
        return self._create_user_response(new_user)

    async def list_users(
        self, page: int = 1, per_page: int = 50
    ) -> Tuple[List[UserResponse], int]:
        """Get one page of users ordered by name, plus the total count"""
        total = self.db.scalar(select(func.count(User.id))) or 0
        users = self.db.scalars(
            select(User)
            .order_by(User.last_name, User.first_name, User.id)
            .offset((page - 1) * per_page)
            .limit(per_page)
        ).all()
        return [self._create_user_response(user) for user in users], total

    async def get_user(self, user_id: str) -> UserResponse:
        user = await self.get_user_by_id(user_id)
        if not user:
            raise ValueError("USER_NOT_FOUND")
        return self._create_user_response(user)

    async def delete_user(self, user_id: str) -> None:
        """Delete a user; any queued message is discarded by the dispatcher"""
        user = await self.get_user_by_id(user_id)
        if not user:
            raise ValueError("USER_NOT_FOUND")

        try:
            self.db.delete(user)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Deleted user {user_id}")

    @staticmethod
    def _create_user_response(user: User) -> UserResponse:
        return UserResponse(
            id=user.id,
            first_name=user.first_name,
            last_name=user.last_name,
            email=user.email,
            birth_date=user.birth_date,
            location=user.location,
            scheduled_year=user.scheduled_year,
            notified_year=user.notified_year,
            created_at=user.created_at,
        )


def get_user_service(db: Session = Depends(get_sync_session)) -> UserService:
    """Dependency to provide UserService instance"""
    return UserService(db)
