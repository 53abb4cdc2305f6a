from typing import Optional
from datetime import datetime, date
import uuid

from sqlalchemy import (
    String,
    Integer,
    Index,
    func,
    DateTime,
    Date,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


# Base model with common audit fields
class AuditMixin:
    """Mixin for common audit fields"""

    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )


# Models
class User(Base, AuditMixin):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False)  # RFC 5321 max length
    birth_date: Mapped[date] = mapped_column(Date, nullable=False)
    location: Mapped[str] = mapped_column(String(64), nullable=False)  # IANA zone id

    # Local calendar year of the last birthday occurrence that was scheduled / notified.
    # Comparing against the current occurrence's year resets both flags once per cycle.
    scheduled_year: Mapped[Optional[int]] = mapped_column(Integer)
    notified_year: Mapped[Optional[int]] = mapped_column(Integer)

    __table_args__ = (Index("ix_users_birth_date", "birth_date"),)
