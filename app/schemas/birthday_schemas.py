from datetime import date, datetime
from typing import Optional
import uuid

from pydantic import ConfigDict, Field

from app.schemas.camel_base_model import CamelCaseBaseModel as BaseModel
from app.utils.datetime_utils import from_epoch_millis


class UserRecord(BaseModel):
    """A user as seen by the birthday core, flags resolved against the current cycle"""

    id: str = Field(..., description="User ID")
    first_name: str = Field(..., description="First name")
    last_name: str = Field(..., description="Last name")
    email: str = Field(..., description="Recipient email address")
    birth_date: date = Field(..., description="Birth date")
    location: str = Field(..., description="IANA timezone identifier")
    cycle_year: int = Field(
        ..., description="Local calendar year of the current birthday occurrence"
    )
    scheduled_today: bool = Field(
        default=False, description="A notification was scheduled for this cycle"
    )
    notified_today: bool = Field(
        default=False, description="A notification was delivered for this cycle"
    )


class NotificationTask(BaseModel):
    """
    A pending birthday notification held in the delayed task store.

    Serialized as camelCase JSON. The serialized form is compared byte for byte
    by the store's compare-and-remove operations, so payloads must always be
    produced by `to_payload`.
    """

    model_config = ConfigDict(frozen=True)

    task_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str
    rendered_message: str
    due_at_epoch_millis: int
    retry_attempts: int = Field(default=0, ge=0)

    @property
    def due_at(self) -> datetime:
        return from_epoch_millis(self.due_at_epoch_millis)

    def to_payload(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_payload(cls, payload: str) -> "NotificationTask":
        return cls.model_validate_json(payload)


class ScheduleCycleReport(BaseModel):
    scheduled: int = 0
    skipped: int = 0
    failed: int = 0


class DispatchCycleReport(BaseModel):
    sent: int = 0
    requeued: int = 0
    failed: int = 0
    stale: int = 0
    duplicate: int = 0
    errored: int = 0


class RecoverySweepReport(BaseModel):
    executed: bool = False
    recovered: int = 0
    still_failing: int = 0
    cleared: int = 0
    errored: int = 0
    swept_day: Optional[date] = None


def render_birthday_message(first_name: str, last_name: str) -> str:
    return f"Hey, {first_name} {last_name}, it's your birthday!"
