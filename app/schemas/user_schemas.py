from datetime import date, datetime
from typing import Optional

from pydantic import EmailStr, Field, field_validator

from app.schemas.camel_base_model import CamelCaseBaseModel as BaseModel
from app.utils.datetime_utils import is_valid_location


class CreateUserRequest(BaseModel):
    """Request schema for creating a new user"""

    first_name: str = Field(..., min_length=1, max_length=100, description="First name")
    last_name: str = Field(..., min_length=1, max_length=100, description="Last name")
    email: EmailStr = Field(..., description="Email address for birthday messages")
    birth_date: date = Field(..., description="Birth date (YYYY-MM-DD)")
    location: str = Field(
        ..., min_length=1, max_length=64, description="IANA timezone, e.g. Australia/Melbourne"
    )

    @field_validator("location")
    @classmethod
    def validate_location(cls, v: str) -> str:
        if not is_valid_location(v):
            raise ValueError(f"Unknown timezone: {v}")
        return v

    @field_validator("birth_date")
    @classmethod
    def validate_birth_date(cls, v: date) -> date:
        if v > date.today():
            raise ValueError("Birth date cannot be in the future")
        return v


class UserResponse(BaseModel):
    """Response schema for user data"""

    id: str = Field(..., description="User ID")
    first_name: str = Field(..., description="First name")
    last_name: str = Field(..., description="Last name")
    email: str = Field(..., description="Email address")
    birth_date: date = Field(..., description="Birth date")
    location: str = Field(..., description="IANA timezone")
    scheduled_year: Optional[int] = Field(
        None, description="Year of the last scheduled birthday message"
    )
    notified_year: Optional[int] = Field(
        None, description="Year of the last delivered birthday message"
    )
    created_at: Optional[datetime] = Field(None, description="Creation timestamp")
