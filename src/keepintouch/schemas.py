"""Request bodies for the JSON API.

Validation failures surface as 422 responses through FastAPI.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, PositiveInt, field_validator, model_validator

from keepintouch.services.schedule import MAX_FREQUENCY_DAYS, MAX_SNOOZE_DAYS, MAX_SNOOZE_HOURS

_EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class Credentials(BaseModel):
    email: str = Field(pattern=_EMAIL_PATTERN)
    password: str = Field(min_length=6)


class EmailRequest(BaseModel):
    email: str = Field(pattern=_EMAIL_PATTERN)


class ResetPasswordRequest(BaseModel):
    token: str = Field(min_length=1)
    password: str = Field(min_length=6)


class ContactIn(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    checkin_frequency: int = Field(gt=0, le=MAX_FREQUENCY_DAYS)
    how_we_met: Optional[str] = None
    key_facts: Optional[str] = None
    birthday: Optional[date] = None
    last_checkin: Optional[datetime] = None

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name is required")
        return v


class NoteIn(BaseModel):
    content: str = Field(min_length=1)

    @field_validator("content")
    @classmethod
    def _content_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Note content cannot be empty")
        return v


class TagIn(BaseModel):
    tag_name: str = Field(min_length=1)

    @field_validator("tag_name")
    @classmethod
    def _strip(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Tag name is required")
        return v


class SnoozeRequest(BaseModel):
    """A snooze of ``value`` days or hours, or until tomorrow morning."""

    value: PositiveInt = 1
    unit: Literal["days", "hours", "tomorrow"]

    @model_validator(mode="after")
    def _value_in_range(self) -> "SnoozeRequest":
        limit = MAX_SNOOZE_HOURS if self.unit == "hours" else MAX_SNOOZE_DAYS
        if self.unit != "tomorrow" and self.value > limit:
            raise ValueError(f"Snooze value must be at most {limit} {self.unit}")
        return self


class BatchRequest(BaseModel):
    contact_ids: list[PositiveInt] = Field(min_length=1)
    snooze: Optional[SnoozeRequest] = None


class FeedbackIn(BaseModel):
    content: str = Field(max_length=5000)

    @field_validator("content")
    @classmethod
    def _long_enough(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 10:
            raise ValueError("Feedback must be at least 10 characters.")
        return v


class DeviceToken(BaseModel):
    token: str = Field(min_length=1)
