import re
from datetime import datetime
from math import ceil
from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field, field_validator

EMAIL_PATTERN = re.compile(r"^\S+@\S+$", re.IGNORECASE)


def parse_timestamp(value: str) -> datetime:
    """Parses an ISO timestamp as sent by the API, including a trailing 'Z'."""
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class ApiModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class TimeSlot(ApiModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    start_time: str = Field(alias="startTime")  # ISO timestamp, identifies the slot
    end_time: str = Field(alias="endTime")  # ISO timestamp
    available: bool

    @property
    def start(self) -> datetime:
        return parse_timestamp(self.start_time)

    @property
    def end(self) -> datetime:
        return parse_timestamp(self.end_time)


class SelectedSlot(ApiModel):
    date: str  # ISO format YYYY-MM-DD
    time: str  # startTime of the chosen TimeSlot


class Package(ApiModel):
    id: int | str
    name: str
    description: str = ""
    price: float
    maximum_slots_count: int = Field(default=0, alias="maximumSlotsCount")


class LockGrant(ApiModel):
    token: str
    expires_at: int = Field(alias="expiresAt")  # epoch milliseconds
    session_duration: int = Field(alias="sessionDuration")  # seconds


class Suburb(ApiModel):
    id: int | str
    name: str
    postalcode: str = ""


class TestingCenter(ApiModel):
    id: int | str
    name: str
    code: str = ""
    postalcode: str = ""


class DateOption(ApiModel):
    date: str
    is_available: bool = Field(alias="isAvailable")
    reason: str | None = None


class User(ApiModel):
    user_id: int | str = Field(alias="userId")
    email: str
    role: str
    name: str = ""


class Holiday(ApiModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: int | str
    date: str
    reason: str = ""
    suburb_id: int | str | None = Field(default=None, alias="suburbId")


class Instructor(ApiModel):
    name: str
    contact: str = ""


class BookingConfirmation(ApiModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: int | str | None = None
    instructor: Instructor | None = None


class CustomerDetails(ApiModel):
    customer_name: str = Field(alias="customerName")
    customer_email: str = Field(alias="customerEmail")
    customer_phone: str = Field(alias="customerPhone")
    pickup_address: str = Field(alias="pickupAddress")
    notes: str | None = None
    suburb: int | str | None = None

    @field_validator("customer_name")
    @classmethod
    def _name_required(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Name is required")
        return value

    @field_validator("customer_phone")
    @classmethod
    def _phone_required(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Phone is required")
        return value

    @field_validator("customer_email")
    @classmethod
    def _email_valid(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Email is required")
        if not EMAIL_PATTERN.match(value):
            raise ValueError("Invalid email")
        return value

    @field_validator("pickup_address")
    @classmethod
    def _address_required(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Address is required")
        return value


class BookingPage(BaseModel):
    bookings: List[Dict[str, Any]]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        if self.limit <= 0:
            return 0
        return ceil(self.total / self.limit)
