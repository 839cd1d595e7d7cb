from pydantic import BaseModel, BeforeValidator, ConfigDict, Field
from decimal import Decimal
from typing import Annotated, List, Literal, Optional
import datetime

from .date_range import normalize_date
from .errors import InvalidRangeError
from .models import BookingStatus, CancelApprovalStatus


def _to_calendar_date(value):
    if isinstance(value, (str, datetime.date)):
        try:
            return normalize_date(value)
        except InvalidRangeError as e:
            raise ValueError(e.message)
    return value


# Accepts dates and full timestamps; the time of day is dropped
CalendarDate = Annotated[datetime.date, BeforeValidator(_to_calendar_date)]


class BookingBase(BaseModel):
    listing_id: int
    check_in: CalendarDate
    check_out: CalendarDate
    guests: int = Field(ge=1)


class BookingCreate(BookingBase):
    # guest_id comes from the JWT token
    pass


class BookingRead(BookingBase):
    id: int
    guest_id: int
    total_price: Decimal
    status: BookingStatus
    cancel_requested: bool
    cancel_reason: str
    cancel_approval_status: CancelApprovalStatus
    cancel_approval_date: Optional[datetime.datetime] = None
    created_at: datetime.datetime

    model_config = ConfigDict(from_attributes=True)


class StatusUpdate(BaseModel):
    status: BookingStatus


class CancelRequest(BaseModel):
    reason: str = Field(default="", max_length=1000)


class CancelResolution(BaseModel):
    action: Literal["approved", "rejected"]


class ListingBase(BaseModel):
    title: str = Field(min_length=3, max_length=100)
    description: str = Field(default="", max_length=1000)
    location: str = Field(default="", max_length=200)
    nightly_price: Decimal = Field(ge=0)
    max_guests: int = Field(ge=1)
    bedrooms: int = Field(default=1, ge=1)
    bathrooms: Decimal = Field(default=Decimal("1"), ge=Decimal("0.5"))
    amenities: List[str] = []


class ListingCreate(ListingBase):
    # host_id comes from the JWT token
    pass


class ListingUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=3, max_length=100)
    description: Optional[str] = Field(default=None, max_length=1000)
    location: Optional[str] = Field(default=None, max_length=200)
    nightly_price: Optional[Decimal] = Field(default=None, ge=0)
    max_guests: Optional[int] = Field(default=None, ge=1)
    bedrooms: Optional[int] = Field(default=None, ge=1)
    bathrooms: Optional[Decimal] = Field(default=None, ge=Decimal("0.5"))
    amenities: Optional[List[str]] = None


class ListingRead(ListingBase):
    id: int
    host_id: int
    created_at: datetime.datetime

    model_config = ConfigDict(from_attributes=True)


class AvailabilityRead(BaseModel):
    listing_id: int
    check_in: datetime.date
    check_out: datetime.date
    available: bool
