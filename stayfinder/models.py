from sqlalchemy import Column, Integer, Date, TIMESTAMP, String, Text, Numeric, Boolean, JSON, Index, ForeignKey
from sqlalchemy import Enum as SQLEnum
from enum import Enum as PyEnum
import datetime

from .database import Base


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


class BookingStatus(str, PyEnum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class CancelApprovalStatus(str, PyEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


# Every status except CANCELLED holds its dates
BLOCKING_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.COMPLETED)


class Listing(Base):
    __tablename__ = "listings"

    id = Column(Integer, primary_key=True, index=True)

    # Issued by the identity service. No users table lives here.
    host_id = Column(Integer, index=True, nullable=False)

    title = Column(String(100), nullable=False)
    description = Column(Text, nullable=False, default="")
    location = Column(String(200), nullable=False, default="")
    nightly_price = Column(Numeric(10, 2), nullable=False)
    max_guests = Column(Integer, nullable=False)
    bedrooms = Column(Integer, nullable=False, default=1)
    bathrooms = Column(Numeric(3, 1), nullable=False, default=1)
    amenities = Column(JSON, nullable=False, default=list)

    created_at = Column(TIMESTAMP, default=utcnow)


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)

    listing_id = Column(Integer, ForeignKey("listings.id"), index=True, nullable=False)
    guest_id = Column(Integer, index=True, nullable=False)

    # [check_in, check_out)
    check_in = Column(Date, nullable=False)
    check_out = Column(Date, nullable=False)
    guests = Column(Integer, nullable=False)
    total_price = Column(Numeric(12, 2), nullable=False)

    status = Column(SQLEnum(BookingStatus), default=BookingStatus.PENDING, nullable=False)

    cancel_requested = Column(Boolean, default=False, nullable=False)
    cancel_reason = Column(Text, default="", nullable=False)
    # Only meaningful while cancel_requested is set
    cancel_approval_status = Column(
        SQLEnum(CancelApprovalStatus), default=CancelApprovalStatus.PENDING, nullable=False
    )
    cancel_approval_date = Column(TIMESTAMP, nullable=True)

    created_at = Column(TIMESTAMP, default=utcnow)

    # The availability scan filters on listing, status and the range bounds
    __table_args__ = (
        Index("ix_bookings_listing_status_range", "listing_id", "status", "check_in", "check_out"),
    )
