import datetime
import functools
import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy import exists
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from . import models
from .errors import StorageError

logger = logging.getLogger("stayfinder.crud")


def retry_read_once(func):
    """
    Retries an idempotent read one time when the connection fails.

    Only for plain reads. Writes and reads inside the booking critical
    section must not go through here: the rollback would drop row locks.
    """
    @functools.wraps(func)
    def wrapper(db: Session, *args, **kwargs):
        try:
            return func(db, *args, **kwargs)
        except OperationalError as e:
            logger.warning(f"{func.__name__} failed, retrying once: {e}")
            db.rollback()
        try:
            return func(db, *args, **kwargs)
        except SQLAlchemyError as e:
            logger.error(f"{func.__name__} failed after retry: {e}")
            db.rollback()
            raise StorageError("The booking store is unavailable, please try again later") from e
    return wrapper


# --- Listings ---

@retry_read_once
def get_listing(db: Session, listing_id: int) -> Optional[models.Listing]:
    return db.query(models.Listing).filter(models.Listing.id == listing_id).first()


def lock_listing(db: Session, listing_id: int) -> Optional[models.Listing]:
    """
    Loads the listing with a row lock held until the transaction ends.
    Concurrent writers for the same listing queue up behind it.
    """
    return db.query(models.Listing).filter(
        models.Listing.id == listing_id
    ).with_for_update().populate_existing().first()


@retry_read_once
def get_listings_by_host(db: Session, host_id: int) -> list[models.Listing]:
    return db.query(models.Listing).filter(
        models.Listing.host_id == host_id
    ).order_by(models.Listing.created_at.desc(), models.Listing.id.desc()).all()


def overlapping_bookings_filter(start_date: datetime.date, end_date: datetime.date):
    """
    (Existing check_in < new check_out) AND (Existing check_out > new check_in),
    ignoring cancelled bookings.
    """
    return (
        models.Booking.status.in_(models.BLOCKING_STATUSES),
        models.Booking.check_in < end_date,
        models.Booking.check_out > start_date,
    )


@retry_read_once
def search_listings(
        db: Session,
        min_price: Optional[Decimal] = None,
        max_price: Optional[Decimal] = None,
        location: Optional[str] = None,
        listing_ids: Optional[list[int]] = None,
        skip: int = 0,
        limit: int = 100,
) -> list[models.Listing]:
    query = db.query(models.Listing)
    if min_price is not None:
        query = query.filter(models.Listing.nightly_price >= min_price)
    if max_price is not None:
        query = query.filter(models.Listing.nightly_price <= max_price)
    if location:
        query = query.filter(models.Listing.location.ilike(f"%{location}%"))
    if listing_ids is not None:
        query = query.filter(models.Listing.id.in_(listing_ids))
    return query.order_by(
        models.Listing.created_at.desc(), models.Listing.id.desc()
    ).offset(skip).limit(limit).all()


@retry_read_once
def get_available_listing_ids(db: Session, start_date: datetime.date, end_date: datetime.date) -> list[int]:
    """Ids of listings with no blocking booking in [start_date, end_date)."""
    booked = exists().where(
        models.Booking.listing_id == models.Listing.id,
        *overlapping_bookings_filter(start_date, end_date)
    )
    rows = db.query(models.Listing.id).filter(~booked).order_by(models.Listing.id).all()
    return [row.id for row in rows]


def add_listing(db: Session, listing: models.Listing) -> models.Listing:
    """
    Adds a listing to the session.
    Note: Does NOT commit. The caller owns the transaction.
    """
    db.add(listing)
    db.flush()
    return listing


# --- Bookings ---

def find_conflicting_booking(
        db: Session, listing_id: int, start_date: datetime.date, end_date: datetime.date
) -> Optional[models.Booking]:
    return db.query(models.Booking).filter(
        models.Booking.listing_id == listing_id,
        *overlapping_bookings_filter(start_date, end_date)
    ).first()


@retry_read_once
def get_booking(db: Session, booking_id: int) -> Optional[models.Booking]:
    return db.query(models.Booking).filter(models.Booking.id == booking_id).first()


def lock_booking(db: Session, booking_id: int) -> Optional[models.Booking]:
    return db.query(models.Booking).filter(
        models.Booking.id == booking_id
    ).with_for_update().populate_existing().first()


@retry_read_once
def get_bookings_by_guest(db: Session, guest_id: int, skip: int = 0, limit: int = 100) -> list[models.Booking]:
    return db.query(models.Booking).filter(
        models.Booking.guest_id == guest_id
    ).order_by(
        models.Booking.created_at.desc(), models.Booking.id.desc()
    ).offset(skip).limit(limit).all()


@retry_read_once
def get_bookings_by_host(db: Session, host_id: int, skip: int = 0, limit: int = 100) -> list[models.Booking]:
    return db.query(models.Booking).join(
        models.Listing, models.Listing.id == models.Booking.listing_id
    ).filter(
        models.Listing.host_id == host_id
    ).order_by(
        models.Booking.created_at.desc(), models.Booking.id.desc()
    ).offset(skip).limit(limit).all()


def add_booking(db: Session, booking: models.Booking) -> models.Booking:
    """
    Adds a booking to the session and flushes it to get its id.
    Note: Does NOT commit. The ledger commits once the conflict check passed.
    """
    db.add(booking)
    db.flush()
    return booking
