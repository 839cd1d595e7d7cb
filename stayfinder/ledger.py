import logging
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import crud, models
from .availability import AvailabilityIndex
from .date_range import DateRange
from .errors import (
    AuthorizationError,
    BookingError,
    CapacityError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from .locks import ListingLocks
from .pricing import compute_price

logger = logging.getLogger("stayfinder.ledger")

BookingStatus = models.BookingStatus

# new status -> statuses it may be reached from
ALLOWED_TRANSITIONS = {
    BookingStatus.CONFIRMED: {BookingStatus.PENDING},
    BookingStatus.COMPLETED: {BookingStatus.CONFIRMED},
    BookingStatus.CANCELLED: {BookingStatus.PENDING, BookingStatus.CONFIRMED},
}


@contextmanager
def locked_write(db: Session, locks: ListingLocks, listing_id: int):
    """
    Runs the body as one transaction while holding the listing's lock.

    Commits on success. Any failure rolls back; storage failures come out as
    StorageError and are not retried.
    """
    with locks.hold(listing_id):
        try:
            yield
            db.commit()
        except BookingError:
            db.rollback()
            raise
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Write for listing {listing_id} failed: {e}")
            raise StorageError("Could not save the booking, please try again") from e


def lock_booking_and_listing(db: Session, booking: models.Booking):
    """
    Row-locks a booking and its listing, listing first, in the caller's
    transaction. Same order as create_booking so that writers never deadlock.
    Returns freshly loaded copies of both.
    """
    listing = crud.lock_listing(db, booking.listing_id)
    locked = crud.lock_booking(db, booking.id)
    if locked is None or listing is None:
        raise NotFoundError("booking", booking.id)
    return locked, listing


class BookingLedger:
    """
    Owns booking records and every change to their status.

    All writes for one listing are serialized so that the availability check
    and the insert behave as a single step: two overlapping requests can
    never both be committed.
    """

    def __init__(self, db: Session, locks: ListingLocks):
        self.db = db
        self.locks = locks
        self.availability = AvailabilityIndex(db)

    def create_booking(self, listing_id: int, guest_id: int, date_range: DateRange, guests: int) -> models.Booking:
        listing = crud.get_listing(self.db, listing_id)
        if listing is None:
            raise NotFoundError("listing", listing_id)
        if guests < 1:
            raise ValidationError("Number of guests must be at least 1")
        if guests > listing.max_guests:
            raise CapacityError(f"This listing accepts at most {listing.max_guests} guests")

        total_price = compute_price(date_range, listing.nightly_price)

        # Early answer without the lock. The check that counts is the one below.
        if not self.availability.is_available(listing_id, date_range):
            logger.info(f"Rejected booking of listing {listing_id} for {date_range}: dates taken")
            raise ConflictError("Booking conflict: The listing is already booked for these dates.")

        with locked_write(self.db, self.locks, listing_id):
            if crud.lock_listing(self.db, listing_id) is None:
                raise NotFoundError("listing", listing_id)

            conflict = self.availability.find_conflict(listing_id, date_range)
            if conflict is not None:
                logger.info(
                    f"Rejected booking of listing {listing_id} for {date_range}: "
                    f"taken by booking {conflict.id} while waiting for the lock"
                )
                raise ConflictError("Booking conflict: The listing is already booked for these dates.")

            booking = crud.add_booking(self.db, models.Booking(
                listing_id=listing_id,
                guest_id=guest_id,
                check_in=date_range.start,
                check_out=date_range.end,
                guests=guests,
                total_price=total_price,
                status=BookingStatus.PENDING,
            ))
            booking_id = booking.id

        booking = crud.get_booking(self.db, booking_id)
        logger.info(
            f"Created booking {booking.id} of listing {listing_id} for guest {guest_id} "
            f"{date_range}, total {booking.total_price}"
        )
        return booking

    def set_status(self, booking_id: int, acting_user_id: int, new_status) -> models.Booking:
        new_status = _coerce_status(new_status)
        if new_status == BookingStatus.PENDING:
            raise ValidationError("A booking cannot be set back to pending")

        booking = crud.get_booking(self.db, booking_id)
        if booking is None:
            raise NotFoundError("booking", booking_id)

        with locked_write(self.db, self.locks, booking.listing_id):
            booking, listing = lock_booking_and_listing(self.db, booking)
            is_host = listing.host_id == acting_user_id
            is_guest = booking.guest_id == acting_user_id

            if not (is_host or is_guest):
                logger.warning(f"User {acting_user_id} tried to set booking {booking_id} to {new_status.value}")
                raise AuthorizationError()
            if new_status != BookingStatus.CANCELLED and not is_host:
                logger.warning(f"Guest {acting_user_id} tried to set booking {booking_id} to {new_status.value}")
                raise AuthorizationError()

            if booking.status == new_status:
                logger.info(f"Booking {booking_id} already {new_status.value}, nothing to do")
            else:
                if booking.status not in ALLOWED_TRANSITIONS[new_status]:
                    raise InvalidStateError(
                        f"Cannot change a {booking.status.value} booking to {new_status.value}"
                    )
                if (new_status == BookingStatus.CANCELLED and not is_host
                        and booking.status != BookingStatus.PENDING):
                    raise InvalidStateError(
                        "Confirmed bookings can only be cancelled through a cancellation request"
                    )
                logger.info(
                    f"Booking {booking_id}: {booking.status.value} -> {new_status.value} by user {acting_user_id}"
                )
                booking.status = new_status

        return crud.get_booking(self.db, booking_id)

    def get_booking(self, booking_id: int, acting_user_id: int) -> models.Booking:
        booking = crud.get_booking(self.db, booking_id)
        if booking is None:
            raise NotFoundError("booking", booking_id)
        if booking.guest_id != acting_user_id:
            listing = crud.get_listing(self.db, booking.listing_id)
            if listing is None or listing.host_id != acting_user_id:
                raise AuthorizationError()
        return booking

    def list_for_guest(self, guest_id: int, skip: int = 0, limit: int = 100) -> list[models.Booking]:
        return crud.get_bookings_by_guest(self.db, guest_id, skip=skip, limit=limit)

    def list_for_host(self, host_id: int, skip: int = 0, limit: int = 100) -> list[models.Booking]:
        return crud.get_bookings_by_host(self.db, host_id, skip=skip, limit=limit)


def _coerce_status(value) -> BookingStatus:
    try:
        return BookingStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in BookingStatus)
        raise ValidationError(f"Invalid status {value!r}. Allowed: {allowed}")
