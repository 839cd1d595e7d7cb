import logging
from enum import Enum as PyEnum

from sqlalchemy.orm import Session

from . import crud, models
from .errors import AuthorizationError, InvalidStateError, NotFoundError, ValidationError
from .ledger import lock_booking_and_listing, locked_write
from .locks import ListingLocks

logger = logging.getLogger("stayfinder.cancellation")

BookingStatus = models.BookingStatus
CancelApprovalStatus = models.CancelApprovalStatus


class CancellationState(str, PyEnum):
    ACTIVE = "active"
    REQUEST_PENDING = "request_pending"
    APPROVED = "approved"
    REJECTED = "rejected"


def cancellation_state(booking: models.Booking) -> CancellationState:
    """Derives the workflow state from the booking's cancel_* fields."""
    if not booking.cancel_requested:
        return CancellationState.ACTIVE
    if booking.cancel_approval_status == CancelApprovalStatus.APPROVED:
        return CancellationState.APPROVED
    if booking.cancel_approval_status == CancelApprovalStatus.REJECTED:
        return CancellationState.REJECTED
    return CancellationState.REQUEST_PENDING


class CancellationWorkflow:
    """
    Guest asks, host decides.

    ACTIVE/REJECTED --request--> REQUEST_PENDING --approve--> APPROVED (final)
                                                 --reject---> REJECTED

    A rejected request stays on the booking for the record. The guest may
    ask again, which puts the workflow back into REQUEST_PENDING.
    """

    def __init__(self, db: Session, locks: ListingLocks):
        self.db = db
        self.locks = locks

    def request_cancellation(self, booking_id: int, guest_id: int, reason: str = "") -> models.Booking:
        booking = crud.get_booking(self.db, booking_id)
        if booking is None:
            raise NotFoundError("booking", booking_id)

        with locked_write(self.db, self.locks, booking.listing_id):
            booking, _listing = lock_booking_and_listing(self.db, booking)
            if booking.guest_id != guest_id:
                logger.warning(f"User {guest_id} tried to request cancellation of booking {booking_id}")
                raise AuthorizationError()

            state = cancellation_state(booking)
            if state == CancellationState.REQUEST_PENDING:
                raise InvalidStateError("A cancellation request is already pending for this booking")
            if state == CancellationState.APPROVED or booking.status == BookingStatus.CANCELLED:
                raise InvalidStateError("This booking is already cancelled")
            if booking.status == BookingStatus.COMPLETED:
                raise InvalidStateError("A completed booking cannot be cancelled")

            booking.cancel_requested = True
            booking.cancel_reason = reason or ""
            booking.cancel_approval_status = CancelApprovalStatus.PENDING
            booking.cancel_approval_date = None
            logger.info(f"Guest {guest_id} requested cancellation of booking {booking_id} (was {state.value})")

        return crud.get_booking(self.db, booking_id)

    def resolve_cancellation(self, booking_id: int, host_id: int, decision) -> models.Booking:
        decision = _coerce_decision(decision)

        booking = crud.get_booking(self.db, booking_id)
        if booking is None:
            raise NotFoundError("booking", booking_id)

        with locked_write(self.db, self.locks, booking.listing_id):
            booking, listing = lock_booking_and_listing(self.db, booking)
            if listing.host_id != host_id:
                logger.warning(f"User {host_id} tried to resolve cancellation of booking {booking_id}")
                raise AuthorizationError()

            if not booking.cancel_requested:
                raise InvalidStateError("No cancellation requested")
            if cancellation_state(booking) != CancellationState.REQUEST_PENDING:
                raise InvalidStateError(
                    f"The cancellation request was already {booking.cancel_approval_status.value}"
                )

            if decision == CancelApprovalStatus.APPROVED and booking.status == BookingStatus.COMPLETED:
                raise InvalidStateError("A completed booking cannot be cancelled")

            booking.cancel_approval_status = decision
            booking.cancel_approval_date = models.utcnow()
            if decision == CancelApprovalStatus.APPROVED:
                # Frees the dates: cancelled bookings never block availability
                booking.status = BookingStatus.CANCELLED
            logger.info(f"Host {host_id} {decision.value} cancellation of booking {booking_id}")

        return crud.get_booking(self.db, booking_id)


def _coerce_decision(value) -> CancelApprovalStatus:
    try:
        decision = CancelApprovalStatus(value)
    except ValueError:
        decision = None
    if decision not in (CancelApprovalStatus.APPROVED, CancelApprovalStatus.REJECTED):
        raise ValidationError("Action must be 'approved' or 'rejected'")
    return decision
