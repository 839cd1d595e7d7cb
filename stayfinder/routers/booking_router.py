from fastapi import APIRouter, Depends, status
from typing import List, Annotated

from .. import schemas
from ..auth import Principal, get_current_user
from ..cancellation import CancellationWorkflow
from ..config import settings
from ..date_range import DateRange
from ..dependencies import RateLimit, get_cancellation_workflow, get_ledger
from ..ledger import BookingLedger
from ..models import BookingStatus

router = APIRouter(prefix="/bookings", tags=["Bookings"])

write_limit = RateLimit(times=settings.BOOKING_RATE_LIMIT_PER_MINUTE)
read_limit = RateLimit(times=settings.READ_RATE_LIMIT_PER_MINUTE)

CurrentUser = Annotated[Principal, Depends(get_current_user)]
Ledger = Annotated[BookingLedger, Depends(get_ledger)]
Workflow = Annotated[CancellationWorkflow, Depends(get_cancellation_workflow)]


@router.post("/", response_model=schemas.BookingRead, status_code=status.HTTP_201_CREATED,
             dependencies=[Depends(write_limit)])
def create_booking(booking: schemas.BookingCreate, user: CurrentUser, ledger: Ledger):
    """
    Create a new booking for the authenticated user.
    Overlapping dates answer 409; pick other dates rather than retrying.
    """
    return ledger.create_booking(
        listing_id=booking.listing_id,
        guest_id=user.user_id,
        date_range=DateRange(booking.check_in, booking.check_out),
        guests=booking.guests,
    )


@router.get("/my-bookings", response_model=List[schemas.BookingRead], dependencies=[Depends(read_limit)])
def read_guest_bookings(user: CurrentUser, ledger: Ledger, skip: int = 0, limit: int = 100):
    """
    Get all bookings made by the authenticated user, newest first.
    """
    return ledger.list_for_guest(user.user_id, skip=skip, limit=limit)


@router.get("/host-bookings", response_model=List[schemas.BookingRead], dependencies=[Depends(read_limit)])
def read_host_bookings(user: CurrentUser, ledger: Ledger, skip: int = 0, limit: int = 100):
    """
    Get all bookings on listings hosted by the authenticated user, newest first.
    """
    return ledger.list_for_host(user.user_id, skip=skip, limit=limit)


@router.get("/{booking_id}", response_model=schemas.BookingRead, dependencies=[Depends(read_limit)])
def read_booking(booking_id: int, user: CurrentUser, ledger: Ledger):
    return ledger.get_booking(booking_id, user.user_id)


@router.patch("/{booking_id}/status", response_model=schemas.BookingRead, dependencies=[Depends(write_limit)])
def update_booking_status(booking_id: int, update: schemas.StatusUpdate, user: CurrentUser, ledger: Ledger):
    return ledger.set_status(booking_id, user.user_id, update.status)


@router.delete("/{booking_id}", dependencies=[Depends(write_limit)])
def cancel_booking(booking_id: int, user: CurrentUser, ledger: Ledger):
    """
    Cancel a booking right away. Guests can only do this before the host
    confirms; afterwards they have to send a cancellation request.
    """
    booking = ledger.set_status(booking_id, user.user_id, BookingStatus.CANCELLED)
    return {"message": "Booking cancelled", "booking": schemas.BookingRead.model_validate(booking)}


@router.patch("/{booking_id}/cancel-request", dependencies=[Depends(write_limit)])
def request_cancellation(booking_id: int, body: schemas.CancelRequest, user: CurrentUser, workflow: Workflow):
    booking = workflow.request_cancellation(booking_id, user.user_id, body.reason)
    return {"message": "Cancel request submitted", "booking": schemas.BookingRead.model_validate(booking)}


@router.patch("/{booking_id}/cancel-approval", dependencies=[Depends(write_limit)])
def resolve_cancellation(booking_id: int, body: schemas.CancelResolution, user: CurrentUser, workflow: Workflow):
    booking = workflow.resolve_cancellation(booking_id, user.user_id, body.action)
    return {"message": f"Cancellation {body.action}", "booking": schemas.BookingRead.model_validate(booking)}
