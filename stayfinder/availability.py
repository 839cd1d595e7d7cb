import logging
from typing import Optional

from sqlalchemy.orm import Session

from . import crud, models
from .date_range import DateRange
from .errors import NotFoundError

logger = logging.getLogger("stayfinder.availability")

# Standalone availability queries are plain reads and may be retried
_find_conflict_with_retry = crud.retry_read_once(crud.find_conflicting_booking)


class AvailabilityIndex:
    """
    Answers "is this range free?" for a listing.

    There is no stored calendar: the booking table is the only source of
    truth and every answer is a fresh query over it.
    """

    def __init__(self, db: Session):
        self.db = db

    def is_available(self, listing_id: int, date_range: DateRange) -> bool:
        if crud.get_listing(self.db, listing_id) is None:
            raise NotFoundError("listing", listing_id)
        conflict = _find_conflict_with_retry(self.db, listing_id, date_range.start, date_range.end)
        if conflict is not None:
            logger.debug(f"Listing {listing_id} is booked during {date_range} (booking {conflict.id})")
        return conflict is None

    def find_conflict(self, listing_id: int, date_range: DateRange) -> Optional[models.Booking]:
        """
        Returns a non-cancelled booking overlapping the range, if any.
        Not retried: callers run this inside their own transaction.
        """
        return crud.find_conflicting_booking(self.db, listing_id, date_range.start, date_range.end)

    def available_listing_ids(self, date_range: DateRange) -> list[int]:
        return crud.get_available_listing_ids(self.db, date_range.start, date_range.end)
