from typing import Annotated

from fastapi import Depends, Request, Response
from fastapi_limiter import FastAPILimiter
from fastapi_limiter.depends import RateLimiter
from sqlalchemy.orm import Session

from .auth import get_key_by_user_id_or_ip
from .availability import AvailabilityIndex
from .cancellation import CancellationWorkflow
from .catalog import ListingCatalog
from .database import get_db
from .ledger import BookingLedger
from .locks import ListingLocks


def get_listing_locks(request: Request) -> ListingLocks:
    return request.app.state.listing_locks


def get_ledger(
        db: Annotated[Session, Depends(get_db)],
        locks: Annotated[ListingLocks, Depends(get_listing_locks)],
) -> BookingLedger:
    return BookingLedger(db, locks)


def get_cancellation_workflow(
        db: Annotated[Session, Depends(get_db)],
        locks: Annotated[ListingLocks, Depends(get_listing_locks)],
) -> CancellationWorkflow:
    return CancellationWorkflow(db, locks)


def get_catalog(db: Annotated[Session, Depends(get_db)]) -> ListingCatalog:
    return ListingCatalog(db)


def get_availability(db: Annotated[Session, Depends(get_db)]) -> AvailabilityIndex:
    return AvailabilityIndex(db)


class RateLimit:
    """
    fastapi-limiter dependency that steps aside when the limiter was never
    initialized (rate limiting disabled, or redis unreachable at startup).
    """

    def __init__(self, times: int, minutes: int = 1):
        self.limiter = RateLimiter(times=times, minutes=minutes, identifier=get_key_by_user_id_or_ip)

    async def __call__(self, request: Request, response: Response):
        if FastAPILimiter.redis is None:
            return
        await self.limiter(request, response)
