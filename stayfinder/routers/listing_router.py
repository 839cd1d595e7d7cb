from decimal import Decimal
from fastapi import APIRouter, Depends, status
from typing import List, Annotated, Optional

from .. import schemas
from ..auth import Principal, get_current_user
from ..availability import AvailabilityIndex
from ..catalog import ListingCatalog
from ..config import settings
from ..date_range import DateRange
from ..dependencies import RateLimit, get_availability, get_catalog

router = APIRouter(prefix="/listings", tags=["Listings"])

read_limit = RateLimit(times=settings.READ_RATE_LIMIT_PER_MINUTE)

CurrentUser = Annotated[Principal, Depends(get_current_user)]
Catalog = Annotated[ListingCatalog, Depends(get_catalog)]


@router.post("/", response_model=schemas.ListingRead, status_code=status.HTTP_201_CREATED)
def create_listing(listing: schemas.ListingCreate, user: CurrentUser, catalog: Catalog):
    """
    Publish a listing. The authenticated user becomes its host.
    """
    return catalog.create_listing(host_id=user.user_id, data=listing)


@router.get("/", response_model=List[schemas.ListingRead], dependencies=[Depends(read_limit)])
def search_listings(
        catalog: Catalog,
        min_price: Optional[Decimal] = None,
        max_price: Optional[Decimal] = None,
        location: Optional[str] = None,
        check_in: Optional[schemas.CalendarDate] = None,
        check_out: Optional[schemas.CalendarDate] = None,
        skip: int = 0,
        limit: int = 100,
):
    """
    List listings, optionally filtered by nightly price, by location
    (case-insensitive substring) and by being free for the whole stay
    between check_in and check_out.
    """
    return catalog.search(
        min_price=min_price,
        max_price=max_price,
        location=location,
        check_in=check_in,
        check_out=check_out,
        skip=skip,
        limit=limit,
    )


@router.get("/my-listings", response_model=List[schemas.ListingRead])
def read_my_listings(user: CurrentUser, catalog: Catalog):
    return catalog.list_for_host(user.user_id)


@router.get("/{listing_id}", response_model=schemas.ListingRead, dependencies=[Depends(read_limit)])
def read_listing(listing_id: int, catalog: Catalog):
    return catalog.get_listing(listing_id)


@router.put("/{listing_id}", response_model=schemas.ListingRead)
def update_listing(listing_id: int, changes: schemas.ListingUpdate, user: CurrentUser, catalog: Catalog):
    return catalog.update_listing(listing_id, user.user_id, changes)


@router.get("/{listing_id}/availability", response_model=schemas.AvailabilityRead,
            dependencies=[Depends(read_limit)])
def read_availability(
        listing_id: int,
        check_in: schemas.CalendarDate,
        check_out: schemas.CalendarDate,
        availability: Annotated[AvailabilityIndex, Depends(get_availability)],
):
    date_range = DateRange(check_in, check_out)
    return schemas.AvailabilityRead(
        listing_id=listing_id,
        check_in=date_range.start,
        check_out=date_range.end,
        available=availability.is_available(listing_id, date_range),
    )
