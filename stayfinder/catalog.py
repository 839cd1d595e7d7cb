import datetime
import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import crud, models, schemas
from .availability import AvailabilityIndex
from .date_range import DateRange, normalize_date
from .errors import AuthorizationError, NotFoundError, StorageError, ValidationError

logger = logging.getLogger("stayfinder.catalog")


class ListingCatalog:
    """Listings owned by hosts. Bookings refer to them by id."""

    def __init__(self, db: Session):
        self.db = db
        self.availability = AvailabilityIndex(db)

    def get_listing(self, listing_id: int) -> models.Listing:
        listing = crud.get_listing(self.db, listing_id)
        if listing is None:
            raise NotFoundError("listing", listing_id)
        return listing

    def create_listing(self, host_id: int, data: schemas.ListingCreate) -> models.Listing:
        listing = models.Listing(**data.model_dump(), host_id=host_id)
        try:
            listing_id = crud.add_listing(self.db, listing).id
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to create listing for host {host_id}: {e}")
            raise StorageError("Could not save the listing, please try again") from e
        logger.info(f"Host {host_id} created listing {listing_id}")
        return self.get_listing(listing_id)

    def update_listing(self, listing_id: int, acting_user_id: int, changes: schemas.ListingUpdate) -> models.Listing:
        listing = self.get_listing(listing_id)
        if listing.host_id != acting_user_id:
            logger.warning(f"User {acting_user_id} tried to update listing {listing_id}")
            raise AuthorizationError()

        # Prices of existing bookings were fixed when they were made
        for field, value in changes.model_dump(exclude_unset=True).items():
            if value is None:
                continue
            setattr(listing, field, value)
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to update listing {listing_id}: {e}")
            raise StorageError("Could not save the listing, please try again") from e
        return self.get_listing(listing_id)

    def list_for_host(self, host_id: int) -> list[models.Listing]:
        return crud.get_listings_by_host(self.db, host_id)

    def search(
            self,
            min_price: Optional[Decimal] = None,
            max_price: Optional[Decimal] = None,
            location: Optional[str] = None,
            check_in=None,
            check_out=None,
            skip: int = 0,
            limit: int = 100,
    ) -> list[models.Listing]:
        """
        Listings within the price bounds (inclusive) whose location contains
        the given text, ignoring case. With both dates given, only listings
        free for the whole stay; equal dates ask about that single night.
        """
        if min_price is not None and max_price is not None and min_price > max_price:
            raise ValidationError("Minimum price must not exceed maximum price")

        listing_ids = None
        if check_in is not None and check_out is not None:
            start, end = normalize_date(check_in), normalize_date(check_out)
            if start > end:
                raise ValidationError("Check-in date must be before check-out date")
            if start == end:
                end = start + datetime.timedelta(days=1)
            listing_ids = self.availability.available_listing_ids(DateRange(start, end))

        return crud.search_listings(
            self.db,
            min_price=min_price,
            max_price=max_price,
            location=location,
            listing_ids=listing_ids,
            skip=skip,
            limit=limit,
        )
