import random
from datetime import date, timedelta
from decimal import Decimal

import pytest

from stayfinder import models
from stayfinder.date_range import DateRange
from stayfinder.errors import (
    AuthorizationError,
    CapacityError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)

BookingStatus = models.BookingStatus

HOST = 10
GUEST = 1
OTHER_GUEST = 2
STRANGER = 99


def stay(start: date, nights: int) -> DateRange:
    return DateRange(start, start + timedelta(days=nights))


# --- create_booking ---

def test_create_booking_computes_price(ledger, make_listing):
    listing = make_listing(nightly_price="100")

    booking = ledger.create_booking(listing.id, GUEST, DateRange(date(2024, 6, 1), date(2024, 6, 4)), 2)

    assert booking.id is not None
    assert booking.total_price == Decimal("300")
    assert booking.status == BookingStatus.PENDING
    assert booking.cancel_requested is False
    assert booking.check_in == date(2024, 6, 1)
    assert booking.check_out == date(2024, 6, 4)


def test_create_booking_unknown_listing(ledger):
    with pytest.raises(NotFoundError):
        ledger.create_booking(404, GUEST, stay(date(2024, 6, 1), 2), 1)


def test_create_booking_over_capacity(ledger, make_listing):
    listing = make_listing(max_guests=4)

    with pytest.raises(CapacityError):
        ledger.create_booking(listing.id, GUEST, stay(date(2024, 6, 1), 2), 5)


def test_create_booking_at_capacity(ledger, make_listing):
    listing = make_listing(max_guests=4)

    assert ledger.create_booking(listing.id, GUEST, stay(date(2024, 6, 1), 2), 4).guests == 4


def test_create_booking_needs_a_guest(ledger, make_listing):
    listing = make_listing()

    with pytest.raises(ValidationError):
        ledger.create_booking(listing.id, GUEST, stay(date(2024, 6, 1), 2), 0)


def test_overlapping_booking_is_a_conflict(ledger, make_listing):
    listing = make_listing()
    ledger.create_booking(listing.id, GUEST, DateRange(date(2024, 7, 1), date(2024, 7, 3)), 2)

    with pytest.raises(ConflictError):
        ledger.create_booking(listing.id, OTHER_GUEST, DateRange(date(2024, 7, 2), date(2024, 7, 5)), 2)


def test_conflict_is_found_even_when_the_early_check_missed_it(ledger, make_listing, mocker):
    """The check under the lock is the one that counts."""
    listing = make_listing()
    ledger.create_booking(listing.id, GUEST, DateRange(date(2024, 7, 1), date(2024, 7, 3)), 2)
    mocker.patch.object(ledger.availability, "is_available", return_value=True)

    with pytest.raises(ConflictError):
        ledger.create_booking(listing.id, OTHER_GUEST, DateRange(date(2024, 7, 2), date(2024, 7, 5)), 2)
    assert len(ledger.list_for_guest(OTHER_GUEST)) == 0


def test_conflict_does_not_depend_on_the_guest(ledger, make_listing):
    listing = make_listing()
    ledger.create_booking(listing.id, GUEST, stay(date(2024, 7, 1), 3), 2)

    with pytest.raises(ConflictError):
        ledger.create_booking(listing.id, GUEST, stay(date(2024, 7, 2), 1), 2)


def test_adjacent_bookings_are_allowed(ledger, make_listing):
    listing = make_listing()
    ledger.create_booking(listing.id, GUEST, DateRange(date(2024, 7, 1), date(2024, 7, 3)), 2)

    booking = ledger.create_booking(listing.id, OTHER_GUEST, DateRange(date(2024, 7, 3), date(2024, 7, 5)), 2)

    assert booking.status == BookingStatus.PENDING


def test_same_dates_on_another_listing_are_fine(ledger, make_listing):
    first = make_listing()
    second = make_listing(title="Loft")
    ledger.create_booking(first.id, GUEST, stay(date(2024, 7, 1), 3), 2)

    assert ledger.create_booking(second.id, GUEST, stay(date(2024, 7, 1), 3), 2).listing_id == second.id


# --- set_status ---

def test_host_confirms_and_completes(ledger, make_listing):
    listing = make_listing(host_id=HOST)
    booking = ledger.create_booking(listing.id, GUEST, stay(date(2024, 7, 1), 2), 2)

    assert ledger.set_status(booking.id, HOST, "confirmed").status == BookingStatus.CONFIRMED
    assert ledger.set_status(booking.id, HOST, BookingStatus.COMPLETED).status == BookingStatus.COMPLETED


def test_guest_cannot_confirm(ledger, make_listing):
    listing = make_listing(host_id=HOST)
    booking = ledger.create_booking(listing.id, GUEST, stay(date(2024, 7, 1), 2), 2)

    with pytest.raises(AuthorizationError):
        ledger.set_status(booking.id, GUEST, BookingStatus.CONFIRMED)


def test_stranger_cannot_change_status(ledger, make_listing):
    listing = make_listing(host_id=HOST)
    booking = ledger.create_booking(listing.id, GUEST, stay(date(2024, 7, 1), 2), 2)

    with pytest.raises(AuthorizationError) as exc_info:
        ledger.set_status(booking.id, STRANGER, BookingStatus.CANCELLED)
    assert exc_info.value.message == "Not authorized"


def test_set_status_unknown_booking(ledger):
    with pytest.raises(NotFoundError):
        ledger.set_status(404, HOST, BookingStatus.CONFIRMED)


@pytest.mark.parametrize("value", ["pending", "archived"])
def test_set_status_rejects_unsettable_statuses(ledger, make_listing, value):
    listing = make_listing(host_id=HOST)
    booking = ledger.create_booking(listing.id, GUEST, stay(date(2024, 7, 1), 2), 2)

    with pytest.raises(ValidationError):
        ledger.set_status(booking.id, HOST, value)


def test_pending_booking_cannot_skip_to_completed(ledger, make_listing):
    listing = make_listing(host_id=HOST)
    booking = ledger.create_booking(listing.id, GUEST, stay(date(2024, 7, 1), 2), 2)

    with pytest.raises(InvalidStateError):
        ledger.set_status(booking.id, HOST, BookingStatus.COMPLETED)


def test_cancelled_booking_cannot_be_confirmed(ledger, make_listing):
    listing = make_listing(host_id=HOST)
    booking = ledger.create_booking(listing.id, GUEST, stay(date(2024, 7, 1), 2), 2)
    ledger.set_status(booking.id, HOST, BookingStatus.CANCELLED)

    with pytest.raises(InvalidStateError):
        ledger.set_status(booking.id, HOST, BookingStatus.CONFIRMED)


def test_completed_booking_cannot_be_cancelled(ledger, make_listing):
    listing = make_listing(host_id=HOST)
    booking = ledger.create_booking(listing.id, GUEST, stay(date(2024, 7, 1), 2), 2)
    ledger.set_status(booking.id, HOST, BookingStatus.CONFIRMED)
    ledger.set_status(booking.id, HOST, BookingStatus.COMPLETED)

    with pytest.raises(InvalidStateError):
        ledger.set_status(booking.id, HOST, BookingStatus.CANCELLED)


def test_confirming_twice_is_a_no_op(ledger, make_listing):
    listing = make_listing(host_id=HOST)
    booking = ledger.create_booking(listing.id, GUEST, stay(date(2024, 7, 1), 2), 2)
    ledger.set_status(booking.id, HOST, BookingStatus.CONFIRMED)

    assert ledger.set_status(booking.id, HOST, BookingStatus.CONFIRMED).status == BookingStatus.CONFIRMED


def test_cancelling_twice_is_idempotent(ledger, make_listing):
    listing = make_listing(host_id=HOST)
    booking = ledger.create_booking(listing.id, GUEST, stay(date(2024, 7, 1), 2), 2)

    first = ledger.set_status(booking.id, HOST, BookingStatus.CANCELLED)
    first_state = (first.status, first.cancel_requested, first.cancel_approval_status)
    second = ledger.set_status(booking.id, HOST, BookingStatus.CANCELLED)

    assert second.status == BookingStatus.CANCELLED
    assert (second.status, second.cancel_requested, second.cancel_approval_status) == first_state


def test_guest_can_cancel_pending_booking(ledger, make_listing):
    listing = make_listing(host_id=HOST)
    booking = ledger.create_booking(listing.id, GUEST, stay(date(2024, 7, 1), 2), 2)

    assert ledger.set_status(booking.id, GUEST, BookingStatus.CANCELLED).status == BookingStatus.CANCELLED
    # and again, still no error
    assert ledger.set_status(booking.id, GUEST, BookingStatus.CANCELLED).status == BookingStatus.CANCELLED


def test_guest_cannot_cancel_confirmed_booking_directly(ledger, make_listing):
    listing = make_listing(host_id=HOST)
    booking = ledger.create_booking(listing.id, GUEST, stay(date(2024, 7, 1), 2), 2)
    ledger.set_status(booking.id, HOST, BookingStatus.CONFIRMED)

    with pytest.raises(InvalidStateError):
        ledger.set_status(booking.id, GUEST, BookingStatus.CANCELLED)
    assert ledger.get_booking(booking.id, GUEST).status == BookingStatus.CONFIRMED


def test_cancelling_releases_the_dates(ledger, make_listing):
    listing = make_listing(host_id=HOST)
    booking = ledger.create_booking(listing.id, GUEST, stay(date(2024, 7, 1), 3), 2)
    ledger.set_status(booking.id, HOST, BookingStatus.CANCELLED)

    rebooked = ledger.create_booking(listing.id, OTHER_GUEST, stay(date(2024, 7, 1), 3), 2)

    assert rebooked.status == BookingStatus.PENDING
    # the cancelled booking is kept for the record
    assert ledger.get_booking(booking.id, GUEST).status == BookingStatus.CANCELLED


# --- reads ---

def test_get_booking_is_limited_to_guest_and_host(ledger, make_listing):
    listing = make_listing(host_id=HOST)
    booking = ledger.create_booking(listing.id, GUEST, stay(date(2024, 7, 1), 2), 2)

    assert ledger.get_booking(booking.id, GUEST).id == booking.id
    assert ledger.get_booking(booking.id, HOST).id == booking.id
    with pytest.raises(AuthorizationError):
        ledger.get_booking(booking.id, STRANGER)


def test_lists_are_newest_first(ledger, make_listing):
    listing = make_listing(host_id=HOST)
    other_listing = make_listing(host_id=HOST + 1, title="Loft")
    first = ledger.create_booking(listing.id, GUEST, stay(date(2024, 7, 1), 2), 2)
    second = ledger.create_booking(listing.id, OTHER_GUEST, stay(date(2024, 8, 1), 2), 2)
    third = ledger.create_booking(other_listing.id, GUEST, stay(date(2024, 9, 1), 2), 2)

    assert [b.id for b in ledger.list_for_guest(GUEST)] == [third.id, first.id]
    assert [b.id for b in ledger.list_for_host(HOST)] == [second.id, first.id]
    assert ledger.list_for_host(STRANGER) == []


# --- invariant ---

def test_no_overlap_after_random_operations(ledger, make_listing, db_session):
    rng = random.Random(1234)
    listings = [make_listing(host_id=HOST, title=f"Listing {i}") for i in range(3)]
    base = date(2024, 1, 1)

    for _ in range(200):
        listing = rng.choice(listings)
        action = rng.random()
        if action < 0.7:
            start = base + timedelta(days=rng.randrange(60))
            try:
                ledger.create_booking(listing.id, rng.randrange(1, 6), stay(start, rng.randrange(1, 8)), 1)
            except ConflictError:
                pass
        else:
            bookings = ledger.list_for_host(HOST)
            if not bookings:
                continue
            booking = rng.choice(bookings)
            new_status = rng.choice(list(ledger_status_targets()))
            try:
                ledger.set_status(booking.id, HOST, new_status)
            except InvalidStateError:
                pass

    for listing in listings:
        live = db_session.query(models.Booking).filter(
            models.Booking.listing_id == listing.id,
            models.Booking.status != BookingStatus.CANCELLED,
        ).all()
        for i, a in enumerate(live):
            for b in live[i + 1:]:
                assert not DateRange(a.check_in, a.check_out).overlaps(DateRange(b.check_in, b.check_out))


def ledger_status_targets():
    return (BookingStatus.CONFIRMED, BookingStatus.COMPLETED, BookingStatus.CANCELLED)
