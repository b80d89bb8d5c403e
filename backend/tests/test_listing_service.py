from __future__ import annotations

import pytest

from ensrent.domain import RentalStatus
from ensrent.errors import QueryError
from ensrent.services.listing_service import (
    AvailableQuery,
    ListingQuery,
    ListingService,
    RentalQuery,
    parse_token_id,
)
from indexer.applier import EventApplier, RelistPolicy

from helpers import BORROWER, LENDER, NOW, OTHER, listed, reclaimed, rented


@pytest.fixture
def applier() -> EventApplier:
    return EventApplier()


@pytest.fixture
def service(session, clock) -> ListingService:
    return ListingService(session, clock=clock, name_suffix=".eth", page_size=10, max_page_size=20)


def _apply(session, applier, *events):
    for event in events:
        applier.apply(session, event)
    session.commit()


def test_rented_listing_resolves_status_per_viewer(session, applier, service):
    _apply(session, applier, listed(42, name="alice"), rented(42, borrower=BORROWER, rental_end=NOW + 500))

    as_lender = service.get_listing(42, viewer=LENDER)
    as_borrower = service.get_listing(42, viewer=BORROWER.upper().replace("0X", "0x"))
    as_other = service.get_listing(42, viewer=OTHER)

    assert len(as_lender.rentals) == 1
    assert as_lender.display_name == "alice.eth"
    assert as_lender.has_active_rental
    assert as_lender.status is RentalStatus.RENTED_OUT
    assert as_borrower.status is RentalStatus.RENTED_IN
    assert as_other.status is RentalStatus.LISTED


def test_reclaimed_listing_is_gone_but_its_rental_remains(session, applier, service):
    _apply(session, applier, listed(42), rented(42), reclaimed(42))

    assert service.get_listing(42) is None

    page = service.list_rentals(RentalQuery(token_id=42))
    assert len(page.items) == 1
    assert page.items[0].borrower == BORROWER
    assert page.items[0].listing is None


def test_elapsed_rental_reports_expired(session, applier, service, clock):
    _apply(session, applier, listed(42), rented(42, rental_end=NOW + 50))

    listing = service.get_listing(42, viewer=LENDER)

    assert listing.status is RentalStatus.EXPIRED
    assert not listing.has_active_rental


def test_status_follows_the_injected_clock(session, applier, service, clock):
    _apply(session, applier, listed(42), rented(42, rental_end=NOW + 500))
    assert service.get_listing(42, viewer=BORROWER).status is RentalStatus.RENTED_IN

    clock.now = NOW + 500

    assert service.get_listing(42, viewer=BORROWER).status is RentalStatus.EXPIRED


def test_rentals_are_newest_first(session, applier, service, clock):
    _apply(
        session,
        applier,
        listed(42),
        rented(42, rental_end=NOW + 50, at=NOW + 10),
        rented(42, rental_end=NOW + 400, at=NOW + 60),
    )

    listing = service.get_listing(42)

    assert [rental.end_time for rental in listing.rentals] == [NOW + 400, NOW + 50]


def test_available_hides_own_expired_and_occupied_listings(session, applier, service, clock):
    _apply(
        session,
        applier,
        listed(1, name="free"),
        listed(2, name="mine", lender=OTHER),
        listed(3, name="stale", max_rental_time=NOW + 50),
        listed(4, name="busy"),
        rented(4, rental_end=NOW + 500),
        listed(5, name="returned"),
        rented(5, rental_end=NOW + 50),
    )

    page = service.list_available(AvailableQuery(viewer=OTHER))

    assert {item.token_id for item in page.items} == {1, 5}


def test_available_sort_presets(session, applier, service):
    _apply(
        session,
        applier,
        listed(1, price=300, max_rental_time=NOW + 2000),
        listed(2, price=100, max_rental_time=NOW + 1000),
        listed(3, price=200, max_rental_time=NOW + 3000),
    )

    by_price = service.list_available(AvailableQuery(sort="price"))
    by_time = service.list_available(AvailableQuery(sort="time"))

    assert [item.token_id for item in by_price.items] == [2, 3, 1]
    assert [item.token_id for item in by_time.items] == [3, 1, 2]
    with pytest.raises(QueryError):
        service.list_available(AvailableQuery(sort="random"))


def test_available_filters_by_name(session, applier, service):
    _apply(session, applier, listed(1, name="alice"), listed(2, name="bob"))

    page = service.list_available(AvailableQuery(name="lic"))

    assert [item.name for item in page.items] == ["alice"]


def test_list_listings_pages_back_to_the_same_leading_item(session, applier, service):
    _apply(session, applier, *[listed(token, at=NOW + token) for token in range(1, 8)])

    first = service.list_listings(ListingQuery(limit=3))
    second = service.list_listings(ListingQuery(limit=3, after=first.page_info.end_cursor))
    back = service.list_listings(ListingQuery(limit=3, before=second.page_info.start_cursor))

    assert back.items[0].id == first.items[0].id
    assert second.page_info.has_previous_page


def test_limit_bounds_are_enforced(service):
    with pytest.raises(QueryError):
        service.list_listings(ListingQuery(limit=0))
    with pytest.raises(QueryError):
        service.list_listings(ListingQuery(limit=21))
    with pytest.raises(QueryError):
        service.list_listings(ListingQuery(after="a", before="b"))


def test_portfolio_groups_listings_and_rentals(session, applier, service):
    _apply(
        session,
        applier,
        listed(1, name="open"),
        listed(2, name="leased"),
        rented(2, borrower=BORROWER, rental_end=NOW + 500),
        listed(3, name="lapsed", max_rental_time=NOW + 50),
        listed(4, name="theirs", lender=OTHER),
        rented(4, borrower=LENDER, rental_end=NOW + 900),
        listed(5, name="old", lender=OTHER),
        rented(5, borrower=LENDER, rental_end=NOW + 50),
    )

    portfolio = service.portfolio(LENDER.upper().replace("0X", "0x"))

    assert portfolio.address == LENDER
    assert [item.token_id for item in portfolio.listed] == [1]
    assert [item.token_id for item in portfolio.rented_out] == [2]
    assert [item.token_id for item in portfolio.lapsed] == [3]
    assert [item.token_id for item in portfolio.rented_in] == [4]
    assert portfolio.rented_in[0].listing.name == "theirs"


def test_checkpoint_defaults_to_zero(service):
    checkpoint = service.checkpoint("fresh")

    assert checkpoint.name == "fresh"
    assert checkpoint.last_offset == 0


@pytest.mark.parametrize("raw, expected", [("42", 42), ("0x2a", 42), (" 7 ", 7), (5, 5)])
def test_parse_token_id_accepts_decimal_and_hex(raw, expected):
    assert parse_token_id(raw) == expected


@pytest.mark.parametrize("raw", ["abc", "-1", str(2**256), "0xzz"])
def test_parse_token_id_rejects_garbage(raw):
    with pytest.raises(QueryError):
        parse_token_id(raw)


@pytest.fixture
def superseding() -> EventApplier:
    return EventApplier(relist_policy=RelistPolicy.SUPERSEDE)


def test_superseded_listing_is_hidden_from_reads(session, superseding, service):
    older = listed(42, price=100, at=NOW)
    newer = listed(42, price=250, at=NOW + 10)
    _apply(session, superseding, older, newer, listed(7, price=50, at=NOW + 20))

    listing = service.get_listing(42)
    page = service.list_listings(ListingQuery(token_id=42))
    portfolio = service.portfolio(LENDER)

    assert listing.id == newer.tx_hash
    assert listing.price == 250
    assert [item.price for item in page.items] == [250]
    assert sorted(item.price for item in portfolio.listed) == [50, 250]
    assert older.tx_hash not in {item.id for item in portfolio.listed}


def test_superseded_listing_is_hidden_from_available(session, superseding, service):
    _apply(session, superseding, listed(42, price=100, at=NOW), listed(42, price=250, at=NOW + 10))

    page = service.list_available(AvailableQuery(viewer=OTHER))

    assert [item.price for item in page.items] == [250]


def test_rent_after_supersede_attaches_to_the_live_listing(session, superseding, service):
    older = listed(42, price=100, at=NOW)
    newer = listed(42, price=250, at=NOW + 10)
    rent_event = rented(42, borrower=BORROWER, rental_end=NOW + 500, at=NOW + 20)
    _apply(session, superseding, older, newer, rent_event)

    listing = service.get_listing(42, viewer=LENDER)
    rentals = service.list_rentals(RentalQuery(token_id=42))

    assert [rental.id for rental in listing.rentals] == [rent_event.tx_hash]
    assert listing.status is RentalStatus.RENTED_OUT
    assert rentals.items[0].listing_id == newer.tx_hash
    assert rentals.items[0].listing.price == 250
