from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from ensrent import schemas
from ensrent.domain import RentalStatus, fixed_clock
from ensrent.errors import QueryError
from ensrent.main import _listing_service, app
from ensrent.services.listing_service import ListingService
from indexer.applier import EventApplier

from helpers import BORROWER, LENDER, NOW, OTHER, listed, reclaimed, rented


@pytest.fixture
def client():
    """Test client that cleans up dependency overrides after each test."""
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def indexed(session, client):
    """Serve a real projection holding one rented listing and one reclaimed token."""
    applier = EventApplier()
    for event in (
        listed(42, name="alice", price=100),
        rented(42, borrower=BORROWER, rental_end=NOW + 500),
        listed(7, name="bob", price=250),
        rented(7, borrower=OTHER, rental_end=NOW + 50),
        reclaimed(7),
    ):
        applier.apply(session, event)
    session.commit()
    app.dependency_overrides[_listing_service] = lambda: ListingService(
        session, clock=fixed_clock(NOW + 100), name_suffix=".eth", page_size=10, max_page_size=20
    )
    return client


def _listing_payload(**overrides) -> schemas.Listing:
    payload = {
        "id": "0x01",
        "token_id": 42,
        "name": "alice",
        "display_name": "alice.eth",
        "lender": LENDER,
        "price": 100,
        "node": "0xnode",
        "max_rental_time": NOW + 1000,
        "created_at": NOW,
        "status": RentalStatus.LISTED,
    }
    payload.update(overrides)
    return schemas.Listing.model_validate(payload)


def test_healthcheck(client):
    """Verify the healthcheck endpoint returns a successful response."""
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_get_listing_serializes_camel_case_and_decimal_strings(client):
    mock_service = MagicMock(spec=ListingService)
    mock_service.get_listing.return_value = _listing_payload(price=2**200)
    app.dependency_overrides[_listing_service] = lambda: mock_service

    response = client.get("/listings/0x2a", params={"viewer": LENDER})

    assert response.status_code == 200
    body = response.json()
    assert body["tokenId"] == "42"
    assert body["price"] == str(2**200)
    assert body["maxRentalTime"] == str(NOW + 1000)
    assert body["displayName"] == "alice.eth"
    assert body["status"] == "listed"
    assert body["hasActiveRental"] is False
    mock_service.get_listing.assert_called_once_with(42, viewer=LENDER)


def test_get_listing_not_found(client):
    mock_service = MagicMock(spec=ListingService)
    mock_service.get_listing.return_value = None
    app.dependency_overrides[_listing_service] = lambda: mock_service

    response = client.get("/listings/99")

    assert response.status_code == 404
    mock_service.get_listing.assert_called_once_with(99, viewer=None)


def test_invalid_token_id_is_a_bad_request(client):
    mock_service = MagicMock(spec=ListingService)
    app.dependency_overrides[_listing_service] = lambda: mock_service

    response = client.get("/listings/not-a-number")

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "INVALID_QUERY"
    mock_service.get_listing.assert_not_called()


def test_query_errors_from_the_service_become_bad_requests(client):
    mock_service = MagicMock(spec=ListingService)
    mock_service.list_listings.side_effect = QueryError("Unsupported orderBy 'lender'")
    app.dependency_overrides[_listing_service] = lambda: mock_service

    response = client.get("/listings", params={"order_by": "lender"})

    assert response.status_code == 400
    assert response.json() == {
        "detail": {"code": "INVALID_QUERY", "message": "Unsupported orderBy 'lender'"}
    }


def test_list_listings_forwards_filters(client):
    mock_service = MagicMock(spec=ListingService)
    mock_service.list_listings.return_value = schemas.ListingPage(items=[], page_info=schemas.PageInfo())
    app.dependency_overrides[_listing_service] = lambda: mock_service

    response = client.get(
        "/listings",
        params={"lender": LENDER, "name_contains": "ali", "order_by": "price", "order_direction": "asc", "limit": 5},
    )

    assert response.status_code == 200
    assert response.json() == {
        "items": [],
        "pageInfo": {"startCursor": None, "endCursor": None, "hasNextPage": False, "hasPreviousPage": False},
    }
    query = mock_service.list_listings.call_args.args[0]
    assert query.lender == LENDER
    assert query.name_contains == "ali"
    assert query.order_by == "price"
    assert query.order_direction == "asc"
    assert query.limit == 5


def test_listing_status_per_viewer_end_to_end(indexed):
    as_lender = indexed.get("/listings/42", params={"viewer": LENDER}).json()
    as_borrower = indexed.get("/listings/42", params={"viewer": BORROWER}).json()
    as_other = indexed.get("/listings/42", params={"viewer": OTHER}).json()

    assert as_lender["tokenId"] == "42"
    assert len(as_lender["rentals"]) == 1
    assert as_lender["rentals"][0]["borrower"] == BORROWER
    assert as_lender["status"] == "rentedOut"
    assert as_borrower["status"] == "rentedIn"
    assert as_other["status"] == "listed"


def test_reclaimed_listing_is_not_found_but_rental_is_listed(indexed):
    assert indexed.get("/listings/7").status_code == 404

    response = indexed.get("/rentals", params={"token_id": "7"})

    assert response.status_code == 200
    items = response.json()["items"]
    assert len(items) == 1
    assert items[0]["borrower"] == OTHER
    assert items[0]["listing"] is None


def test_available_and_portfolio_end_to_end(indexed):
    available = indexed.get("/listings/available", params={"viewer": OTHER}).json()
    portfolio = indexed.get(f"/accounts/{LENDER}/portfolio").json()

    assert available["items"] == []
    assert [item["tokenId"] for item in portfolio["rentedOut"]] == ["42"]
    assert portfolio["listed"] == []
    assert portfolio["rentedIn"] == []


def test_bad_sort_and_cursor_end_to_end(indexed):
    assert indexed.get("/listings", params={"order_by": "lender"}).status_code == 400
    assert indexed.get("/listings/available", params={"sort": "random"}).status_code == 400
    assert indexed.get("/listings", params={"after": "garbage"}).status_code == 400
    assert indexed.get("/listings", params={"limit": 500}).status_code == 400


def test_checkpoint_endpoint(indexed):
    response = indexed.get("/indexer/checkpoint")

    assert response.status_code == 200
    assert response.json() == {"name": "ens-rent", "lastOffset": 0, "updatedAt": None}
