"""Event builders shared by the test modules."""

from __future__ import annotations

import itertools

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ensrent.domain import DomainEvent, DomainListed, DomainReclaimed, DomainRented, EventRecord
from ensrent.models import Listing, Rental

NOW = 1_700_000_000
LENDER = "0x000000000000000000000000000000000000000a"
BORROWER = "0x000000000000000000000000000000000000000b"
OTHER = "0x000000000000000000000000000000000000000c"

_tx_counter = itertools.count(1)


def tx_hash(number: int | None = None) -> str:
    return "0x" + f"{number if number is not None else next(_tx_counter):064x}"


class FakeClock:
    def __init__(self, now: int) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now


def listed(
    token_id: int = 42,
    *,
    name: str = "alice",
    lender: str = LENDER,
    price: int = 100,
    max_rental_time: int = NOW + 1000,
    tx: str | None = None,
    at: int = NOW,
) -> DomainListed:
    return DomainListed(
        token_id=token_id,
        name=name,
        lender=lender,
        price_per_second=price,
        node="0x" + "ab" * 32,
        max_rental_time=max_rental_time,
        tx_hash=tx or tx_hash(),
        block_timestamp=at,
    )


def rented(
    token_id: int = 42,
    *,
    borrower: str = BORROWER,
    rental_end: int = NOW + 500,
    price: int = 100,
    tx: str | None = None,
    at: int = NOW + 10,
) -> DomainRented:
    return DomainRented(
        token_id=token_id,
        borrower=borrower,
        rental_end=rental_end,
        price_per_second=price,
        tx_hash=tx or tx_hash(),
        block_timestamp=at,
    )


def reclaimed(token_id: int = 42, *, tx: str | None = None, at: int = NOW + 20) -> DomainReclaimed:
    return DomainReclaimed(token_id=token_id, tx_hash=tx or tx_hash(), block_timestamp=at)


def records(*events: DomainEvent) -> list[EventRecord]:
    return [EventRecord(offset=index, event=event) for index, event in enumerate(events, start=1)]


def count_rows(session: Session, model) -> int:
    return session.execute(select(func.count()).select_from(model)).scalar_one()


def count_listings(session: Session) -> int:
    return count_rows(session, Listing)


def count_rentals(session: Session) -> int:
    return count_rows(session, Rental)
