"""Closed set of rental contract events consumed by the indexer."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TypeAlias


@dataclass(frozen=True, slots=True)
class DomainListed:
    token_id: int
    name: str
    lender: str
    price_per_second: int
    node: str
    max_rental_time: int
    tx_hash: str
    block_timestamp: int


@dataclass(frozen=True, slots=True)
class DomainRented:
    token_id: int
    borrower: str
    rental_end: int
    price_per_second: int
    tx_hash: str
    block_timestamp: int


@dataclass(frozen=True, slots=True)
class DomainReclaimed:
    token_id: int
    tx_hash: str
    block_timestamp: int


DomainEvent: TypeAlias = DomainListed | DomainRented | DomainReclaimed

EVENT_TYPES: dict[str, type[DomainEvent]] = {
    "DomainListed": DomainListed,
    "DomainRented": DomainRented,
    "DomainReclaimed": DomainReclaimed,
}


@dataclass(frozen=True, slots=True)
class EventRecord:
    """A domain event together with its position in the upstream log."""

    offset: int
    event: DomainEvent

    @property
    def name(self) -> str:
        return type(self.event).__name__
