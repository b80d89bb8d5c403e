"""Per-event transitions from the rental contract log into the projection."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import assert_never

from loguru import logger
from sqlalchemy.orm import Session

from ensrent.domain import DomainEvent, DomainListed, DomainReclaimed, DomainRented
from ensrent.errors import FatalConsistencyError
from ensrent.models import Listing, Rental
from ensrent.repositories import ListingRepository


class RelistPolicy(str, Enum):
    COEXIST = "coexist"
    SUPERSEDE = "supersede"


@dataclass(slots=True)
class ApplyOutcome:
    """What a single event did to the store."""

    inserted: int = 0
    deleted: int = 0
    superseded: int = 0
    duplicate: bool = False


class EventApplier:
    """Apply one domain event to the projection store.

    The applier never commits; the caller owns the transaction so an event and
    its checkpoint land atomically.
    """

    def __init__(self, *, relist_policy: RelistPolicy | str = RelistPolicy.COEXIST) -> None:
        self.relist_policy = RelistPolicy(relist_policy)

    def apply(self, session: Session, event: DomainEvent, *, offset: int | None = None) -> ApplyOutcome:
        """Apply ``event``; ``offset`` is its position in the log when known.

        Without an offset, listings are sequenced in the order they are applied.
        """

        repo = ListingRepository(session)
        if isinstance(event, DomainListed):
            return self._apply_listed(repo, event, offset)
        if isinstance(event, DomainRented):
            return self._apply_rented(repo, event)
        if isinstance(event, DomainReclaimed):
            return self._apply_reclaimed(repo, event)
        assert_never(event)

    def _apply_listed(
        self, repo: ListingRepository, event: DomainListed, offset: int | None
    ) -> ApplyOutcome:
        listing = Listing(
            id=event.tx_hash,
            token_id=event.token_id,
            name=event.name,
            lender=event.lender,
            price_per_second=event.price_per_second,
            node=event.node,
            max_rental_time=event.max_rental_time,
            created_at=event.block_timestamp,
            sequence=offset if offset is not None else repo.next_listing_sequence(),
        )
        if not repo.add_listing(listing):
            logger.debug("Listing {} for token {} already indexed", event.tx_hash, event.token_id)
            return ApplyOutcome(duplicate=True)

        outcome = ApplyOutcome(inserted=1)
        if self.relist_policy is RelistPolicy.SUPERSEDE:
            outcome.superseded = repo.supersede_listings(
                event.token_id, at=event.block_timestamp, keep_id=event.tx_hash
            )
            if outcome.superseded:
                logger.info(
                    "Listing {} superseded {} earlier listing(s) for token {}",
                    event.tx_hash,
                    outcome.superseded,
                    event.token_id,
                )
        return outcome

    def _apply_rented(self, repo: ListingRepository, event: DomainRented) -> ApplyOutcome:
        if repo.rental_exists(event.tx_hash, event.token_id):
            logger.debug("Rental {} for token {} already indexed", event.tx_hash, event.token_id)
            return ApplyOutcome(duplicate=True)

        listing = repo.current_listing(event.token_id)
        if listing is None:
            raise FatalConsistencyError(event.token_id, event.tx_hash)

        repo.add_rental(
            Rental(
                id=event.tx_hash,
                token_id=event.token_id,
                borrower=event.borrower,
                start_time=event.block_timestamp,
                end_time=event.rental_end,
                price_per_second=event.price_per_second,
                listing_id=listing.id,
                created_at=event.block_timestamp,
            )
        )
        return ApplyOutcome(inserted=1)

    def _apply_reclaimed(self, repo: ListingRepository, event: DomainReclaimed) -> ApplyOutcome:
        deleted = repo.delete_listings(event.token_id)
        if not deleted:
            logger.debug("Reclaim {} for token {} found no listing", event.tx_hash, event.token_id)
        return ApplyOutcome(deleted=deleted)
