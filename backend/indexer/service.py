from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass

from loguru import logger
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from ensrent.core.config import settings
from ensrent.db import SessionLocal, session_scope
from ensrent.domain import EventRecord
from ensrent.errors import EventDecodeError, FatalConsistencyError, TransientStorageError
from ensrent.repositories import CheckpointRepository

from .applier import ApplyOutcome, EventApplier
from .sources import EventSource


@dataclass(slots=True)
class IndexerRunStats:
    applied: int = 0
    duplicates: int = 0
    skipped: int = 0
    last_offset: int = 0

    def record(self, outcome: ApplyOutcome, offset: int) -> None:
        if outcome.duplicate:
            self.duplicates += 1
        else:
            self.applied += 1
        self.last_offset = offset

    def merge(self, other: "IndexerRunStats") -> None:
        self.applied += other.applied
        self.duplicates += other.duplicates
        self.skipped += other.skipped
        self.last_offset = max(self.last_offset, other.last_offset)

    def to_dict(self) -> dict[str, int]:
        return {
            "applied": self.applied,
            "duplicates": self.duplicates,
            "skipped": self.skipped,
            "last_offset": self.last_offset,
        }


def _is_transient(exc: Exception) -> bool:
    if isinstance(exc, OperationalError):
        return True
    return isinstance(exc, DBAPIError) and bool(exc.connection_invalidated)


class IndexerService:
    """Feed an ordered event source through the applier, one transaction per event."""

    def __init__(
        self,
        *,
        session_factory: sessionmaker[Session] | None = None,
        applier: EventApplier | None = None,
        checkpoint_name: str | None = None,
        retry_attempts: int | None = None,
        retry_backoff: tuple[float, ...] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._session_factory = session_factory or SessionLocal
        self.applier = applier or EventApplier(relist_policy=settings.relist_policy)
        self.checkpoint_name = checkpoint_name or settings.checkpoint_name
        self.retry_attempts = retry_attempts or settings.apply_retry_attempts
        self.retry_backoff = retry_backoff or settings.apply_retry_backoff_schedule
        self._sleep = sleep

    def last_offset(self) -> int:
        with session_scope(self._session_factory) as session:
            return CheckpointRepository(session).last_offset(self.checkpoint_name)

    def reset_checkpoint(self, offset: int = 0) -> None:
        with session_scope(self._session_factory) as session:
            CheckpointRepository(session).reset(self.checkpoint_name, offset)
        logger.warning("Checkpoint {} reset to offset {}", self.checkpoint_name, offset)

    def apply_record(self, record: EventRecord) -> ApplyOutcome:
        """Apply ``record`` and advance the checkpoint atomically, retrying transient failures."""

        for attempt in range(1, self.retry_attempts + 1):
            try:
                with session_scope(self._session_factory) as session:
                    outcome = self.applier.apply(session, record.event, offset=record.offset)
                    CheckpointRepository(session).advance(self.checkpoint_name, record.offset)
                logger.debug("Applied {} at offset {}: {}", record.name, record.offset, outcome)
                return outcome
            except FatalConsistencyError:
                logger.error(
                    "Halting at offset {}: {} cannot be applied to the current projection",
                    record.offset,
                    record.name,
                )
                raise
            except Exception as exc:
                if not _is_transient(exc):
                    raise
                if attempt >= self.retry_attempts:
                    raise TransientStorageError(
                        f"Giving up on {record.name} at offset {record.offset} after {attempt} attempts",
                        attempts=attempt,
                    ) from exc
                delay = self.retry_backoff[min(attempt - 1, len(self.retry_backoff) - 1)]
                logger.warning(
                    "Transient storage error applying offset {} (attempt {}/{}); retrying in {}s: {}",
                    record.offset,
                    attempt,
                    self.retry_attempts,
                    delay,
                    exc,
                )
                self._sleep(delay)
        raise AssertionError("unreachable")

    def run(self, source: EventSource, *, limit: int | None = None) -> IndexerRunStats:
        """Apply every event the source yields past the checkpoint."""

        start = self.last_offset()
        stats = IndexerRunStats(last_offset=start)
        processed = 0
        try:
            for record in source.iter_records(after=start):
                if record.offset <= stats.last_offset:
                    stats.skipped += 1
                    continue
                outcome = self.apply_record(record)
                stats.record(outcome, record.offset)
                processed += 1
                if limit and processed >= limit:
                    logger.info("Limit reached ({}); stopping early", limit)
                    break
        except EventDecodeError:
            logger.exception("Malformed event after offset {}; halting", stats.last_offset)
            raise

        logger.info(
            "Indexed {} events ({} duplicates, {} skipped) up to offset {}",
            stats.applied,
            stats.duplicates,
            stats.skipped,
            stats.last_offset,
        )
        return stats

    def follow(
        self,
        source: EventSource,
        *,
        poll_interval: float | None = None,
        max_polls: int | None = None,
    ) -> IndexerRunStats:
        """Poll ``source`` until interrupted (or ``max_polls`` is reached)."""

        interval = poll_interval or settings.poll_interval_seconds
        total = IndexerRunStats()
        polls = 0
        while max_polls is None or polls < max_polls:
            total.merge(self.run(source))
            polls += 1
            if max_polls is not None and polls >= max_polls:
                break
            self._sleep(interval)
        return total
