"""Durable record of the last event offset applied to the projection."""

from __future__ import annotations

from sqlalchemy.orm import Session

from ensrent.models import IndexerCheckpoint


class CheckpointRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, name: str) -> IndexerCheckpoint | None:
        return self._session.get(IndexerCheckpoint, name)

    def last_offset(self, name: str) -> int:
        checkpoint = self.get(name)
        return checkpoint.last_offset if checkpoint else 0

    def advance(self, name: str, offset: int) -> IndexerCheckpoint:
        checkpoint = self.get(name)
        if checkpoint is None:
            checkpoint = IndexerCheckpoint(name=name, last_offset=offset)
            self._session.add(checkpoint)
        elif offset > checkpoint.last_offset:
            checkpoint.last_offset = offset
        return checkpoint

    def reset(self, name: str, offset: int = 0) -> None:
        checkpoint = self.get(name)
        if checkpoint is None:
            self._session.add(IndexerCheckpoint(name=name, last_offset=offset))
        else:
            checkpoint.last_offset = offset
