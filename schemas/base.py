from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, PrivateAttr

from schemas.events import DomainEvent


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


class AggregateRoot(BaseModel):
    """
    Base for in-memory aggregates.
    version mirrors the persisted row token; pending events are never serialized.
    """

    id: str
    version: int = 0

    _pending_events: list[DomainEvent] = PrivateAttr(default_factory=list)

    def add_event(self, event: DomainEvent) -> None:
        self._pending_events.append(event)

    @property
    def pending_events(self) -> list[DomainEvent]:
        return list(self._pending_events)

    def pull_events(self) -> list[DomainEvent]:
        events, self._pending_events = self._pending_events, []
        return events

    def to_state(self) -> dict:
        return self.model_dump(mode="json", exclude={"version"})

    @classmethod
    def from_state(cls, state: dict, version: Optional[int] = None):
        obj = cls.model_validate(state)
        if version is not None:
            obj.version = version
        return obj


def is_blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def now_or(now: Optional[datetime]) -> datetime:
    return now if now is not None else utcnow()


__all__ = ["AggregateRoot", "is_blank", "new_id", "now_or", "utcnow"]
