from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from database import AsyncSessionLocal
from schemas.base import AggregateRoot
from schemas.events import DomainEvent
from schemas.result import ErrorKind, Result
from services.events import EventDispatcher
from services.events import dispatcher as default_dispatcher
from services.repositories import (
    CommitteeReviewRepository,
    CreditAdvisoryRepository,
    WorkflowDefinitionRepository,
    WorkflowInstanceRepository,
)

logger = logging.getLogger(__name__)


class UnitOfWork:
    """
    One session, the aggregate repositories over it, and the events of every
    aggregate saved through them.

        async with UnitOfWork(dispatcher=dispatcher) as uow:
            instance = await uow.instances.get(instance_id)
            ...
            await uow.instances.update(instance)
            result = await uow.commit()

    Events are dispatched only after a successful commit. Leaving the block without
    committing rolls back.
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker] = None,
        dispatcher: Optional[EventDispatcher] = None,
    ):
        self.session_factory = session_factory or AsyncSessionLocal
        self.dispatcher = dispatcher if dispatcher is not None else default_dispatcher
        self.session: Optional[AsyncSession] = None
        self._tracked: list[AggregateRoot] = []

    async def __aenter__(self) -> "UnitOfWork":
        self.session = self.session_factory()
        self._tracked = []
        self.definitions = WorkflowDefinitionRepository(self.session, self._tracked)
        self.instances = WorkflowInstanceRepository(self.session, self._tracked)
        self.reviews = CommitteeReviewRepository(self.session, self._tracked)
        self.advisories = CreditAdvisoryRepository(self.session, self._tracked)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await self.rollback()
        finally:
            await self.session.close()

    async def commit(self) -> Result:
        try:
            await self.session.commit()
        except (StaleDataError, IntegrityError) as e:
            await self.session.rollback()
            self._tracked.clear()
            logger.warning("Commit rejected: %s", e)
            return Result.failure(ErrorKind.CONCURRENCY_CONFLICT, "Data was modified by another request; reload and retry")

        events = self._collect_events()
        if events and self.dispatcher is not None:
            await self.dispatcher.dispatch(events)
        return Result.success(len(events))

    async def rollback(self) -> None:
        # Aggregates whose save is discarded keep their events for a later retry
        self._tracked.clear()
        if self.session is not None:
            await self.session.rollback()

    def _collect_events(self) -> list[DomainEvent]:
        events: list[DomainEvent] = []
        for aggregate in self._tracked:
            events.extend(aggregate.pull_events())
        self._tracked.clear()
        events.sort(key=lambda e: e.occurred_at)
        return events
