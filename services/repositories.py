"""
Async SQLAlchemy repositories for the workflow, committee and advisory aggregates.

Each row stores the aggregate snapshot in a JSON `state` column next to the scalar
columns used for queries. Rows are versioned (SQLAlchemy version_id_col); an update
issued from a stale read comes back as a CONCURRENCY_CONFLICT result.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Generic, Optional, TypeVar

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from models import CommitteeReviewRecord, CreditAdvisoryRecord, WorkflowDefinitionRecord, WorkflowInstanceRecord
from schemas.advisory import CreditAdvisory
from schemas.base import AggregateRoot, now_or
from schemas.committee import CommitteeReview
from schemas.enums import CommitteeReviewStatus, LoanApplicationType
from schemas.result import ErrorKind, Result
from schemas.workflow import WorkflowDefinition, WorkflowInstance

logger = logging.getLogger(__name__)

A = TypeVar("A", bound=AggregateRoot)

MSG_STALE = "{name} {id} was modified by another request; reload and retry"


class AggregateRepository(Generic[A]):
    record_cls: type
    aggregate_cls: type[A]
    name: str = "Aggregate"

    def __init__(self, session: AsyncSession, tracked: Optional[list[AggregateRoot]] = None):
        self.session = session
        self.tracked = tracked if tracked is not None else []

    def _to_record(self, aggregate: A):
        raise NotImplementedError

    def _apply(self, record, aggregate: A) -> None:
        raise NotImplementedError

    def _load(self, record) -> A:
        return self.aggregate_cls.from_state(record.state, version=record.version_id)

    def _track(self, aggregate: A) -> None:
        if all(a is not aggregate for a in self.tracked):
            self.tracked.append(aggregate)

    def _conflict(self, aggregate: A) -> Result:
        logger.warning("Optimistic concurrency conflict on %s %s", self.name, aggregate.id)
        return Result.failure(ErrorKind.CONCURRENCY_CONFLICT, MSG_STALE.format(name=self.name, id=aggregate.id))

    async def get(self, aggregate_id: str) -> Optional[A]:
        record = await self.session.get(self.record_cls, aggregate_id)
        return self._load(record) if record is not None else None

    async def add(self, aggregate: A) -> Result:
        record = self._to_record(aggregate)
        self.session.add(record)
        try:
            await self.session.flush()
        except IntegrityError:
            await self.session.rollback()
            # Lost a create race on a natural key; the caller reloads and sees the winner
            return self._conflict(aggregate)
        aggregate.version = record.version_id
        self._track(aggregate)
        return Result.success(aggregate)

    async def update(self, aggregate: A) -> Result:
        record = await self.session.get(self.record_cls, aggregate.id)
        if record is None:
            return Result.not_found(f"{self.name} {aggregate.id} not found")
        if record.version_id != aggregate.version:
            return self._conflict(aggregate)
        self._apply(record, aggregate)
        try:
            await self.session.flush()
        except StaleDataError:
            await self.session.rollback()
            return self._conflict(aggregate)
        aggregate.version = record.version_id
        self._track(aggregate)
        return Result.success(aggregate)


class WorkflowDefinitionRepository(AggregateRepository[WorkflowDefinition]):
    record_cls = WorkflowDefinitionRecord
    aggregate_cls = WorkflowDefinition
    name = "Workflow definition"

    def _to_record(self, definition: WorkflowDefinition) -> WorkflowDefinitionRecord:
        return WorkflowDefinitionRecord(
            id=definition.id,
            name=definition.name,
            application_type=definition.application_type.value,
            is_active=definition.is_active,
            revision=definition.revision,
            state=definition.to_state(),
        )

    def _apply(self, record: WorkflowDefinitionRecord, definition: WorkflowDefinition) -> None:
        record.is_active = definition.is_active
        record.state = definition.to_state()

    async def add(self, definition: WorkflowDefinition) -> Result:
        # Only validated definitions are stored; publish() is the way in
        if not definition.is_published:
            return Result.invalid_state(f"Workflow definition {definition.name} must be published before it is stored")
        return await super().add(definition)

    async def get_active_by_type(self, application_type: LoanApplicationType) -> Optional[WorkflowDefinition]:
        result = await self.session.execute(
            select(WorkflowDefinitionRecord)
            .where(
                WorkflowDefinitionRecord.application_type == application_type.value,
                WorkflowDefinitionRecord.is_active.is_(True),
            )
            .order_by(WorkflowDefinitionRecord.revision.desc())
        )
        record = result.scalars().first()
        return self._load(record) if record is not None else None

    async def publish(self, definition: WorkflowDefinition) -> Result:
        """
        Store a definition as the active one for its application type.
        The previous active definition is deactivated, never edited.
        """
        published = definition.publish()
        if not published:
            return published

        result = await self.session.execute(
            select(WorkflowDefinitionRecord).where(
                WorkflowDefinitionRecord.application_type == definition.application_type.value
            )
        )
        previous = result.scalars().all()
        for record in previous:
            if record.is_active:
                old = self._load(record)
                old.deactivate()
                self._apply(record, old)
        definition.revision = max((r.revision for r in previous), default=0) + 1
        definition.activate()
        return await self.add(definition)


class WorkflowInstanceRepository(AggregateRepository[WorkflowInstance]):
    record_cls = WorkflowInstanceRecord
    aggregate_cls = WorkflowInstance
    name = "Workflow instance"

    def _to_record(self, instance: WorkflowInstance) -> WorkflowInstanceRecord:
        record = WorkflowInstanceRecord(
            id=instance.id,
            loan_application_id=instance.loan_application_id,
            workflow_definition_id=instance.workflow_definition_id,
        )
        self._apply(record, instance)
        return record

    def _apply(self, record: WorkflowInstanceRecord, instance: WorkflowInstance) -> None:
        record.current_status = instance.current_status.value
        record.assigned_role = instance.assigned_role
        record.assigned_to_user_id = instance.assigned_to_user_id
        record.sla_due_at = instance.sla_due_at
        record.is_completed = instance.is_completed
        record.state = instance.to_state()

    async def get_by_loan_application_id(self, loan_application_id: str) -> Optional[WorkflowInstance]:
        result = await self.session.execute(
            select(WorkflowInstanceRecord).where(WorkflowInstanceRecord.loan_application_id == loan_application_id)
        )
        record = result.scalar_one_or_none()
        return self._load(record) if record is not None else None

    async def list_sla_due(self, now: Optional[datetime] = None) -> list[WorkflowInstance]:
        result = await self.session.execute(
            select(WorkflowInstanceRecord)
            .where(
                WorkflowInstanceRecord.is_completed.is_(False),
                WorkflowInstanceRecord.sla_due_at.is_not(None),
                WorkflowInstanceRecord.sla_due_at <= now_or(now),
            )
            .order_by(WorkflowInstanceRecord.sla_due_at)
        )
        return [self._load(r) for r in result.scalars().all()]

    async def list_queue(self, role: str, user_id: Optional[str] = None) -> list[WorkflowInstance]:
        """Open work for a role, optionally only what a user has claimed; earliest SLA first."""
        query = select(WorkflowInstanceRecord).where(
            WorkflowInstanceRecord.is_completed.is_(False),
            WorkflowInstanceRecord.assigned_role == role,
        )
        if user_id is not None:
            query = query.where(WorkflowInstanceRecord.assigned_to_user_id == user_id)
        result = await self.session.execute(query.order_by(WorkflowInstanceRecord.sla_due_at))
        return [self._load(r) for r in result.scalars().all()]


class CommitteeReviewRepository(AggregateRepository[CommitteeReview]):
    record_cls = CommitteeReviewRecord
    aggregate_cls = CommitteeReview
    name = "Committee review"

    def _to_record(self, review: CommitteeReview) -> CommitteeReviewRecord:
        record = CommitteeReviewRecord(
            id=review.id,
            loan_application_id=review.loan_application_id,
            committee_type=review.committee_type.value,
        )
        self._apply(record, review)
        return record

    def _apply(self, record: CommitteeReviewRecord, review: CommitteeReview) -> None:
        record.status = review.status.value
        record.deadline_at = review.deadline_at
        record.state = review.to_state()

    async def get_by_loan_application_id(self, loan_application_id: str) -> Optional[CommitteeReview]:
        result = await self.session.execute(
            select(CommitteeReviewRecord).where(CommitteeReviewRecord.loan_application_id == loan_application_id)
        )
        record = result.scalar_one_or_none()
        return self._load(record) if record is not None else None

    async def list_overdue(self, now: Optional[datetime] = None) -> list[CommitteeReview]:
        open_statuses = [CommitteeReviewStatus.CIRCULATED.value, CommitteeReviewStatus.VOTING.value]
        result = await self.session.execute(
            select(CommitteeReviewRecord)
            .where(
                CommitteeReviewRecord.status.in_(open_statuses),
                CommitteeReviewRecord.deadline_at < now_or(now),
            )
            .order_by(CommitteeReviewRecord.deadline_at)
        )
        return [self._load(r) for r in result.scalars().all()]


class CreditAdvisoryRepository(AggregateRepository[CreditAdvisory]):
    record_cls = CreditAdvisoryRecord
    aggregate_cls = CreditAdvisory
    name = "Credit advisory"

    def _to_record(self, advisory: CreditAdvisory) -> CreditAdvisoryRecord:
        record = CreditAdvisoryRecord(
            id=advisory.id,
            loan_application_id=advisory.loan_application_id,
            model_version=advisory.model_version,
            created_at=advisory.created_at,
        )
        self._apply(record, advisory)
        return record

    def _apply(self, record: CreditAdvisoryRecord, advisory: CreditAdvisory) -> None:
        record.status = advisory.status.value
        record.overall_score = advisory.overall_score
        record.overall_rating = advisory.overall_rating.value if advisory.overall_rating else None
        record.recommendation = advisory.recommendation.value if advisory.recommendation else None
        record.generated_at = advisory.generated_at
        record.state = advisory.to_state()

    async def add(self, advisory: CreditAdvisory) -> Result:
        count = await self.session.scalar(
            select(func.count())
            .select_from(CreditAdvisoryRecord)
            .where(CreditAdvisoryRecord.loan_application_id == advisory.loan_application_id)
        )
        record = self._to_record(advisory)
        record.sequence = (count or 0) + 1
        self.session.add(record)
        await self.session.flush()
        advisory.version = record.version_id
        self._track(advisory)
        return Result.success(advisory)

    async def list_for_application(self, loan_application_id: str) -> list[CreditAdvisory]:
        """All advisories for a loan application, newest first."""
        result = await self.session.execute(
            select(CreditAdvisoryRecord)
            .where(CreditAdvisoryRecord.loan_application_id == loan_application_id)
            .order_by(CreditAdvisoryRecord.sequence.desc())
        )
        return [self._load(r) for r in result.scalars().all()]

    async def get_latest(self, loan_application_id: str) -> Optional[CreditAdvisory]:
        advisories = await self.list_for_application(loan_application_id)
        return advisories[0] if advisories else None
