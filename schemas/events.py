"""
Domain events raised by the workflow, committee and advisory aggregates.
Aggregates only collect them; the unit of work dispatches them after a successful save.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from schemas.enums import (
    AdvisoryRecommendation,
    CommitteeDecision,
    CommitteeType,
    CommitteeVote,
    LoanApplicationStatus,
    RiskRating,
    WorkflowAction,
)


class DomainEvent(BaseModel):
    event_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    aggregate_id: str
    loan_application_id: str

    model_config = {"alias_generator": to_camel, "populate_by_name": True, "frozen": True}

    @property
    def event_type(self) -> str:
        return type(self).__name__

    def to_payload(self) -> dict[str, Any]:
        """camelCase JSON payload for downstream consumers."""
        return self.model_dump(mode="json", by_alias=True)


# --- Workflow ---


class WorkflowInstanceCreated(DomainEvent):
    initial_status: LoanApplicationStatus


class WorkflowTransitioned(DomainEvent):
    from_status: LoanApplicationStatus
    to_status: LoanApplicationStatus
    action: WorkflowAction
    performed_by_user_id: str
    assigned_role: str


class WorkflowInstanceCompleted(DomainEvent):
    final_status: LoanApplicationStatus


class WorkflowAssigned(DomainEvent):
    assigned_to_user_id: str
    assigned_by_user_id: str


class WorkflowSLABreached(DomainEvent):
    status: LoanApplicationStatus
    due_at: Optional[datetime] = None
    assigned_role: str


class WorkflowEscalated(DomainEvent):
    status: LoanApplicationStatus
    escalation_level: int
    reason: str


# --- Committee ---


class CommitteeReviewCreated(DomainEvent):
    application_number: str
    committee_type: CommitteeType
    deadline_at: datetime


class CommitteeMemberAdded(DomainEvent):
    user_id: str
    role: str


class CommitteeVoteCast(DomainEvent):
    user_id: str
    vote: CommitteeVote


class CommitteeDecisionRecorded(DomainEvent):
    decision: CommitteeDecision
    approved_amount: Optional[Decimal] = None
    approved_tenor_months: Optional[int] = None
    approved_interest_rate: Optional[Decimal] = None


class CommitteeReviewExpired(DomainEvent):
    deadline_at: datetime
    pending_votes: int


# --- Advisory ---


class CreditAdvisoryCompleted(DomainEvent):
    overall_score: Decimal
    overall_rating: RiskRating
    recommendation: Optional[AdvisoryRecommendation] = None
    has_critical_red_flags: bool


class CreditAdvisoryFailed(DomainEvent):
    error_message: str
