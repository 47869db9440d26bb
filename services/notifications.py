"""
Notification outbox.

Domain events are turned into `notifications` rows (one per event, keyed by
event type + event id so a redelivered event is skipped). A periodic job pushes
pending rows through a NotificationSender with bounded retries.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

from config import settings
from database import AsyncSessionLocal
from models import Notification
from schemas.base import utcnow
from schemas.events import (
    CommitteeDecisionRecorded,
    CommitteeMemberAdded,
    CommitteeReviewExpired,
    CreditAdvisoryCompleted,
    CreditAdvisoryFailed,
    DomainEvent,
    WorkflowAssigned,
    WorkflowEscalated,
    WorkflowInstanceCompleted,
    WorkflowSLABreached,
    WorkflowTransitioned,
)
from services.events import EventDispatcher

logger = logging.getLogger(__name__)

STATUS_PENDING = "pending"
STATUS_SENT = "sent"
STATUS_FAILED = "failed"


@dataclass(frozen=True)
class NotificationMessage:
    subject: str
    body: str
    recipient_role: Optional[str] = None
    recipient_user_id: Optional[str] = None


def _label(value) -> str:
    return value.value.replace("_", " ").title() if hasattr(value, "value") else str(value)


def _transitioned(e: WorkflowTransitioned) -> NotificationMessage:
    return NotificationMessage(
        subject=f"Application {e.loan_application_id} moved to {_label(e.to_status)}",
        body=(
            f"Loan application {e.loan_application_id} moved from {_label(e.from_status)} "
            f"to {_label(e.to_status)} ({_label(e.action)} by {e.performed_by_user_id}). "
            f"It is now in the {e.assigned_role} queue."
        ),
        recipient_role=e.assigned_role,
    )


def _completed(e: WorkflowInstanceCompleted) -> NotificationMessage:
    return NotificationMessage(
        subject=f"Application {e.loan_application_id} closed as {_label(e.final_status)}",
        body=f"The workflow for loan application {e.loan_application_id} completed with status {_label(e.final_status)}.",
    )


def _assigned(e: WorkflowAssigned) -> NotificationMessage:
    return NotificationMessage(
        subject=f"Application {e.loan_application_id} assigned to you",
        body=f"Loan application {e.loan_application_id} was assigned to you by {e.assigned_by_user_id}.",
        recipient_user_id=e.assigned_to_user_id,
    )


def _sla_breached(e: WorkflowSLABreached) -> NotificationMessage:
    due = e.due_at.isoformat() if e.due_at else "n/a"
    return NotificationMessage(
        subject=f"SLA breached for application {e.loan_application_id}",
        body=f"Loan application {e.loan_application_id} at {_label(e.status)} was due at {due}.",
        recipient_role=e.assigned_role,
    )


def _escalated(e: WorkflowEscalated) -> NotificationMessage:
    return NotificationMessage(
        subject=f"Application {e.loan_application_id} escalated to level {e.escalation_level}",
        body=f"Loan application {e.loan_application_id} at {_label(e.status)} was escalated: {e.reason}",
    )


def _member_added(e: CommitteeMemberAdded) -> NotificationMessage:
    return NotificationMessage(
        subject=f"Committee vote required for application {e.loan_application_id}",
        body=f"You were added as {e.role} to the committee review of loan application {e.loan_application_id}.",
        recipient_user_id=e.user_id,
    )


def _decision(e: CommitteeDecisionRecorded) -> NotificationMessage:
    return NotificationMessage(
        subject=f"Committee decision for application {e.loan_application_id}: {_label(e.decision)}",
        body=f"The committee recorded {_label(e.decision)} for loan application {e.loan_application_id}.",
    )


def _expired(e: CommitteeReviewExpired) -> NotificationMessage:
    return NotificationMessage(
        subject=f"Committee review expired for application {e.loan_application_id}",
        body=(
            f"The committee review of loan application {e.loan_application_id} passed its deadline "
            f"({e.deadline_at.isoformat()}) with {e.pending_votes} vote(s) outstanding."
        ),
    )


def _advisory_completed(e: CreditAdvisoryCompleted) -> NotificationMessage:
    recommendation = _label(e.recommendation) if e.recommendation else "None"
    body = (
        f"Credit advisory for loan application {e.loan_application_id}: score {e.overall_score} "
        f"({_label(e.overall_rating)}), recommendation {recommendation}."
    )
    if e.has_critical_red_flags:
        body += " Critical red flags present."
    return NotificationMessage(subject=f"Credit advisory ready for application {e.loan_application_id}", body=body)


def _advisory_failed(e: CreditAdvisoryFailed) -> NotificationMessage:
    return NotificationMessage(
        subject=f"Credit advisory failed for application {e.loan_application_id}",
        body=f"Advisory generation failed: {e.error_message}",
    )


MESSAGE_BUILDERS: dict[type, Callable] = {
    WorkflowTransitioned: _transitioned,
    WorkflowInstanceCompleted: _completed,
    WorkflowAssigned: _assigned,
    WorkflowSLABreached: _sla_breached,
    WorkflowEscalated: _escalated,
    CommitteeMemberAdded: _member_added,
    CommitteeDecisionRecorded: _decision,
    CommitteeReviewExpired: _expired,
    CreditAdvisoryCompleted: _advisory_completed,
    CreditAdvisoryFailed: _advisory_failed,
}


def dedup_key(event: DomainEvent) -> str:
    return f"{event.event_type}:{event.event_id}"


class NotificationSender(Protocol):
    async def send(self, notification: Notification) -> None:
        """Deliver one notification; raise on failure."""
        ...


class LoggingNotificationSender:
    """Sender that only logs; stands in until a delivery channel is configured."""

    async def send(self, notification: Notification) -> None:
        logger.info(
            "Notification %s to %s: %s",
            notification.id,
            notification.recipient_user_id or notification.recipient_role or "operations",
            notification.subject,
        )


class NotificationService:
    def __init__(self, session_factory: Optional[async_sessionmaker] = None):
        self.session_factory = session_factory or AsyncSessionLocal

    def register(self, dispatcher: EventDispatcher) -> None:
        for event_type in MESSAGE_BUILDERS:
            dispatcher.subscribe(self.handle_event, event_type)

    async def handle_event(self, event: DomainEvent) -> Optional[Notification]:
        """Write the outbox row for an event. Returns None for unmapped or already-seen events."""
        builder = MESSAGE_BUILDERS.get(type(event))
        if builder is None:
            return None
        message = builder(event)
        key = dedup_key(event)

        async with self.session_factory() as session:
            existing = await session.execute(select(Notification.id).where(Notification.dedup_key == key))
            if existing.scalar_one_or_none() is not None:
                logger.info("Skipping duplicate event %s", key)
                return None

            notification = Notification(
                id=f"ntf-{uuid.uuid4().hex[:12]}",
                dedup_key=key,
                event_type=event.event_type,
                aggregate_id=event.aggregate_id,
                loan_application_id=event.loan_application_id,
                recipient_role=message.recipient_role,
                recipient_user_id=message.recipient_user_id,
                subject=message.subject,
                body=message.body,
                payload=event.to_payload(),
                status=STATUS_PENDING,
                attempts=0,
            )
            session.add(notification)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                logger.info("Skipping duplicate event %s", key)
                return None
            return notification


async def dispatch_pending_notifications(
    sender: NotificationSender,
    session_factory: Optional[async_sessionmaker] = None,
    batch_size: Optional[int] = None,
    max_attempts: Optional[int] = None,
) -> dict[str, int]:
    """
    Send one batch of pending notifications, oldest first.
    A send failure counts an attempt; at max_attempts the row is marked failed.
    """
    session_factory = session_factory or AsyncSessionLocal
    batch_size = batch_size or settings.notification_batch_size
    max_attempts = max_attempts or settings.notification_max_attempts
    stats = {"sent": 0, "retrying": 0, "failed": 0}

    async with session_factory() as session:
        result = await session.execute(
            select(Notification)
            .where(Notification.status == STATUS_PENDING)
            .order_by(Notification.created_at, Notification.id)
            .limit(batch_size)
        )
        pending = result.scalars().all()

        for notification in pending:
            try:
                await sender.send(notification)
            except Exception as e:
                notification.attempts = (notification.attempts or 0) + 1
                notification.last_error = str(e)
                if notification.attempts >= max_attempts:
                    notification.status = STATUS_FAILED
                    stats["failed"] += 1
                    logger.error(
                        "Notification %s failed after %d attempts: %s", notification.id, notification.attempts, e
                    )
                else:
                    stats["retrying"] += 1
                    logger.warning("Notification %s send failed (attempt %d): %s", notification.id, notification.attempts, e)
            else:
                notification.attempts = (notification.attempts or 0) + 1
                notification.status = STATUS_SENT
                notification.sent_at = utcnow()
                notification.last_error = None
                stats["sent"] += 1

        await session.commit()

    if pending:
        logger.info("Notification dispatch: %s", stats)
    return stats
