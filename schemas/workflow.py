"""
Workflow definition and per-application workflow instance.

A definition is a static state machine over LoanApplicationStatus: stages carry the
assigned role and SLA, transitions carry the action and required role.
An instance tracks one loan application's position in that machine.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from pydantic import BaseModel, Field

from schemas.base import AggregateRoot, is_blank, new_id, now_or
from schemas.enums import LoanApplicationStatus, LoanApplicationType, WorkflowAction
from schemas.events import (
    WorkflowAssigned,
    WorkflowEscalated,
    WorkflowInstanceCompleted,
    WorkflowInstanceCreated,
    WorkflowSLABreached,
    WorkflowTransitioned,
)
from schemas.result import Result

ACTION_DISPLAY_NAMES = {
    WorkflowAction.SUBMIT: "Submit",
    WorkflowAction.APPROVE: "Approve",
    WorkflowAction.REJECT: "Reject",
    WorkflowAction.RETURN: "Return for Correction",
    WorkflowAction.ESCALATE: "Escalate",
    WorkflowAction.MOVE_TO_NEXT_STAGE: "Move to Next Stage",
    WorkflowAction.REQUEST_INFO: "Request Information",
    WorkflowAction.OVERRIDE: "Override Decision",
}


def action_display_name(action: WorkflowAction) -> str:
    return ACTION_DISPLAY_NAMES.get(action) or action.value.replace("_", " ").title()


class WorkflowStage(BaseModel):
    status: LoanApplicationStatus
    display_name: str
    description: str = ""
    assigned_role: str
    sla_hours: int = Field(0, ge=0)
    sort_order: int
    requires_comment: bool = False
    is_terminal: bool = False

    @property
    def sla(self) -> timedelta:
        return timedelta(hours=self.sla_hours)


class WorkflowTransition(BaseModel):
    from_status: LoanApplicationStatus
    to_status: LoanApplicationStatus
    action: WorkflowAction
    required_role: str
    requires_comment: bool = False
    condition_expression: Optional[str] = None


class AvailableAction(BaseModel):
    action: WorkflowAction
    to_status: LoanApplicationStatus
    requires_comment: bool
    display_name: str


class WorkflowDefinition(AggregateRoot):
    name: str
    description: str = ""
    application_type: LoanApplicationType
    is_active: bool = True
    revision: int = 1
    is_published: bool = False
    stages: list[WorkflowStage] = Field(default_factory=list)
    transitions: list[WorkflowTransition] = Field(default_factory=list)

    @classmethod
    def create(
        cls,
        name: str,
        application_type: LoanApplicationType,
        description: str = "",
    ) -> Result:
        if is_blank(name):
            return Result.invalid("Workflow name is required")
        return Result.success(
            cls(
                id=new_id("wfd"),
                name=name,
                description=description,
                application_type=application_type,
            )
        )

    def add_stage(
        self,
        status: LoanApplicationStatus,
        display_name: str,
        assigned_role: str,
        sla_hours: int,
        sort_order: int,
        description: str = "",
        requires_comment: bool = False,
        is_terminal: bool = False,
    ) -> Result:
        if self.is_published:
            return Result.invalid_state("Published workflow definitions cannot be modified")
        if self.get_stage(status) is not None:
            return Result.invalid(f"Stage for status {status.value} already exists")
        if is_blank(display_name):
            return Result.invalid("Display name is required")
        if is_blank(assigned_role):
            return Result.invalid("Assigned role is required")
        if sla_hours < 0:
            return Result.invalid("SLA hours cannot be negative")

        stage = WorkflowStage(
            status=status,
            display_name=display_name,
            description=description,
            assigned_role=assigned_role,
            sla_hours=sla_hours,
            sort_order=sort_order,
            requires_comment=requires_comment,
            is_terminal=is_terminal,
        )
        self.stages.append(stage)
        self.stages.sort(key=lambda s: s.sort_order)
        return Result.success(stage)

    def add_transition(
        self,
        from_status: LoanApplicationStatus,
        to_status: LoanApplicationStatus,
        action: WorkflowAction,
        required_role: str,
        requires_comment: bool = False,
        condition_expression: Optional[str] = None,
    ) -> Result:
        if self.is_published:
            return Result.invalid_state("Published workflow definitions cannot be modified")
        if self.get_stage(from_status) is None:
            return Result.not_found(f"From stage {from_status.value} not found")
        if self.get_stage(to_status) is None:
            return Result.not_found(f"To stage {to_status.value} not found")
        if is_blank(required_role):
            return Result.invalid("Required role is required")
        if self.get_transition(from_status, to_status, action) is not None:
            return Result.invalid(
                f"Transition from {from_status.value} to {to_status.value} via {action.value} already exists"
            )

        transition = WorkflowTransition(
            from_status=from_status,
            to_status=to_status,
            action=action,
            required_role=required_role,
            requires_comment=requires_comment,
            condition_expression=condition_expression,
        )
        self.transitions.append(transition)
        return Result.success(transition)

    def get_stage(self, status: LoanApplicationStatus) -> Optional[WorkflowStage]:
        return next((s for s in self.stages if s.status == status), None)

    @property
    def initial_stage(self) -> Optional[WorkflowStage]:
        return min(self.stages, key=lambda s: s.sort_order, default=None)

    def get_available_transitions(self, current_status: LoanApplicationStatus) -> list[WorkflowTransition]:
        return [t for t in self.transitions if t.from_status == current_status]

    def get_transition(
        self,
        from_status: LoanApplicationStatus,
        to_status: LoanApplicationStatus,
        action: WorkflowAction,
    ) -> Optional[WorkflowTransition]:
        return next(
            (
                t
                for t in self.transitions
                if t.from_status == from_status and t.to_status == to_status and t.action == action
            ),
            None,
        )

    def validate_configuration(self) -> list[str]:
        """Collect configuration errors; an empty list means the definition is publishable."""
        errors: list[str] = []
        if not self.stages:
            errors.append("Workflow has no stages")
        statuses = {s.status for s in self.stages}
        seen_pairs: set[tuple[LoanApplicationStatus, WorkflowAction]] = set()
        for t in self.transitions:
            if t.from_status not in statuses:
                errors.append(f"Transition source {t.from_status.value} is not a stage")
            if t.to_status not in statuses:
                errors.append(f"Transition target {t.to_status.value} is not a stage")
            pair = (t.from_status, t.action)
            if pair in seen_pairs:
                errors.append(f"Ambiguous transitions from {t.from_status.value} via {t.action.value}")
            seen_pairs.add(pair)
        for stage in self.stages:
            outgoing = self.get_available_transitions(stage.status)
            if stage.is_terminal and outgoing:
                errors.append(f"Terminal stage {stage.status.value} has outgoing transitions")
            if not stage.is_terminal and not outgoing:
                errors.append(f"Stage {stage.status.value} has no outgoing transitions")
        return errors

    def publish(self) -> Result:
        if self.is_published:
            return Result.success(self)
        errors = self.validate_configuration()
        if errors:
            return Result.invalid("; ".join(errors))
        self.is_published = True
        return Result.success(self)

    def deactivate(self) -> None:
        self.is_active = False

    def activate(self) -> None:
        self.is_active = True


def role_permits(transition: WorkflowTransition, user_role: str, admin_role: Optional[str] = None) -> bool:
    return transition.required_role == user_role or (admin_role is not None and user_role == admin_role)


class WorkflowTransitionLog(BaseModel):
    from_status: Optional[LoanApplicationStatus] = None
    to_status: LoanApplicationStatus
    action: WorkflowAction
    performed_by_user_id: str
    performed_at: datetime
    comment: Optional[str] = None
    # Seconds spent in the stage being left
    duration_in_previous_stage: Optional[float] = None


class WorkflowInstance(AggregateRoot):
    loan_application_id: str
    workflow_definition_id: str
    current_status: LoanApplicationStatus
    current_stage_display_name: str = ""

    assigned_role: str = ""
    assigned_to_user_id: Optional[str] = None
    assigned_at: Optional[datetime] = None

    entered_current_stage_at: datetime
    sla_due_at: Optional[datetime] = None
    is_sla_breached: bool = False
    escalation_level: int = 0

    is_completed: bool = False
    completed_at: Optional[datetime] = None
    final_status: Optional[LoanApplicationStatus] = None

    transition_history: list[WorkflowTransitionLog] = Field(default_factory=list)

    @classmethod
    def create(
        cls,
        loan_application_id: str,
        definition: WorkflowDefinition,
        initiated_by_user_id: str,
        now: Optional[datetime] = None,
    ) -> Result:
        if is_blank(loan_application_id):
            return Result.invalid("Loan application ID is required")
        if not definition.is_published:
            return Result.invalid_state(f"Workflow definition {definition.name} has not been published")
        stage = definition.initial_stage
        if stage is None:
            return Result.not_found(f"Workflow definition {definition.name} has no stages")

        now = now_or(now)
        instance = cls(
            id=new_id("wfi"),
            loan_application_id=loan_application_id,
            workflow_definition_id=definition.id,
            current_status=stage.status,
            current_stage_display_name=stage.display_name,
            assigned_role=stage.assigned_role,
            entered_current_stage_at=now,
            sla_due_at=_sla_due(now, stage.sla_hours),
        )
        instance.transition_history.append(
            WorkflowTransitionLog(
                from_status=None,
                to_status=stage.status,
                action=WorkflowAction.CREATE,
                performed_by_user_id=initiated_by_user_id,
                performed_at=now,
                comment="Workflow initiated",
            )
        )
        instance.add_event(
            WorkflowInstanceCreated(
                aggregate_id=instance.id,
                loan_application_id=loan_application_id,
                initial_status=stage.status,
            )
        )
        return Result.success(instance)

    def available_actions(
        self,
        definition: WorkflowDefinition,
        user_role: str,
        admin_role: Optional[str] = None,
    ) -> list[AvailableAction]:
        if self.is_completed:
            return []
        return [
            AvailableAction(
                action=t.action,
                to_status=t.to_status,
                requires_comment=t.requires_comment,
                display_name=action_display_name(t.action),
            )
            for t in definition.get_available_transitions(self.current_status)
            if role_permits(t, user_role, admin_role)
        ]

    def transition(
        self,
        definition: WorkflowDefinition,
        action: WorkflowAction,
        to_status: LoanApplicationStatus,
        performed_by_user_id: str,
        comment: Optional[str] = None,
        user_role: Optional[str] = None,
        admin_role: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Result:
        """
        Move to to_status via action. All checks run before any field changes.
        user_role is optional; when given it must match the transition's required role
        (or admin_role).
        """
        if self.is_completed:
            return Result.invalid_state(
                f"Workflow is already completed with status {self.current_status.value}"
            )

        transition = definition.get_transition(self.current_status, to_status, action)
        if transition is None:
            return Result.invalid_state(
                f"Transition from {self.current_status.value} to {to_status.value} "
                f"via {action.value} is not allowed"
            )
        if user_role is not None and not role_permits(transition, user_role, admin_role):
            return Result.invalid_state(
                f"Role {user_role} is not authorized for this transition. Required: {transition.required_role}"
            )
        if transition.requires_comment and is_blank(comment):
            return Result.invalid("Comment is required for this transition")

        target = definition.get_stage(to_status)
        if target is None:
            return Result.not_found(f"Target stage {to_status.value} not found")

        now = now_or(now)
        from_status = self.current_status
        self.transition_history.append(
            WorkflowTransitionLog(
                from_status=from_status,
                to_status=to_status,
                action=action,
                performed_by_user_id=performed_by_user_id,
                performed_at=now,
                comment=comment,
                duration_in_previous_stage=(now - self.entered_current_stage_at).total_seconds(),
            )
        )

        if to_status != from_status:
            self.assigned_to_user_id = None
            self.assigned_at = None
        self.current_status = to_status
        self.current_stage_display_name = target.display_name
        self.assigned_role = target.assigned_role
        self.entered_current_stage_at = now
        self.sla_due_at = _sla_due(now, target.sla_hours)
        self.is_sla_breached = False
        self.escalation_level = 0

        if target.is_terminal:
            self.is_completed = True
            self.completed_at = now
            self.final_status = to_status
            self.add_event(
                WorkflowInstanceCompleted(
                    aggregate_id=self.id,
                    loan_application_id=self.loan_application_id,
                    final_status=to_status,
                )
            )
        else:
            self.add_event(
                WorkflowTransitioned(
                    aggregate_id=self.id,
                    loan_application_id=self.loan_application_id,
                    from_status=from_status,
                    to_status=to_status,
                    action=action,
                    performed_by_user_id=performed_by_user_id,
                    assigned_role=target.assigned_role,
                )
            )
        return Result.success(self)

    def assign(self, user_id: str, assigned_by_user_id: Optional[str] = None, now: Optional[datetime] = None) -> Result:
        if is_blank(user_id):
            return Result.invalid("User ID is required")
        if self.is_completed:
            return Result.invalid_state("Cannot assign completed workflow")
        if self.assigned_to_user_id == user_id:
            return Result.success(self)

        now = now_or(now)
        by_user = assigned_by_user_id or user_id
        self.assigned_to_user_id = user_id
        self.assigned_at = now
        self.transition_history.append(
            WorkflowTransitionLog(
                from_status=self.current_status,
                to_status=self.current_status,
                action=WorkflowAction.ASSIGN,
                performed_by_user_id=by_user,
                performed_at=now,
                comment=f"Assigned to user {user_id}",
            )
        )
        self.add_event(
            WorkflowAssigned(
                aggregate_id=self.id,
                loan_application_id=self.loan_application_id,
                assigned_to_user_id=user_id,
                assigned_by_user_id=by_user,
            )
        )
        return Result.success(self)

    def unassign(self, unassigned_by_user_id: str, now: Optional[datetime] = None) -> Result:
        if self.is_completed:
            return Result.invalid_state("Cannot unassign completed workflow")
        if self.assigned_to_user_id is None:
            return Result.invalid_state("Workflow is not assigned to anyone")

        previous = self.assigned_to_user_id
        self.assigned_to_user_id = None
        self.assigned_at = None
        self.transition_history.append(
            WorkflowTransitionLog(
                from_status=self.current_status,
                to_status=self.current_status,
                action=WorkflowAction.UNASSIGN,
                performed_by_user_id=unassigned_by_user_id,
                performed_at=now_or(now),
                comment=f"Unassigned from user {previous}",
            )
        )
        return Result.success(self)

    def is_sla_due(self, now: Optional[datetime] = None) -> bool:
        if self.is_completed or self.sla_due_at is None:
            return False
        return now_or(now) >= self.sla_due_at

    def mark_sla_breached(self) -> Result:
        if self.is_completed:
            return Result.invalid_state("Cannot breach SLA on completed workflow")
        if self.is_sla_breached:
            return Result.success(self)

        self.is_sla_breached = True
        self.add_event(
            WorkflowSLABreached(
                aggregate_id=self.id,
                loan_application_id=self.loan_application_id,
                status=self.current_status,
                due_at=self.sla_due_at,
                assigned_role=self.assigned_role,
            )
        )
        return Result.success(self)

    def escalate(
        self,
        escalated_by_user_id: str,
        reason: str,
        max_level: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Result:
        if self.is_completed:
            return Result.invalid_state("Cannot escalate completed workflow")
        if is_blank(reason):
            return Result.invalid("Escalation reason is required")
        if max_level is not None and self.escalation_level >= max_level:
            return Result.invalid_state(f"Workflow is already at maximum escalation level {max_level}")

        self.escalation_level += 1
        self.transition_history.append(
            WorkflowTransitionLog(
                from_status=self.current_status,
                to_status=self.current_status,
                action=WorkflowAction.ESCALATE,
                performed_by_user_id=escalated_by_user_id,
                performed_at=now_or(now),
                comment=reason,
            )
        )
        self.add_event(
            WorkflowEscalated(
                aggregate_id=self.id,
                loan_application_id=self.loan_application_id,
                status=self.current_status,
                escalation_level=self.escalation_level,
                reason=reason,
            )
        )
        return Result.success(self)

    def time_in_current_stage(self, now: Optional[datetime] = None) -> timedelta:
        return now_or(now) - self.entered_current_stage_at

    def remaining_sla(self, now: Optional[datetime] = None) -> Optional[timedelta]:
        if self.sla_due_at is None:
            return None
        remaining = self.sla_due_at - now_or(now)
        return remaining if remaining > timedelta(0) else timedelta(0)


def _sla_due(entered_at: datetime, sla_hours: int) -> Optional[datetime]:
    # Stages with zero SLA hours carry no due time
    return entered_at + timedelta(hours=sla_hours) if sla_hours > 0 else None
