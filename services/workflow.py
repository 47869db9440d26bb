"""
Workflow orchestration: load the instance and its definition, apply the domain
operation, save with the loaded version and commit. Rejections come back as Result.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from config import settings
from schemas.enums import LoanApplicationStatus, LoanApplicationType, WorkflowAction
from schemas.result import Result
from schemas.workflow import WorkflowDefinition, WorkflowInstance
from services.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)


class WorkflowService:
    def __init__(self, uow_factory: Callable[[], UnitOfWork] = UnitOfWork, admin_role: Optional[str] = None):
        self.uow_factory = uow_factory
        self.admin_role = admin_role or settings.system_admin_role

    async def initialize_workflow(
        self,
        loan_application_id: str,
        application_type: LoanApplicationType,
        initiated_by_user_id: str,
        now: Optional[datetime] = None,
    ) -> Result:
        async with self.uow_factory() as uow:
            if await uow.instances.get_by_loan_application_id(loan_application_id) is not None:
                return Result.invalid(f"Workflow already exists for loan application {loan_application_id}")

            definition = await uow.definitions.get_active_by_type(application_type)
            if definition is None:
                return Result.not_found(f"No active workflow definition for {application_type.value} applications")

            created = WorkflowInstance.create(loan_application_id, definition, initiated_by_user_id, now=now)
            if not created:
                return created
            instance = created.value

            saved = await uow.instances.add(instance)
            if not saved:
                return saved
            committed = await uow.commit()
            if not committed:
                return committed

        logger.info(
            "Workflow %s started for loan application %s at %s",
            instance.id,
            loan_application_id,
            instance.current_status.value,
        )
        return Result.success(instance)

    async def get_instance(self, instance_id: str) -> Result:
        async with self.uow_factory() as uow:
            instance = await uow.instances.get(instance_id)
        if instance is None:
            return Result.not_found(f"Workflow instance {instance_id} not found")
        return Result.success(instance)

    async def get_by_loan_application(self, loan_application_id: str) -> Result:
        async with self.uow_factory() as uow:
            instance = await uow.instances.get_by_loan_application_id(loan_application_id)
        if instance is None:
            return Result.not_found(f"No workflow for loan application {loan_application_id}")
        return Result.success(instance)

    async def get_queue(self, role: str, user_id: Optional[str] = None) -> list[WorkflowInstance]:
        async with self.uow_factory() as uow:
            return await uow.instances.list_queue(role, user_id)

    async def get_available_actions(self, instance_id: str, user_role: str) -> Result:
        async with self.uow_factory() as uow:
            loaded = await self._load(uow, instance_id)
            if not loaded:
                return loaded
            instance, definition = loaded.value
        return Result.success(instance.available_actions(definition, user_role, self.admin_role))

    async def transition(
        self,
        instance_id: str,
        action: WorkflowAction,
        to_status: LoanApplicationStatus,
        performed_by_user_id: str,
        comment: Optional[str] = None,
        user_role: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Result:
        async with self.uow_factory() as uow:
            loaded = await self._load(uow, instance_id)
            if not loaded:
                return loaded
            instance, definition = loaded.value
            from_status = instance.current_status

            moved = instance.transition(
                definition,
                action,
                to_status,
                performed_by_user_id,
                comment=comment,
                user_role=user_role,
                admin_role=self.admin_role,
                now=now,
            )
            if not moved:
                logger.info("Transition rejected for %s: %s", instance_id, moved.error)
                return moved

            saved = await self._save(uow, instance)
            if not saved:
                return saved

        logger.info(
            "Workflow %s: %s -> %s via %s by %s",
            instance_id,
            from_status.value,
            to_status.value,
            action.value,
            performed_by_user_id,
        )
        return Result.success(instance)

    async def assign(
        self,
        instance_id: str,
        user_id: str,
        assigned_by_user_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Result:
        async with self.uow_factory() as uow:
            instance = await uow.instances.get(instance_id)
            if instance is None:
                return Result.not_found(f"Workflow instance {instance_id} not found")
            if instance.assigned_to_user_id == user_id:
                return Result.success(instance)
            assigned = instance.assign(user_id, assigned_by_user_id, now=now)
            if not assigned:
                return assigned
            return await self._save(uow, instance)

    async def unassign(self, instance_id: str, unassigned_by_user_id: str, now: Optional[datetime] = None) -> Result:
        async with self.uow_factory() as uow:
            instance = await uow.instances.get(instance_id)
            if instance is None:
                return Result.not_found(f"Workflow instance {instance_id} not found")
            unassigned = instance.unassign(unassigned_by_user_id, now=now)
            if not unassigned:
                return unassigned
            return await self._save(uow, instance)

    async def escalate(
        self,
        instance_id: str,
        escalated_by_user_id: str,
        reason: str,
        now: Optional[datetime] = None,
    ) -> Result:
        async with self.uow_factory() as uow:
            instance = await uow.instances.get(instance_id)
            if instance is None:
                return Result.not_found(f"Workflow instance {instance_id} not found")
            escalated = instance.escalate(
                escalated_by_user_id, reason, max_level=settings.max_escalation_level, now=now
            )
            if not escalated:
                return escalated
            return await self._save(uow, instance)

    async def _load(self, uow: UnitOfWork, instance_id: str) -> Result:
        instance = await uow.instances.get(instance_id)
        if instance is None:
            return Result.not_found(f"Workflow instance {instance_id} not found")
        # Instances stay on the definition revision they were started with
        definition: Optional[WorkflowDefinition] = await uow.definitions.get(instance.workflow_definition_id)
        if definition is None:
            return Result.not_found(f"Workflow definition {instance.workflow_definition_id} not found")
        return Result.success((instance, definition))

    async def _save(self, uow: UnitOfWork, instance: WorkflowInstance) -> Result:
        saved = await uow.instances.update(instance)
        if not saved:
            return saved
        committed = await uow.commit()
        if not committed:
            return committed
        return Result.success(instance)
