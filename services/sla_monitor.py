"""
SLA sweep over open workflow instances.

An instance whose sla_due_at has passed is marked breached once. After that it is
escalated one level for every full escalation interval elapsed since the due time,
capped at the configured maximum level. Escalation level resets on the next transition.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from config import settings
from schemas.base import now_or
from schemas.result import Result
from schemas.workflow import WorkflowInstance
from services.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)

SYSTEM_USER_ID = "system"


def target_escalation_level(
    instance: WorkflowInstance,
    now: datetime,
    interval: timedelta,
    max_level: int,
) -> int:
    if instance.sla_due_at is None or interval <= timedelta(0):
        return instance.escalation_level
    elapsed = now - instance.sla_due_at
    return min(max_level, max(0, int(elapsed / interval)))


class SLAMonitor:
    def __init__(
        self,
        uow_factory: Callable[[], UnitOfWork] = UnitOfWork,
        escalation_interval: Optional[timedelta] = None,
        max_level: Optional[int] = None,
    ):
        self.uow_factory = uow_factory
        self.escalation_interval = escalation_interval or timedelta(hours=settings.sla_escalation_interval_hours)
        self.max_level = settings.max_escalation_level if max_level is None else max_level

    async def sweep(self, now: Optional[datetime] = None) -> dict[str, int]:
        now = now_or(now)
        async with self.uow_factory() as uow:
            due = await uow.instances.list_sla_due(now)

        stats = {"checked": len(due), "breached": 0, "escalated": 0, "errors": 0}
        for candidate in due:
            try:
                result = await self._process(candidate.id, now)
            except Exception:
                stats["errors"] += 1
                logger.exception("SLA check failed for workflow %s", candidate.id)
                continue
            if not result:
                stats["errors"] += 1
                logger.warning("SLA update for workflow %s rejected: %s", candidate.id, result.error)
                continue
            breached, escalations = result.value
            stats["breached"] += int(breached)
            stats["escalated"] += escalations

        if due:
            logger.info("SLA sweep: %s", stats)
        return stats

    async def _process(self, instance_id: str, now: datetime) -> Result:
        async with self.uow_factory() as uow:
            instance = await uow.instances.get(instance_id)
            if instance is None:
                return Result.not_found(f"Workflow instance {instance_id} not found")
            if not instance.is_sla_due(now):
                return Result.success((False, 0))

            newly_breached = not instance.is_sla_breached
            if newly_breached:
                instance.mark_sla_breached()

            escalations = 0
            target = target_escalation_level(instance, now, self.escalation_interval, self.max_level)
            while instance.escalation_level < target:
                escalated = instance.escalate(
                    SYSTEM_USER_ID,
                    f"SLA overdue at {instance.current_status.value} since {instance.sla_due_at.isoformat()}",
                    max_level=self.max_level,
                    now=now,
                )
                if not escalated:
                    break
                escalations += 1

            if not newly_breached and escalations == 0:
                return Result.success((False, 0))

            saved = await uow.instances.update(instance)
            if not saved:
                return saved
            committed = await uow.commit()
            if not committed:
                return committed

        if escalations:
            logger.warning(
                "Workflow %s escalated to level %d at %s",
                instance_id,
                instance.escalation_level,
                instance.current_status.value,
            )
        return Result.success((newly_breached, escalations))
