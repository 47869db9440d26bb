"""Periodic jobs run by run.py."""
from __future__ import annotations

from config import settings
from services.committee import CommitteeService
from services.events import EventDispatcher, dispatcher
from services.notifications import LoggingNotificationSender, NotificationService, dispatch_pending_notifications
from services.scheduler import register_job
from services.sla_monitor import SLAMonitor

notification_sender = LoggingNotificationSender()


def wire_notifications(target: EventDispatcher = dispatcher) -> NotificationService:
    service = NotificationService()
    service.register(target)
    return service


@register_job("sla_sweep", lambda: settings.sla_sweep_interval_seconds)
async def sla_sweep():
    return await SLAMonitor().sweep()


@register_job("committee_expiry", lambda: settings.committee_sweep_interval_seconds)
async def committee_expiry():
    return await CommitteeService().expire_overdue_reviews()


@register_job("notification_dispatch", lambda: settings.notification_dispatch_interval_seconds)
async def notification_dispatch():
    return await dispatch_pending_notifications(notification_sender)
