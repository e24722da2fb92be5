"""Celery tasks for notification delivery.

Provides async task processing for:
- In-app notifications for workflow events
- Webhook delivery with retries
- Periodic permit start/end reminders
- Periodic closing of permits past their end time
"""

from typing import Any, Dict, List, Optional
import logging

import httpx
from celery import Celery, shared_task

from worksafe.common.logger import setup_logger
from worksafe.db.session import SessionLocal
from worksafe.services.notifications import NotificationService
from worksafe.core.permits import CeleryNotificationSink, PermitWorkflow
from worksafe.core.config import get_settings

settings = get_settings()
setup_logger("worksafe", settings)
logger = logging.getLogger(__name__)

# Initialize Celery
celery_app = Celery(
    'worksafe',
    broker=settings.celery_broker,
    backend=settings.celery_backend,
)

celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
    task_routes={
        'worksafe.workers.notification_tasks.deliver_notification': {'queue': 'notifications'},
        'worksafe.workers.notification_tasks.deliver_webhook': {'queue': 'notifications'},
    },
    task_default_queue='default',
    beat_schedule={
        'send-permit-reminders': {
            'task': 'worksafe.workers.notification_tasks.send_permit_reminders',
            'schedule': 60.0,
        },
        'close-expired-permits': {
            'task': 'worksafe.workers.notification_tasks.close_expired_permits',
            'schedule': 60.0,
        },
    },
)


@shared_task(name='worksafe.workers.notification_tasks.deliver_notification')
def deliver_notification(payload: Dict[str, Any]) -> List[str]:
    """
    Record in-app notifications for a workflow event and queue the webhook.

    Args:
        payload: Serialized workflow event

    Returns:
        IDs of the notifications created
    """
    db = SessionLocal()
    try:
        ids = NotificationService(db).deliver(payload)
    finally:
        db.close()

    if settings.webhook_url:
        deliver_webhook.delay(payload)
    return ids


@shared_task(
    bind=True,
    name='worksafe.workers.notification_tasks.deliver_webhook',
    max_retries=settings.webhook_max_retries,
    default_retry_delay=60,
)
def deliver_webhook(self, payload: Dict[str, Any]) -> Optional[str]:
    """Post a workflow event to the configured webhook, retrying on HTTP errors."""
    db = SessionLocal()
    try:
        return NotificationService(db).send_webhook(payload)
    except httpx.HTTPError as e:
        logger.warning(f"Webhook delivery failed for {payload.get('event_type')}: {e}")
        raise self.retry(exc=e)
    finally:
        db.close()


@shared_task(name='worksafe.workers.notification_tasks.send_permit_reminders')
def send_permit_reminders() -> Dict[str, Any]:
    """Periodic task: remind creators of permits about to start or end."""
    db = SessionLocal()
    try:
        count = NotificationService(db).send_due_reminders()
        return {"sent": count}
    except Exception:
        logger.exception("Permit reminder run failed")
        raise
    finally:
        db.close()


@shared_task(name='worksafe.workers.notification_tasks.close_expired_permits')
def close_expired_permits() -> Dict[str, Any]:
    """Periodic task: close running permits whose work window has ended."""
    db = SessionLocal()
    try:
        closed = PermitWorkflow(db, sink=CeleryNotificationSink()).close_expired_permits()
        return {"closed": [permit.serial for permit in closed]}
    except Exception:
        logger.exception("Permit expiry run failed")
        raise
    finally:
        db.close()
