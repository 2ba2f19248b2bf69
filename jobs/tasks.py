import structlog
from celery import shared_task
from django.conf import settings

from .pipeline import get_pipeline

logger = structlog.get_logger()


@shared_task(bind=True, name="jobs.deliver_event", acks_late=True, max_retries=0)
def deliver_event(self, stage_name: str, topic: str, payload: dict):
    """
    Run one event delivery on a stage.

    Stages turn their own failures into the error protocol, so nothing is
    retried here; an exception only escapes for broker or programming errors.
    """
    log = logger.bind(stage=stage_name, topic=topic, job_id=payload.get("job_id"), task_id=self.request.id)
    log.debug("delivery_started")
    emitted = get_pipeline().deliver(stage_name, topic, payload)
    log.debug("delivery_finished", emitted=emitted.topic if emitted is not None else None)
    return emitted.topic if emitted is not None else None


@shared_task(name="jobs.submit_scheduled_job")
def submit_scheduled_job():
    """Periodic submission for the configured channel (see ``SCHEDULED_*`` settings)."""
    if not settings.SCHEDULED_CHANNEL or not settings.SCHEDULED_EMAIL:
        logger.info("scheduled_job_disabled")
        return None

    record = get_pipeline().submit(settings.SCHEDULED_CHANNEL, settings.SCHEDULED_EMAIL)
    logger.info("scheduled_job_submitted", job_id=record.job_id)
    return record.job_id
