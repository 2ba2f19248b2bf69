import os
from celery import Celery
from celery.schedules import crontab

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "title_doctor.settings")

celery_app = Celery("title_doctor")
celery_app.config_from_object("django.conf:settings", namespace="CELERY")
celery_app.autodiscover_tasks()


@celery_app.on_after_finalize.connect
def setup_periodic_tasks(sender, **kwargs):
    from django.conf import settings

    if settings.SCHEDULED_CHANNEL and settings.SCHEDULED_EMAIL:
        sender.add_periodic_task(
            crontab(minute=0, hour=0),
            sender.signature("jobs.submit_scheduled_job"),
            name="daily-title-doctor",
        )
