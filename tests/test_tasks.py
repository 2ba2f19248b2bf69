from unittest.mock import MagicMock

import pytest

from jobs.events import Topic
from jobs.router import celery_dispatch
from jobs.state import JobStatus
from jobs.tasks import deliver_event, submit_scheduled_job
from title_doctor.celery import setup_periodic_tasks


@pytest.fixture
def worker_pipeline(pipeline, monkeypatch):
    monkeypatch.setattr("jobs.tasks.get_pipeline", lambda: pipeline)
    return pipeline


def test_deliver_event_runs_stage_and_returns_emitted_topic(worker_pipeline, dispatcher):
    record = worker_pipeline.submit("@exampleChannel", "user@example.com")
    stage_name, topic, payload = dispatcher.pending.popleft()

    result = deliver_event.apply(args=(stage_name, topic, payload)).get()

    assert result == Topic.CHANNEL_RESOLVED
    assert worker_pipeline.jobs.get(record.job_id).status == JobStatus.CHANNEL_RESOLVED


def test_deliver_event_for_missing_job_returns_none(worker_pipeline):
    payload = {"job_id": "missing", "email": "user@example.com", "channel": "@x"}
    assert deliver_event.apply(args=("resolve_channel", Topic.SUBMIT, payload)).get() is None


def test_celery_dispatch_enqueues_task(monkeypatch):
    task = MagicMock()
    monkeypatch.setattr("jobs.tasks.deliver_event", task)

    celery_dispatch("list_videos", Topic.CHANNEL_RESOLVED, {"job_id": "job-1"})

    task.delay.assert_called_once_with("list_videos", Topic.CHANNEL_RESOLVED, {"job_id": "job-1"})


def test_scheduled_job_disabled_without_settings(worker_pipeline, dispatcher, settings):
    settings.SCHEDULED_CHANNEL = None
    settings.SCHEDULED_EMAIL = "user@example.com"

    assert submit_scheduled_job() is None
    assert not dispatcher.pending


def test_scheduled_job_submits_configured_channel(worker_pipeline, dispatcher, settings):
    settings.SCHEDULED_CHANNEL = "@exampleChannel"
    settings.SCHEDULED_EMAIL = "user@example.com"

    job_id = submit_scheduled_job()

    assert worker_pipeline.jobs.get(job_id).channel == "@exampleChannel"
    assert dispatcher.pending[0][1] == Topic.SUBMIT


def test_daily_schedule_registered_only_when_configured(settings):
    sender = MagicMock()
    settings.SCHEDULED_CHANNEL = None
    settings.SCHEDULED_EMAIL = None
    setup_periodic_tasks(sender)
    sender.add_periodic_task.assert_not_called()

    settings.SCHEDULED_CHANNEL = "@exampleChannel"
    settings.SCHEDULED_EMAIL = "user@example.com"
    setup_periodic_tasks(sender)

    sender.add_periodic_task.assert_called_once()
    assert sender.add_periodic_task.call_args.kwargs["name"] == "daily-title-doctor"
    sender.signature.assert_called_once_with("jobs.submit_scheduled_job")
