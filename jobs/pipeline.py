"""
Pipeline engine: wires the job store, the event router and the stages.

``get_pipeline()`` returns the process-wide instance used by the API and the
Celery worker. Tests build their own with ``build_pipeline``.
"""

import uuid
from collections.abc import Iterable
from typing import Any

import structlog

from .events import JobSubmitted
from .records import JobRecord
from .router import Dispatch, EventRouter
from .stages import (
    ErrorHandlerStage,
    ImproveTitlesStage,
    ListVideosStage,
    ResolveChannelStage,
    SendEmailStage,
    Stage,
)
from .store import DjangoStateStore, JobRepository, StateStore

logger = structlog.get_logger()


class Pipeline:
    def __init__(self, jobs: JobRepository, router: EventRouter):
        self.jobs = jobs
        self.router = router
        self._stages: dict[str, Stage] = {}

    def register(self, stage: Stage) -> None:
        if stage.name in self._stages:
            raise ValueError(f"Stage '{stage.name}' is already registered")
        self._stages[stage.name] = stage
        for topic in stage.subscribes:
            self.router.subscribe(topic, stage.name)

    def stage(self, name: str) -> Stage:
        try:
            return self._stages[name]
        except KeyError:
            raise KeyError(f"Unknown stage: {name}") from None

    @property
    def stages(self) -> Iterable[Stage]:
        return self._stages.values()

    def deliver(self, stage_name: str, topic: str, payload: dict[str, Any]):
        """Run one delivery of ``topic`` on the named stage."""
        return self.stage(stage_name).handle(topic, payload)

    def submit(self, channel: str, email: str) -> JobRecord:
        """Create a queued job and publish its first event."""
        record = JobRecord.create_new(job_id=str(uuid.uuid4()), channel=channel, email=email)
        self.jobs.save(record)
        logger.info("job_queued", job_id=record.job_id, channel=channel)

        event = JobSubmitted(job_id=record.job_id, email=record.email, channel=channel)
        self.router.publish(event.topic, event.to_payload())
        return record


def build_pipeline(
    store: StateStore | None = None,
    dispatch: Dispatch | None = None,
    *,
    youtube_factory=None,
    improver_factory=None,
    notifier_factory=None,
) -> Pipeline:
    """
    Assemble the pipeline. Adapter factories default to building the real
    adapters from Django settings.
    """
    jobs = JobRepository(store if store is not None else DjangoStateStore())
    router = EventRouter(dispatch)
    pipeline = Pipeline(jobs, router)

    def _kwargs(name, factory):
        return {name: factory} if factory is not None else {}

    pipeline.register(ResolveChannelStage(jobs, router, **_kwargs("resolver_factory", youtube_factory)))
    pipeline.register(ListVideosStage(jobs, router, **_kwargs("lister_factory", youtube_factory)))
    pipeline.register(ImproveTitlesStage(jobs, router, **_kwargs("improver_factory", improver_factory)))
    pipeline.register(SendEmailStage(jobs, router, **_kwargs("notifier_factory", notifier_factory)))
    pipeline.register(ErrorHandlerStage(jobs, router, **_kwargs("notifier_factory", notifier_factory)))
    return pipeline


_pipeline_instance = None


def get_pipeline() -> Pipeline:
    """Returns the singleton pipeline instance."""
    global _pipeline_instance
    if _pipeline_instance is None:
        _pipeline_instance = build_pipeline()
    return _pipeline_instance
