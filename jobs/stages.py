"""
Stage handlers.

Every pipeline stage follows the same protocol:

1. read ``job_id`` and ``email`` from the raw payload before anything else,
2. load the job record and write the stage's in-progress status,
3. call its capability adapter,
4. on success merge the result, write the stage-completed status and emit
   the success topic,
5. on failure write ``failed`` plus the error message and emit the error
   topic, or only log when the job cannot be identified or no longer exists.

Each invocation emits at most one topic. Adapters are built inside the
invocation so that a missing credential fails the job like any other error.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

import structlog

from .ai import TitleImprover
from .emails import failure_subject, render_failure_email, render_results_email, results_subject
from .errors import EmptyResultError, JobNotFoundError, ResponseShapeError
from .events import (
    ChannelFailed,
    ChannelResolved,
    EmailFailed,
    EmailSent,
    ErrorNotified,
    Event,
    JobSubmitted,
    StageFailed,
    TitlesFailed,
    TitlesReady,
    Topic,
    VideosFailed,
    VideosRetrieved,
    parse_event,
)
from .mail import Notifier, build_notifier
from .records import ImprovedTitle, JobRecord
from .router import EventRouter
from .state import JobStatus, can_transition_job
from .store import JobRepository
from .youtube import YouTubeClient

logger = structlog.get_logger()

MAX_VIDEOS = 5


def error_message(exc: BaseException) -> str:
    """Text stored in the record and mailed to the user; never empty."""
    return str(exc) or exc.__class__.__name__


class Stage(ABC):
    name: str = ""
    subscribes: tuple[str, ...] = ()
    emits: tuple[str, ...] = ()

    def __init__(self, jobs: JobRepository, router: EventRouter):
        self.jobs = jobs
        self.router = router

    def emit(self, event: Event) -> None:
        self.router.publish(event.topic, event.to_payload(), publisher=self)

    @abstractmethod
    def handle(self, topic: str, payload: dict[str, Any] | None) -> Event | None:
        """Process one delivery. Returns the emitted event, if any."""


class PipelineStage(Stage):
    event_type: type[Event] = Event
    failure_type: type[StageFailed] = StageFailed
    in_progress: JobStatus = JobStatus.QUEUED
    done: JobStatus = JobStatus.QUEUED

    @abstractmethod
    def run(self, event: Event, record: JobRecord) -> Event:
        """Call the capability and return the success event."""

    def apply(self, record: JobRecord, outcome: Event) -> None:
        """Merge the success event into the record and move to ``done``."""
        record.advance(self.done)

    def handle(self, topic: str, payload: dict[str, Any] | None) -> Event | None:
        """Process one delivery. Returns the emitted event, if any."""
        payload = payload or {}
        job_id = payload.get("job_id")
        email = payload.get("email")
        log = logger.bind(stage=self.name, topic=topic, job_id=job_id)

        try:
            event = self.event_type.from_payload(payload)

            record = self.jobs.get_or_raise(event.job_id)
            if not can_transition_job(record.status, self.in_progress):
                log.warning("stale_event_skipped", status=record.status.value)
                return None

            record.advance(self.in_progress)
            self.jobs.save(record)
            log.info("stage_started")

            outcome = self.run(event, record)

            # merge into whatever is stored now, not the copy read at start
            current = self.jobs.get_or_raise(event.job_id)
            if not can_transition_job(current.status, self.done):
                log.warning("stale_result_discarded", status=current.status.value)
                return None
            self.apply(current, outcome)
            self.jobs.save(current)
        except JobNotFoundError:
            log.error("job_not_found")
            return None
        except Exception as exc:
            message = error_message(exc)
            log.error("stage_failed", error=message, error_type=exc.__class__.__name__)
            return self.fail(job_id, email, message)

        log.info("stage_completed", status=current.status.value)
        self.emit(outcome)
        return outcome

    def fail(self, job_id: str | None, email: str | None, message: str) -> Event | None:
        log = logger.bind(stage=self.name, job_id=job_id)
        if not job_id or not email:
            log.error("failure_not_reportable", reason="missing job_id or email")
            return None

        try:
            record = self.jobs.get_or_raise(job_id)
        except JobNotFoundError:
            log.error("job_not_found")
            return None
        if not can_transition_job(record.status, JobStatus.FAILED):
            log.warning("failure_on_terminal_job", status=record.status.value)
            return None

        record.fail(message)
        self.jobs.save(record)

        failure = self.failure_type(job_id=job_id, email=email, error=message)
        self.emit(failure)
        return failure


class ResolveChannelStage(PipelineStage):
    name = "resolve_channel"
    subscribes = (Topic.SUBMIT,)
    emits = (Topic.CHANNEL_RESOLVED, Topic.CHANNEL_ERROR)
    event_type = JobSubmitted
    failure_type = ChannelFailed
    in_progress = JobStatus.RESOLVING_CHANNEL
    done = JobStatus.CHANNEL_RESOLVED

    def __init__(self, jobs, router, resolver_factory: Callable[[], YouTubeClient] = YouTubeClient.from_settings):
        super().__init__(jobs, router)
        self.resolver_factory = resolver_factory

    def run(self, event: JobSubmitted, record: JobRecord) -> ChannelResolved:
        resolver = self.resolver_factory()
        channel = event.channel.strip()
        query = channel[1:] if channel.startswith("@") else channel

        match = resolver.search_channel(query) if query else None
        if match is None:
            raise EmptyResultError("No channel found")

        return ChannelResolved(
            job_id=event.job_id,
            email=event.email,
            channel_id=match.channel_id,
            channel_name=match.channel_name,
        )

    def apply(self, record: JobRecord, outcome: ChannelResolved) -> None:
        record.channel_id = outcome.channel_id
        record.channel_name = outcome.channel_name
        record.advance(self.done)


class ListVideosStage(PipelineStage):
    name = "list_videos"
    subscribes = (Topic.CHANNEL_RESOLVED,)
    emits = (Topic.VIDEOS_RETRIEVED, Topic.VIDEOS_ERROR)
    event_type = ChannelResolved
    failure_type = VideosFailed
    in_progress = JobStatus.RETRIEVING_VIDEOS
    done = JobStatus.VIDEOS_RETRIEVED

    def __init__(self, jobs, router, lister_factory: Callable[[], YouTubeClient] = YouTubeClient.from_settings):
        super().__init__(jobs, router)
        self.lister_factory = lister_factory

    def run(self, event: ChannelResolved, record: JobRecord) -> VideosRetrieved:
        lister = self.lister_factory()
        videos = lister.list_recent(event.channel_id, limit=MAX_VIDEOS)
        if not videos:
            raise EmptyResultError("No videos found")

        return VideosRetrieved(
            job_id=event.job_id,
            email=event.email,
            channel_id=event.channel_id,
            channel_name=event.channel_name,
            videos=list(videos[:MAX_VIDEOS]),
        )

    def apply(self, record: JobRecord, outcome: VideosRetrieved) -> None:
        record.videos = list(outcome.videos)
        record.advance(self.done)


class ImproveTitlesStage(PipelineStage):
    name = "improve_titles"
    subscribes = (Topic.VIDEOS_RETRIEVED,)
    emits = (Topic.TITLES_READY, Topic.TITLES_ERROR)
    event_type = VideosRetrieved
    failure_type = TitlesFailed
    in_progress = JobStatus.REFACTORING_TITLES
    done = JobStatus.TITLES_REFACTORED

    def __init__(self, jobs, router, improver_factory: Callable[[], TitleImprover] = TitleImprover.from_settings):
        super().__init__(jobs, router)
        self.improver_factory = improver_factory

    def run(self, event: VideosRetrieved, record: JobRecord) -> TitlesReady:
        improver = self.improver_factory()
        videos = event.videos
        suggestions = improver.improve([v.title for v in videos], event.channel_name)
        if len(suggestions) != len(videos):
            raise ResponseShapeError(
                f"Invalid response format: expected {len(videos)} titles, got {len(suggestions)}"
            )

        # position i answers video i; url and original always come from our own list
        improved = [
            ImprovedTitle(
                original=video.title,
                improved=suggestion.improved,
                rationale=suggestion.rationale,
                url=video.url,
            )
            for video, suggestion in zip(videos, suggestions)
        ]
        return TitlesReady(
            job_id=event.job_id,
            email=event.email,
            channel_name=event.channel_name,
            improved_titles=improved,
        )

    def apply(self, record: JobRecord, outcome: TitlesReady) -> None:
        record.improved_titles = list(outcome.improved_titles)
        record.advance(self.done)


class SendEmailStage(PipelineStage):
    name = "send_email"
    subscribes = (Topic.TITLES_READY,)
    emits = (Topic.EMAIL_SENT, Topic.EMAIL_ERROR)
    event_type = TitlesReady
    failure_type = EmailFailed
    in_progress = JobStatus.SENDING_EMAIL
    done = JobStatus.COMPLETED

    def __init__(self, jobs, router, notifier_factory: Callable[[], Notifier] = build_notifier):
        super().__init__(jobs, router)
        self.notifier_factory = notifier_factory

    def run(self, event: TitlesReady, record: JobRecord) -> EmailSent:
        notifier = self.notifier_factory()
        html = render_results_email(event.channel_name, event.improved_titles)
        email_id = notifier.send_email(event.email, results_subject(event.channel_name), html)
        logger.info("results_email_sent", job_id=event.job_id, email_id=email_id)

        return EmailSent(
            job_id=event.job_id,
            email=event.email,
            channel_name=event.channel_name,
            email_id=email_id,
        )

    def apply(self, record: JobRecord, outcome: EmailSent) -> None:
        record.complete(outcome.email_id)


class ErrorHandlerStage(Stage):
    """
    Terminal sink for every stage's error topic.

    Sends the failure email and emits ``yt.error.notified``. It never touches
    the job record; the failing stage has already stored ``failed``. A
    notification failure is logged and dropped.
    """

    name = "error_handler"
    subscribes = (Topic.CHANNEL_ERROR, Topic.VIDEOS_ERROR, Topic.TITLES_ERROR, Topic.EMAIL_ERROR)
    emits = (Topic.ERROR_NOTIFIED,)

    def __init__(self, jobs, router, notifier_factory: Callable[[], Notifier] = build_notifier):
        super().__init__(jobs, router)
        self.notifier_factory = notifier_factory

    def handle(self, topic: str, payload: dict[str, Any] | None) -> Event | None:
        payload = payload or {}
        log = logger.bind(stage=self.name, topic=topic, job_id=payload.get("job_id"))
        log.error("pipeline_error_received", error=payload.get("error"))

        try:
            failure = parse_event(topic, payload)
            notifier = self.notifier_factory()
            email_id = notifier.send_email(failure.email, failure_subject(), render_failure_email(failure.error))
            notified = ErrorNotified(job_id=failure.job_id, email=failure.email, email_id=email_id)
            self.emit(notified)
        except Exception as exc:
            log.error("error_notification_failed", error=str(exc), error_type=exc.__class__.__name__)
            return None

        log.info("error_notified", email_id=email_id)
        return notified
