"""
Job lifecycle state machine.

queued -> resolving channel -> channel resolved -> retrieving videos
-> videos retrieved -> refactoring titles -> titles refactored
-> sending email -> completed

``failed`` is reachable from every non-terminal state. ``completed`` and
``failed`` are terminal and never transition again.

Events are delivered at least once, so a stage may be re-run for a job it
already worked on. The table therefore lets every in-progress state re-enter
itself and lets a stage-completed state re-enter the in-progress state of the
stage that produced it. Anything further back is a stale event.
"""

from enum import Enum

from .errors import InvalidStateTransitionError


class JobStatus(str, Enum):
    QUEUED = "queued"
    RESOLVING_CHANNEL = "resolving channel"
    CHANNEL_RESOLVED = "channel resolved"
    RETRIEVING_VIDEOS = "retrieving videos"
    VIDEOS_RETRIEVED = "videos retrieved"
    REFACTORING_TITLES = "refactoring titles"
    TITLES_REFACTORED = "titles refactored"
    SENDING_EMAIL = "sending email"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_JOB_STATES: frozenset[JobStatus] = frozenset({
    JobStatus.COMPLETED,
    JobStatus.FAILED,
})

_FORWARD: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.QUEUED: frozenset({JobStatus.RESOLVING_CHANNEL}),
    JobStatus.RESOLVING_CHANNEL: frozenset({JobStatus.RESOLVING_CHANNEL, JobStatus.CHANNEL_RESOLVED}),
    JobStatus.CHANNEL_RESOLVED: frozenset({JobStatus.RESOLVING_CHANNEL, JobStatus.RETRIEVING_VIDEOS}),
    JobStatus.RETRIEVING_VIDEOS: frozenset({JobStatus.RETRIEVING_VIDEOS, JobStatus.VIDEOS_RETRIEVED}),
    JobStatus.VIDEOS_RETRIEVED: frozenset({JobStatus.RETRIEVING_VIDEOS, JobStatus.REFACTORING_TITLES}),
    JobStatus.REFACTORING_TITLES: frozenset({JobStatus.REFACTORING_TITLES, JobStatus.TITLES_REFACTORED}),
    JobStatus.TITLES_REFACTORED: frozenset({JobStatus.REFACTORING_TITLES, JobStatus.SENDING_EMAIL}),
    JobStatus.SENDING_EMAIL: frozenset({JobStatus.SENDING_EMAIL, JobStatus.COMPLETED}),
}


def is_job_terminal(status: JobStatus) -> bool:
    return status in TERMINAL_JOB_STATES


def can_transition_job(from_status: JobStatus, to_status: JobStatus) -> bool:
    """
    Check if a job state transition is legal.

    Terminal states cannot transition to any other state, including
    themselves.
    """
    if is_job_terminal(from_status):
        return False

    if to_status == JobStatus.FAILED:
        return True

    return to_status in _FORWARD.get(from_status, frozenset())


def validate_job_transition(from_status: JobStatus, to_status: JobStatus) -> None:
    """
    Validate a job state transition.

    Raises:
        InvalidStateTransitionError: If the transition is not allowed
    """
    if not can_transition_job(from_status, to_status):
        raise InvalidStateTransitionError(from_status.value, to_status.value)
