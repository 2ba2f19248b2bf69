"""
Pipeline error types.

Everything a stage can fail with inherits from PipelineError. The message of
the exception is what ends up in the job record's ``error`` field and in the
failure email, so keep messages short and user readable.
"""


class PipelineError(Exception):
    """Base exception for all pipeline failures."""
    pass


class ConfigurationError(PipelineError):
    """A required credential or setting is absent."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"{name} is not set")


class EmptyResultError(PipelineError):
    """An upstream capability returned zero usable items."""
    pass


class UpstreamError(PipelineError):
    """A network or HTTP failure while calling an external capability."""

    def __init__(self, service: str, reason: str):
        self.service = service
        self.reason = reason
        super().__init__(f"{service} request failed: {reason}")


class ResponseShapeError(PipelineError):
    """An external capability answered with an unexpected payload."""
    pass


class InvalidPayloadError(PipelineError):
    """An event payload is missing a field its topic requires."""
    pass


class JobNotFoundError(PipelineError):
    """The job record is absent from the store."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")


class InvalidStateTransitionError(PipelineError):
    """Raised when attempting an illegal job state transition."""

    def __init__(self, current_state: str, target_state: str):
        self.current_state = current_state
        self.target_state = target_state
        super().__init__(f"Invalid job state transition: {current_state} -> {target_state}")


class UndeclaredTopicError(PipelineError):
    """A stage tried to publish a topic it does not declare in ``emits``."""

    def __init__(self, publisher: str, topic: str):
        self.publisher = publisher
        self.topic = topic
        super().__init__(f"{publisher} does not declare topic {topic!r}")
