"""
Topics and their payload types.

Every topic has exactly one payload class. On the wire a payload is a flat
JSON object; ``from_payload`` checks that the fields the topic needs are
present and builds the typed event.
"""

from dataclasses import dataclass, fields
from collections.abc import Callable
from typing import Any, ClassVar

from .errors import InvalidPayloadError
from .records import ImprovedTitle, Video


class Topic:
    SUBMIT = "yt.submit"
    CHANNEL_RESOLVED = "yt.channel.resolved"
    CHANNEL_ERROR = "yt.channel.error"
    VIDEOS_RETRIEVED = "yt.videos.retrieved"
    VIDEOS_ERROR = "yt.videos.error"
    TITLES_READY = "yt.ai.title.ready"
    TITLES_ERROR = "yt.ai.title.error"
    EMAIL_SENT = "yt.email.sent"
    EMAIL_ERROR = "yt.email.error"
    ERROR_NOTIFIED = "yt.error.notified"


@dataclass(frozen=True)
class Event:
    topic: ClassVar[str] = ""
    # field name -> converter applied to each item of a list field
    nested: ClassVar[dict[str, Callable[[dict[str, Any]], Any]]] = {}

    job_id: str
    email: str

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "Event":
        """
        Raises:
            InvalidPayloadError: If a field is missing or malformed
        """
        values = {}
        for f in fields(cls):
            value = payload.get(f.name)
            if value is None or value == "":
                raise InvalidPayloadError(f"Event {cls.topic} is missing '{f.name}'")
            convert = cls.nested.get(f.name)
            if convert is not None:
                try:
                    value = [convert(item) for item in value]
                except (KeyError, TypeError) as exc:
                    raise InvalidPayloadError(f"Event {cls.topic} has malformed '{f.name}': {exc}") from exc
            values[f.name] = value
        return cls(**values)

    def to_payload(self) -> dict[str, Any]:
        payload = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name in self.nested:
                value = [item.to_dict() for item in value]
            payload[f.name] = value
        return payload


@dataclass(frozen=True)
class JobSubmitted(Event):
    topic: ClassVar[str] = Topic.SUBMIT

    channel: str


@dataclass(frozen=True)
class ChannelResolved(Event):
    topic: ClassVar[str] = Topic.CHANNEL_RESOLVED

    channel_id: str
    channel_name: str


@dataclass(frozen=True)
class VideosRetrieved(Event):
    topic: ClassVar[str] = Topic.VIDEOS_RETRIEVED
    nested: ClassVar[dict[str, Callable[[dict[str, Any]], Any]]] = {"videos": Video.from_dict}

    channel_id: str
    channel_name: str
    videos: list[Video]


@dataclass(frozen=True)
class TitlesReady(Event):
    topic: ClassVar[str] = Topic.TITLES_READY
    nested: ClassVar[dict[str, Callable[[dict[str, Any]], Any]]] = {"improved_titles": ImprovedTitle.from_dict}

    channel_name: str
    improved_titles: list[ImprovedTitle]


@dataclass(frozen=True)
class EmailSent(Event):
    topic: ClassVar[str] = Topic.EMAIL_SENT

    channel_name: str
    email_id: str


@dataclass(frozen=True)
class StageFailed(Event):
    """Shared shape of every stage's error topic."""

    error: str


@dataclass(frozen=True)
class ChannelFailed(StageFailed):
    topic: ClassVar[str] = Topic.CHANNEL_ERROR


@dataclass(frozen=True)
class VideosFailed(StageFailed):
    topic: ClassVar[str] = Topic.VIDEOS_ERROR


@dataclass(frozen=True)
class TitlesFailed(StageFailed):
    topic: ClassVar[str] = Topic.TITLES_ERROR


@dataclass(frozen=True)
class EmailFailed(StageFailed):
    topic: ClassVar[str] = Topic.EMAIL_ERROR


@dataclass(frozen=True)
class ErrorNotified(Event):
    topic: ClassVar[str] = Topic.ERROR_NOTIFIED

    email_id: str


EVENT_TYPES: dict[str, type[Event]] = {
    cls.topic: cls
    for cls in (
        JobSubmitted,
        ChannelResolved,
        VideosRetrieved,
        TitlesReady,
        EmailSent,
        ChannelFailed,
        VideosFailed,
        TitlesFailed,
        EmailFailed,
        ErrorNotified,
    )
}


def parse_event(topic: str, payload: dict[str, Any] | None) -> Event:
    """
    Build the typed event for ``topic``.

    Raises:
        InvalidPayloadError: If the topic is unknown or the payload is incomplete
    """
    event_type = EVENT_TYPES.get(topic)
    if event_type is None:
        raise InvalidPayloadError(f"Unknown topic {topic!r}")
    return event_type.from_payload(payload or {})
