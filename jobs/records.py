"""
Job record and its nested value types.

The record is stored as a plain JSON object. Optional fields that a stage has
not produced yet are left out of the stored object entirely, and keys this
module does not know about are carried through unchanged so that a stage
never drops what another writer put there.
"""

from dataclasses import dataclass, field, asdict, fields
from typing import Any

from django.utils import timezone

from .state import JobStatus, validate_job_transition


def utc_now() -> str:
    return timezone.now().isoformat()


@dataclass(frozen=True)
class Video:
    video_id: str
    title: str
    url: str
    published_at: str
    thumbnail_url: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Video":
        return cls(
            video_id=data["video_id"],
            title=data["title"],
            url=data["url"],
            published_at=data.get("published_at", ""),
            thumbnail_url=data.get("thumbnail_url"),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ImprovedTitle:
    original: str
    improved: str
    rationale: str
    url: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ImprovedTitle":
        return cls(
            original=data["original"],
            improved=data["improved"],
            rationale=data["rationale"],
            url=data["url"],
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class JobRecord:
    job_id: str
    channel: str
    email: str
    status: JobStatus = JobStatus.QUEUED
    created_at: str = field(default_factory=utc_now)
    updated_at: str | None = None
    completed_at: str | None = None
    channel_id: str | None = None
    channel_name: str | None = None
    videos: list[Video] | None = None
    improved_titles: list[ImprovedTitle] | None = None
    email_id: str | None = None
    error: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def create_new(cls, job_id: str, channel: str, email: str) -> "JobRecord":
        return cls(job_id=job_id, channel=channel, email=email.lower())

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "JobRecord":
        known = {f.name for f in fields(cls)} - {"extra"}
        videos = data.get("videos")
        improved = data.get("improved_titles")
        return cls(
            job_id=data["job_id"],
            channel=data.get("channel", ""),
            email=data.get("email", ""),
            status=JobStatus(data.get("status", JobStatus.QUEUED.value)),
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at"),
            completed_at=data.get("completed_at"),
            channel_id=data.get("channel_id"),
            channel_name=data.get("channel_name"),
            videos=[Video.from_dict(v) for v in videos] if videos is not None else None,
            improved_titles=[ImprovedTitle.from_dict(t) for t in improved] if improved is not None else None,
            email_id=data.get("email_id"),
            error=data.get("error"),
            extra={k: v for k, v in data.items() if k not in known},
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = dict(self.extra)
        data.update({
            "job_id": self.job_id,
            "channel": self.channel,
            "email": self.email,
            "status": self.status.value,
            "created_at": self.created_at,
        })
        optional = {
            "updated_at": self.updated_at,
            "completed_at": self.completed_at,
            "channel_id": self.channel_id,
            "channel_name": self.channel_name,
            "videos": [v.to_dict() for v in self.videos] if self.videos is not None else None,
            "improved_titles": (
                [t.to_dict() for t in self.improved_titles] if self.improved_titles is not None else None
            ),
            "email_id": self.email_id,
            "error": self.error,
        }
        data.update({k: v for k, v in optional.items() if v is not None})
        return data

    def advance(self, status: JobStatus) -> None:
        """Move to ``status``, enforcing the state machine."""
        validate_job_transition(self.status, status)
        self.status = status
        self.updated_at = utc_now()

    def fail(self, message: str) -> None:
        self.advance(JobStatus.FAILED)
        self.error = message

    def complete(self, email_id: str | None) -> None:
        self.advance(JobStatus.COMPLETED)
        self.completed_at = self.updated_at
        self.email_id = email_id
