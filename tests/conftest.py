"""Pytest configuration and fixtures."""

import pytest

from jobs.ai import TitleSuggestion
from jobs.pipeline import build_pipeline
from jobs.records import Video
from jobs.router import QueueDispatcher
from jobs.store import InMemoryStateStore
from jobs.youtube import ChannelMatch


def make_videos(count: int = 5) -> list[Video]:
    return [
        Video(
            video_id=f"vid{i}",
            title=f"Video number {i}",
            url=f"https://www.youtube.com/watch?v=vid{i}",
            published_at=f"2024-01-0{i}T00:00:00Z",
            thumbnail_url=f"https://i.ytimg.com/vi/vid{i}/default.jpg",
        )
        for i in range(1, count + 1)
    ]


class FakeYouTube:
    def __init__(self, match: ChannelMatch | None = None, videos: list[Video] | None = None, error=None):
        self.match = match
        self.videos = videos if videos is not None else []
        self.error = error
        self.searches: list[str] = []
        self.listings: list[tuple] = []

    def search_channel(self, query):
        self.searches.append(query)
        if self.error:
            raise self.error
        return self.match

    def list_recent(self, channel_id, limit=5):
        self.listings.append((channel_id, limit))
        if self.error:
            raise self.error
        return list(self.videos)


class FakeImprover:
    def __init__(self, suggestions=None, error=None):
        self.suggestions = suggestions
        self.error = error
        self.calls: list[tuple] = []

    def improve(self, titles, channel_name):
        self.calls.append((list(titles), channel_name))
        if self.error:
            raise self.error
        if self.suggestions is not None:
            return self.suggestions
        return [
            TitleSuggestion(original=title, improved=f"{title} (better)", rationale="Clearer hook.")
            for title in titles
        ]


class FakeNotifier:
    def __init__(self, error=None):
        self.error = error
        self.sent: list[dict] = []

    def send_email(self, to, subject, html):
        self.sent.append({"to": to, "subject": subject, "html": html})
        if self.error:
            raise self.error
        return f"email-{len(self.sent)}"


@pytest.fixture
def store():
    return InMemoryStateStore()


@pytest.fixture
def dispatcher():
    return QueueDispatcher()


@pytest.fixture
def youtube():
    return FakeYouTube(match=ChannelMatch(channel_id="UC123", channel_name="Example"), videos=make_videos())


@pytest.fixture
def improver():
    return FakeImprover()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def pipeline(store, dispatcher, youtube, improver, notifier):
    return build_pipeline(
        store,
        dispatcher,
        youtube_factory=lambda: youtube,
        improver_factory=lambda: improver,
        notifier_factory=lambda: notifier,
    )


@pytest.fixture
def run_all(pipeline, dispatcher):
    """Deliver every pending event until the pipeline goes quiet."""
    def _run():
        return dispatcher.drain(pipeline.deliver)
    return _run
