"""
Event router.

Subscribers are registered by stage name. Publishing a topic hands one
delivery per subscriber to the dispatcher; the default dispatcher enqueues a
Celery task per delivery, so handlers run asynchronously, at least once, and
in no particular order across topics.
"""

from collections import defaultdict, deque
from collections.abc import Callable
from typing import Any

import structlog

from .errors import UndeclaredTopicError

logger = structlog.get_logger()

# (stage_name, topic, payload)
Dispatch = Callable[[str, str, dict[str, Any]], None]


def celery_dispatch(stage_name: str, topic: str, payload: dict[str, Any]) -> None:
    from .tasks import deliver_event

    deliver_event.delay(stage_name, topic, payload)


class EventRouter:
    def __init__(self, dispatch: Dispatch | None = None):
        self._dispatch = dispatch or celery_dispatch
        self._subscribers: dict[str, list[str]] = defaultdict(list)

    def subscribe(self, topic: str, stage_name: str) -> None:
        if stage_name not in self._subscribers[topic]:
            self._subscribers[topic].append(stage_name)

    def subscribers(self, topic: str) -> list[str]:
        return list(self._subscribers.get(topic, []))

    def publish(self, topic: str, payload: dict[str, Any], *, publisher=None) -> int:
        """
        Deliver ``payload`` to every subscriber of ``topic``.

        ``publisher`` is the emitting stage, if any; it may only publish the
        topics it declares in ``emits``. Returns the number of deliveries.
        """
        if publisher is not None and topic not in publisher.emits:
            raise UndeclaredTopicError(publisher.name, topic)

        targets = self.subscribers(topic)
        if not targets:
            logger.info("event_without_subscribers", topic=topic, job_id=payload.get("job_id"))
            return 0

        for stage_name in targets:
            self._dispatch(stage_name, topic, payload)
        logger.info("event_published", topic=topic, job_id=payload.get("job_id"), deliveries=len(targets))
        return len(targets)


class QueueDispatcher:
    """
    In-process dispatcher that holds deliveries until ``drain`` is called.

    ``drain`` hands each delivery to ``deliver`` in FIFO order, including
    deliveries produced while draining.
    """

    def __init__(self):
        self.pending: deque[tuple[str, str, dict[str, Any]]] = deque()
        self.delivered: list[tuple[str, str, dict[str, Any]]] = []

    def __call__(self, stage_name: str, topic: str, payload: dict[str, Any]) -> None:
        self.pending.append((stage_name, topic, payload))

    def drain(self, deliver: Dispatch) -> int:
        count = 0
        while self.pending:
            stage_name, topic, payload = self.pending.popleft()
            self.delivered.append((stage_name, topic, payload))
            deliver(stage_name, topic, payload)
            count += 1
        return count
