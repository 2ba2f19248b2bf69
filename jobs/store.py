"""
Key-value job store.

The pipeline only needs ``get`` and ``set`` against a namespace. There is no
compare-and-swap: the last writer wins.
"""

import copy
from typing import Any, Protocol

import structlog

from .errors import JobNotFoundError
from .models import StateEntry
from .records import JobRecord

logger = structlog.get_logger()

JOBS_NAMESPACE = "jobs"


class StateStore(Protocol):
    def get(self, namespace: str, key: str) -> dict[str, Any] | None:
        ...

    def set(self, namespace: str, key: str, value: dict[str, Any]) -> None:
        ...


class DjangoStateStore:
    """State store backed by the ``StateEntry`` table."""

    def get(self, namespace: str, key: str) -> dict[str, Any] | None:
        entry = StateEntry.objects.filter(namespace=namespace, key=key).first()
        if entry is None:
            return None
        return entry.value

    def set(self, namespace: str, key: str, value: dict[str, Any]) -> None:
        StateEntry.objects.update_or_create(
            namespace=namespace,
            key=key,
            defaults={"value": value},
        )


class InMemoryStateStore:
    """Process-local store. Values are deep-copied on the way in and out."""

    def __init__(self):
        self._data: dict[tuple[str, str], dict[str, Any]] = {}

    def get(self, namespace: str, key: str) -> dict[str, Any] | None:
        value = self._data.get((namespace, key))
        return copy.deepcopy(value) if value is not None else None

    def set(self, namespace: str, key: str, value: dict[str, Any]) -> None:
        self._data[(namespace, key)] = copy.deepcopy(value)


class JobRepository:
    """Reads and writes ``JobRecord`` objects in the ``jobs`` namespace."""

    def __init__(self, store: StateStore, namespace: str = JOBS_NAMESPACE):
        self.store = store
        self.namespace = namespace

    def get(self, job_id: str) -> JobRecord | None:
        data = self.store.get(self.namespace, job_id)
        if data is None:
            return None
        return JobRecord.from_dict(data)

    def get_or_raise(self, job_id: str) -> JobRecord:
        """
        Raises:
            JobNotFoundError: If the record does not exist
        """
        record = self.get(job_id)
        if record is None:
            raise JobNotFoundError(job_id)
        return record

    def save(self, record: JobRecord) -> None:
        self.store.set(self.namespace, record.job_id, record.to_dict())
        logger.debug("job_saved", job_id=record.job_id, status=record.status.value)
