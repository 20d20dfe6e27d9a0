"""
Dispatch of Google Calendar sync job ids from the API and the scheduler to
the sync workers.

Entries are job ids only; the job row in the database is the source of truth,
so a lost entry is picked up by the worker's WAITING-job fallback and a
duplicate entry fails to claim.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Optional, Protocol

import redis
from redis import exceptions as redis_exceptions


class JobQueue(Protocol):
    def enqueue(self, job_id: str) -> None:
        ...

    def dequeue(self, *, block: bool = True, timeout: int | None = None) -> Optional[str]:
        ...

    def depth(self) -> int:
        """Number of job ids not yet handed to a worker."""
        ...


@dataclass
class InMemoryJobQueue:
    """Process-local queue for tests and single-process runs."""

    job_ids: deque = field(default_factory=deque)

    def enqueue(self, job_id: str) -> None:
        self.job_ids.append(job_id)

    def dequeue(self, *, block: bool = True, timeout: int | None = None) -> Optional[str]:
        # Nothing else can push while we wait, so blocking is pointless here.
        return self.job_ids.popleft() if self.job_ids else None

    def depth(self) -> int:
        return len(self.job_ids)


@dataclass
class RedisJobQueue:
    """Redis list queue: RPUSH to add, BLPOP/LPOP to take."""

    url: str
    queue_key: str = "planner:jobs"

    def __post_init__(self):
        self._connect()

    def _connect(self) -> None:
        self.client = redis.Redis.from_url(self.url, decode_responses=True)

    def enqueue(self, job_id: str) -> None:
        self.client.rpush(self.queue_key, job_id)

    def dequeue(self, *, block: bool = True, timeout: int | None = None) -> Optional[str]:
        try:
            if not block:
                return self.client.lpop(self.queue_key)
            popped = self.client.blpop([self.queue_key], timeout=timeout or 0)
        except redis_exceptions.ConnectionError:
            # Idle connections get dropped by managed Redis.
            self._connect()
            return None
        return popped[1] if popped else None

    def depth(self) -> int:
        try:
            return self.client.llen(self.queue_key)
        except redis_exceptions.ConnectionError:
            self._connect()
            return 0
