"""
Database access for Postgres, with SQLite in-memory for development and tests.
"""

from __future__ import annotations

import enum
import math
import time
from dataclasses import dataclass, field
from typing import Any, Optional

from sqlalchemy import create_engine, inspect, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from backend.tables import Base, RateLimitRow, SyncJobRow, new_id

IN_MEMORY_URL = "sqlite+pysqlite:///:memory:"


class JobStatus(str, enum.Enum):
    WAITING = "WAITING"
    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    ERROR = "ERROR"


@dataclass
class JobRecord:
    job_id: str
    user_id: str
    status: JobStatus
    stage: str = "WAITING"
    result: Optional[dict] = None
    error: Optional[str] = None
    locked_at: Optional[float] = None
    created_at: float = field(default_factory=lambda: time.time())
    updated_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return {
            "job_id": self.job_id,
            "user_id": self.user_id,
            "status": self.status.name,
            "stage": self.stage,
            "result": self.result,
            "error": self.error,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


def row_to_dict(row: Any) -> dict:
    """Serialize an ORM row using its column names."""
    if row is None:
        return None
    data = {}
    for attr in inspect(row).mapper.column_attrs:
        data[attr.columns[0].name] = getattr(row, attr.key)
    return data


class DbClient:
    """
    SQLAlchemy-backed client. Accepts any SQLAlchemy URL (Postgres in
    production, SQLite for local runs and tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for DbClient")
        self.database_url = database_url
        if database_url.startswith("sqlite") and ":memory:" in database_url:
            # One shared connection so every session sees the same database.
            self.engine = create_engine(
                database_url,
                future=True,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            self.engine = create_engine(
                database_url,
                future=True,
                pool_pre_ping=True,
                pool_recycle=1800,
            )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    @classmethod
    def in_memory(cls) -> "DbClient":
        return cls(IN_MEMORY_URL)

    def reset(self) -> None:
        """Drop and recreate every table (useful in tests)."""
        Base.metadata.drop_all(self.engine)
        Base.metadata.create_all(self.engine)

    # Rate limiting

    def hit_rate_limit(
        self, user_id: str, endpoint: str, *, limit: int, window_seconds: float
    ) -> Optional[int]:
        """
        Count one request in the caller's fixed window.

        Returns None when the request is allowed, otherwise the number of
        seconds until the window resets (at least 1).
        """
        now = time.time()
        with self.Session() as session:
            row = session.get(RateLimitRow, (user_id, endpoint))
            if row is None:
                session.add(
                    RateLimitRow(
                        user_id=user_id,
                        endpoint=endpoint,
                        request_count=1,
                        window_start=now,
                    )
                )
                session.commit()
                return None
            if row.window_start < now - window_seconds:
                row.request_count = 1
                row.window_start = now
                session.commit()
                return None
            if row.request_count >= limit:
                window_end = row.window_start + window_seconds
                return max(1, math.ceil(window_end - now))
            row.request_count += 1
            session.commit()
            return None

    # Background sync jobs

    def _to_job_record(self, job: SyncJobRow) -> JobRecord:
        return JobRecord(
            job_id=job.job_id,
            user_id=job.user_id,
            status=JobStatus(job.status),
            stage=job.stage,
            result=job.result,
            error=job.error,
            locked_at=job.locked_at,
            created_at=job.created_at,
            updated_at=job.updated_at,
        )

    def create_sync_job(self, user_id: str) -> JobRecord:
        now = time.time()
        with self.Session() as session:
            job = SyncJobRow(
                job_id=new_id(),
                user_id=user_id,
                status=JobStatus.WAITING.value,
                stage="WAITING",
                created_at=now,
                updated_at=now,
            )
            session.add(job)
            session.commit()
            session.refresh(job)
            return self._to_job_record(job)

    def get_job(self, job_id: str) -> Optional[JobRecord]:
        with self.Session() as session:
            job = session.get(SyncJobRow, job_id)
            if not job:
                return None
            return self._to_job_record(job)

    def open_job_for(self, user_id: str) -> Optional[JobRecord]:
        """The user's oldest job that is still WAITING or RUNNING, if any."""
        with self.Session() as session:
            job = session.execute(
                select(SyncJobRow)
                .where(
                    SyncJobRow.user_id == user_id,
                    SyncJobRow.status.in_(
                        (JobStatus.WAITING.value, JobStatus.RUNNING.value)
                    ),
                )
                .order_by(SyncJobRow.created_at.asc())
                .limit(1)
            ).scalar_one_or_none()
            return self._to_job_record(job) if job else None

    def claim_job(self, job_id: str) -> Optional[JobRecord]:
        """Flip a WAITING job to RUNNING; None if another worker got it first."""
        now = time.time()
        with self.Session() as session:
            stmt = (
                select(SyncJobRow)
                .where(
                    SyncJobRow.job_id == job_id,
                    SyncJobRow.status == JobStatus.WAITING.value,
                )
                .with_for_update(skip_locked=True)
            )
            job = session.execute(stmt).scalar_one_or_none()
            if not job:
                return None
            job.status = JobStatus.RUNNING.value
            job.stage = "CLAIMED"
            job.locked_at = now
            job.updated_at = now
            session.commit()
            session.refresh(job)
            return self._to_job_record(job)

    def claim_next_waiting_job(self) -> Optional[JobRecord]:
        with self.Session() as session:
            stmt = (
                select(SyncJobRow.job_id)
                .where(SyncJobRow.status == JobStatus.WAITING.value)
                .order_by(SyncJobRow.created_at.asc())
                .limit(1)
            )
            job_id = session.execute(stmt).scalar_one_or_none()
        if not job_id:
            return None
        return self.claim_job(job_id)

    def update_job_progress(
        self,
        job_id: str,
        *,
        status: Optional[JobStatus] = None,
        stage: Optional[str] = None,
        result: Optional[dict] = None,
        error: Optional[str] = None,
    ) -> None:
        with self.Session() as session:
            job = session.get(SyncJobRow, job_id)
            if not job:
                return
            if status:
                job.status = status.value
            if stage:
                job.stage = stage
            if result is not None:
                job.result = result
            if error is not None:
                job.error = error
            job.updated_at = time.time()
            session.commit()

    def requeue_stale_locks(self, lock_timeout_seconds: float = 600) -> int:
        cutoff = time.time() - lock_timeout_seconds
        with self.Session() as session:
            updated = (
                session.query(SyncJobRow)
                .filter(
                    SyncJobRow.status == JobStatus.RUNNING.value,
                    SyncJobRow.locked_at != None,  # noqa: E711
                    SyncJobRow.locked_at < cutoff,
                )
                .update(
                    {
                        SyncJobRow.status: JobStatus.WAITING.value,
                        SyncJobRow.stage: "WAITING",
                        SyncJobRow.locked_at: None,
                        SyncJobRow.updated_at: time.time(),
                    },
                    synchronize_session=False,
                )
            )
            session.commit()
            return updated or 0
