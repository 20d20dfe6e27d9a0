"""
Worker loop that runs queued Google Calendar polls.

Start it with ``python -m backend.worker``; jobs are queued by the
``google-request-sync`` operation and by ``scripts/calendar_sync_daemon.py``.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from backend import google_calendar
from backend.config import Settings, get_settings
from backend.db import DbClient, JobRecord, JobStatus
from backend.dependencies import get_db_client, get_google_client, get_queue_client
from backend.errors import ApiError
from backend.google_client import GoogleCalendarClient
from backend.queue import JobQueue

logger = logging.getLogger(__name__)

STALE_LOCK_SECONDS = 900


def process_job(
    job: JobRecord,
    db: DbClient,
    google: Optional[GoogleCalendarClient] = None,
    settings: Optional[Settings] = None,
) -> None:
    """Run one poll for the job's user and record the outcome on the job."""
    google = google or get_google_client()
    settings = settings or get_settings()

    db.update_job_progress(job.job_id, status=JobStatus.RUNNING, stage="POLLING")
    try:
        result = google_calendar.poll_changes(db, google, settings, job.user_id)
        if result.get("requiresRetry"):
            # The expired tokens were cleared; the retry is a full sync.
            logger.info("[%s] sync token expired, retrying with a full sync", job.job_id)
            db.update_job_progress(job.job_id, status=JobStatus.RUNNING, stage="FULL_SYNC")
            result = google_calendar.poll_changes(db, google, settings, job.user_id)
    except ApiError as e:
        logger.warning("[%s] poll rejected: %s", job.job_id, e.message)
        db.update_job_progress(
            job.job_id, status=JobStatus.ERROR, stage="ERROR", error=e.message
        )
        return
    except Exception:
        db.update_job_progress(
            job.job_id, status=JobStatus.ERROR, stage="ERROR", error="Internal error"
        )
        raise

    db.update_job_progress(
        job.job_id, status=JobStatus.SUCCESS, stage="SUCCESS", result=result
    )
    logger.info("[%s] poll finished for %s", job.job_id, job.user_id)


def process_next(
    *,
    db: Optional[DbClient] = None,
    queue: Optional[JobQueue] = None,
    block: bool = True,
    timeout: Optional[int] = None,
) -> bool:
    """
    Fetch and process one job from the queue (or DB fallback). Returns True if processed.
    """
    db = db or get_db_client()
    queue = queue or get_queue_client()

    job_id = queue.dequeue(block=block, timeout=timeout)
    if job_id:
        if db.get_job(job_id) is None:
            logger.warning("Received job_id %s from queue but no DB record found", job_id)
            return False
        # Claim the job so other workers skip it.
        job = db.claim_job(job_id)
        if job is None:
            logger.info("Job %s already claimed", job_id)
            return False
    else:
        # Pick up WAITING jobs whose queue entry was lost.
        job = db.claim_next_waiting_job()
        if job is None:
            return False

    process_job(job, db)
    return True


def run_loop(poll_interval_seconds: float = 2.0) -> None:
    """
    Simple polling loop that blocks on the queue. Intended to be run under systemd/supervisor.
    """
    db = get_db_client()
    queue = get_queue_client()
    while True:
        requeued = db.requeue_stale_locks(lock_timeout_seconds=STALE_LOCK_SECONDS)
        if requeued:
            logger.info("Requeued %d stale jobs", requeued)
        try:
            processed = process_next(
                db=db, queue=queue, block=True, timeout=int(poll_interval_seconds)
            )
        except Exception:
            logger.exception("Job processing failed")
            processed = True
        if not processed:
            time.sleep(poll_interval_seconds)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    run_loop()
