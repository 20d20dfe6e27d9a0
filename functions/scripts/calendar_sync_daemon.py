"""
Daemon that periodically queues a Google Calendar poll for every active connection.
"""

from __future__ import annotations

import argparse
import logging
import random
import sys
import time
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from backend.db import DbClient, JobStatus
from backend.dependencies import get_db_client, get_queue_client
from backend.queue import JobQueue
from backend.tables import GoogleCalendarConnectionRow, SyncJobRow

logger = logging.getLogger(__name__)


def active_user_ids(db: DbClient) -> list[str]:
    with db.Session() as session:
        return list(
            session.execute(
                select(GoogleCalendarConnectionRow.user_id).where(
                    GoogleCalendarConnectionRow.is_active.is_(True)
                )
            ).scalars()
        )


def pending_user_ids(db: DbClient) -> set[str]:
    with db.Session() as session:
        return set(
            session.execute(
                select(SyncJobRow.user_id).where(
                    SyncJobRow.status.in_(
                        (JobStatus.WAITING.value, JobStatus.RUNNING.value)
                    )
                )
            ).scalars()
        )


def enqueue_polls(
    db: DbClient, queue: JobQueue, limit: int = 0, max_backlog: int = 0
) -> int:
    """Queue one poll per connected user who has none outstanding."""
    backlog = queue.depth()
    if max_backlog and backlog >= max_backlog:
        logger.warning("Skipping round, %d polls still queued", backlog)
        return 0
    pending = pending_user_ids(db)
    queued = 0
    for user_id in active_user_ids(db):
        if user_id in pending:
            continue
        job = db.create_sync_job(user_id)
        queue.enqueue(job.job_id)
        queued += 1
        if limit and queued >= limit:
            break
    return queued


def main() -> int:
    parser = argparse.ArgumentParser(description="Google Calendar sync scheduler")
    parser.add_argument(
        "-n",
        "--limit",
        type=int,
        default=0,
        help="Queue at most N polls per run (0 for no limit)",
    )
    parser.add_argument(
        "--max-backlog",
        type=int,
        default=500,
        help="Skip a round while at least this many polls are queued (0 to disable)",
    )
    parser.add_argument(
        "--interval-seconds",
        type=int,
        default=900,
        help="Seconds between scheduling runs",
    )
    parser.add_argument(
        "--jitter-seconds",
        type=int,
        default=60,
        help="Max random jitter added to sleep",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Schedule a single round and exit",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(name)s %(levelname)s %(asctime)s %(message)s",
        datefmt="%m/%d/%Y %I:%M:%S %p",
    )

    db = get_db_client()
    queue = get_queue_client()

    while True:
        try:
            queued = enqueue_polls(
                db, queue, limit=args.limit, max_backlog=args.max_backlog
            )
            logger.info("Queued %d calendar polls", queued)
        except SQLAlchemyError as exc:
            logger.exception("Scheduling failed: %s", exc)

        if args.once:
            return 0

        sleep_for = args.interval_seconds + random.uniform(0, args.jitter_seconds)
        logger.info("Sleeping for %.1fs", sleep_for)
        time.sleep(sleep_for)


if __name__ == "__main__":
    raise SystemExit(main())
