"""
Fixed-window rate limiting per (user, endpoint), stored in the database.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import Depends
from sqlalchemy.exc import SQLAlchemyError

from backend.auth import current_user_id
from backend.db import DbClient
from backend.dependencies import get_db_client
from backend.errors import RateLimitExceeded

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimit:
    max_requests: int
    window_seconds: int = 60


MUTATION = RateLimit(max_requests=60)
READ = RateLimit(max_requests=120)


def check_rate_limit(db: DbClient, user_id: str, endpoint: str, limit: RateLimit) -> None:
    """Raise RateLimitExceeded when the caller is over the limit.

    Storage failures let the request through.
    """
    try:
        retry_after = db.hit_rate_limit(
            user_id,
            endpoint,
            limit=limit.max_requests,
            window_seconds=limit.window_seconds,
        )
    except SQLAlchemyError:
        logger.exception("[rate-limit] check failed for %s", endpoint)
        return
    if retry_after is not None:
        logger.info("[rate-limit] %s exceeded by user %s", endpoint, user_id)
        raise RateLimitExceeded(retry_after)


def rate_limited(endpoint: str, limit: RateLimit = MUTATION):
    """Build a dependency that authenticates and rate-limits, returning the user id."""

    def dependency(
        user_id: str = Depends(current_user_id),
        db: DbClient = Depends(get_db_client),
    ) -> str:
        check_rate_limit(db, user_id, endpoint, limit)
        return user_id

    return dependency
