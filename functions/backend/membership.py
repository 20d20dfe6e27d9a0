"""
Membership entitlements synced from the CRM (GoHighLevel) and feature gating.
"""

from __future__ import annotations

import hmac
import logging
import time
from typing import Optional

from fastapi import Depends
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from backend.auth import AuthUser, current_user
from backend.db import DbClient, row_to_dict
from backend.dependencies import get_db_client
from backend.errors import ApiError
from backend.tables import MembershipRow, UserProfileRow

logger = logging.getLogger(__name__)

# Lowest to highest.
TIERS = ("free", "member", "pro", "mastermind")

TAG_TIERS = {
    "90dp-member": "member",
    "planner-member": "member",
    "90dp-pro": "pro",
    "planner-pro": "pro",
    "ai-copywriting": "pro",
    "90dp-mastermind": "mastermind",
    "mastermind": "mastermind",
}

TIER_FEATURES = {
    "free": ("planner", "tasks", "habits"),
    "member": ("planner", "tasks", "habits", "editorial_calendar", "arcade", "google_calendar"),
    "pro": (
        "planner",
        "tasks",
        "habits",
        "editorial_calendar",
        "arcade",
        "google_calendar",
        "ai_copywriting",
    ),
    "mastermind": (
        "planner",
        "tasks",
        "habits",
        "editorial_calendar",
        "arcade",
        "google_calendar",
        "ai_copywriting",
        "coaching",
    ),
}

MEMBERSHIP_STATUSES = ("active", "paused", "cancelled")


def _parse_tags(raw) -> list[str]:
    if isinstance(raw, str):
        raw = raw.split(",")
    return [str(tag).strip().lower() for tag in raw or [] if str(tag).strip()]


def tier_for_tags(tags: list[str]) -> str:
    """Highest tier granted by any tag; ``free`` when none match."""
    best = 0
    for tag in tags:
        tier = TAG_TIERS.get(tag)
        if tier:
            best = max(best, TIERS.index(tier))
    return TIERS[best]


def features_for(tier: str, status: str) -> list[str]:
    if status != "active":
        return list(TIER_FEATURES["free"])
    return list(TIER_FEATURES.get(tier, TIER_FEATURES["free"]))


def check_webhook_secret(expected: Optional[str], provided: Optional[str]) -> None:
    if not expected:
        logger.error("[ghl-membership-webhook] webhook secret is not configured")
        raise ApiError(503, "Webhook is not configured")
    if not provided or not hmac.compare_digest(expected, provided):
        raise ApiError(401, "Invalid webhook secret")


def apply_membership_webhook(db: DbClient, payload: dict) -> dict:
    """Upsert the membership for the contact in a CRM webhook payload."""
    contact = payload.get("contact") or payload
    email = (contact.get("email") or "").strip().lower()
    if not email:
        raise ApiError(400, "Contact email is required")

    tags = _parse_tags(contact.get("tags"))
    tier = tier_for_tags(tags)
    status = (payload.get("status") or contact.get("status") or "active").lower()
    if status not in MEMBERSHIP_STATUSES:
        status = "active"

    with db.Session() as session:
        membership = session.get(MembershipRow, email)
        if membership is None:
            membership = MembershipRow(email=email)
            session.add(membership)
        membership.ghl_contact_id = contact.get("id") or contact.get("contact_id")
        membership.tier = tier
        membership.status = status
        membership.tags = tags
        membership.updated_at = time.time()

        profile = session.execute(
            select(UserProfileRow).where(func.lower(UserProfileRow.email) == email)
        ).scalars().first()
        if profile is not None:
            membership.user_id = profile.user_id
        session.commit()
        logger.info(
            "[ghl-membership-webhook] %s -> %s (%s), linked=%s",
            email,
            tier,
            status,
            membership.user_id is not None,
        )
        return row_to_dict(membership)


def _remember_email(session, user_id: str, email: Optional[str]) -> Optional[UserProfileRow]:
    """The caller's profile, recording the token email on it when it changed."""
    profile = session.get(UserProfileRow, user_id)
    if not email or (profile is not None and profile.email == email):
        return profile
    if profile is None:
        profile = UserProfileRow(user_id=user_id)
        session.add(profile)
    profile.email = email
    profile.updated_at = time.time()
    try:
        session.commit()
    except IntegrityError:
        # Created concurrently by another request.
        session.rollback()
        profile = session.get(UserProfileRow, user_id)
    return profile


def _membership_for_user(
    session, user_id: str, email: Optional[str] = None
) -> Optional[MembershipRow]:
    membership = session.execute(
        select(MembershipRow).where(MembershipRow.user_id == user_id)
    ).scalars().first()
    if membership is not None:
        return membership

    # Not linked yet: the webhook may have arrived before we knew the user's email.
    profile = _remember_email(session, user_id, email)
    lookup = email or (profile.email.lower() if profile is not None and profile.email else None)
    if not lookup:
        return None
    membership = session.get(MembershipRow, lookup)
    if membership is None or membership.user_id not in (None, user_id):
        return None
    if membership.user_id is None:
        membership.user_id = user_id
        session.commit()
        logger.info("[get-membership] linked %s to %s", lookup, user_id)
    return membership


def get_membership(db: DbClient, user_id: str, email: Optional[str] = None) -> dict:
    with db.Session() as session:
        membership = _membership_for_user(session, user_id, email)
        if membership is None:
            return {"tier": "free", "status": "none", "features": features_for("free", "none")}
        return {
            "tier": membership.tier,
            "status": membership.status,
            "features": features_for(membership.tier, membership.status),
            "updated_at": membership.updated_at,
        }


def has_feature(db: DbClient, user_id: str, feature: str, email: Optional[str] = None) -> bool:
    return feature in get_membership(db, user_id, email)["features"]


def require_feature(feature: str):
    """Build a dependency that returns the user id when their membership grants ``feature``."""

    def dependency(
        user: AuthUser = Depends(current_user),
        db: DbClient = Depends(get_db_client),
    ) -> str:
        if not has_feature(db, user.user_id, feature, user.email):
            raise ApiError(
                403,
                "Your membership does not include this feature",
                code="FEATURE_NOT_AVAILABLE",
            )
        return user.user_id

    return dependency
