"""
Arcade gamification: the daily pet, the coin wallet and the coin ledger.

Every coin movement is an ``arcade_events`` row with a unique dedupe key. The
event insert and the wallet update share one transaction, so a repeated key
rolls back the whole award. Balances change through SQL arithmetic rather
than read-modify-write, and debits are guarded by the balance in the UPDATE.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from backend.dates import today_iso
from backend.db import DbClient, row_to_dict
from backend.errors import ApiError
from backend.tables import ArcadeDailyPetRow, ArcadeEventRow, ArcadeWalletRow, new_id

logger = logging.getLogger(__name__)

PET_TYPES = (
    "unicorn",
    "dragon",
    "cat",
    "dog",
    "bunny",
    "fox",
    "panda",
    "penguin",
    "owl",
    "hamster",
)
DEFAULT_PET_TYPE = "unicorn"
PET_TASK_SLOTS = 3

TASK_COINS = 5
CELEBRATION_COINS = 2
COINS_PER_TOKEN = 25


def pet_stage(tasks_completed: int) -> str:
    if tasks_completed >= 3:
        return "adult"
    if tasks_completed == 2:
        return "teen"
    if tasks_completed == 1:
        return "baby"
    return "sleeping"


def _insert_once(db: DbClient, row) -> None:
    """Insert ``row`` unless a concurrent request already created it."""
    with db.Session() as session:
        session.add(row)
        try:
            session.commit()
        except IntegrityError:
            session.rollback()


def _ensure_wallet(db: DbClient, user_id: str) -> None:
    with db.Session() as session:
        exists = session.get(ArcadeWalletRow, user_id) is not None
    if not exists:
        _insert_once(db, ArcadeWalletRow(user_id=user_id))


def _todays_pet(
    session, user_id: str, day: str, *, lock: bool = False
) -> Optional[ArcadeDailyPetRow]:
    query = select(ArcadeDailyPetRow).where(
        ArcadeDailyPetRow.user_id == user_id, ArcadeDailyPetRow.date == day
    )
    if lock:
        query = query.with_for_update()
    return session.execute(query).scalar_one_or_none()


def _record_event(
    session,
    user_id: str,
    *,
    event_type: str,
    dedupe_key: str,
    coins: int = 0,
    tokens: int = 0,
    metadata: Optional[dict] = None,
) -> bool:
    """Write the ledger row and apply it to the wallet in the database.

    Raises IntegrityError for a repeated dedupe key. Returns False, with
    nothing applied, when a debit exceeds the balance.
    """
    session.add(
        ArcadeEventRow(
            user_id=user_id,
            event_type=event_type,
            coins_delta=coins,
            tokens_delta=tokens,
            event_metadata=metadata or {},
            dedupe_key=dedupe_key,
        )
    )
    session.flush()

    values = {
        "coins_balance": ArcadeWalletRow.coins_balance + coins,
        "tokens_balance": ArcadeWalletRow.tokens_balance + tokens,
        "updated_at": time.time(),
    }
    if coins > 0:
        values["total_coins_earned"] = ArcadeWalletRow.total_coins_earned + coins
    stmt = update(ArcadeWalletRow).where(ArcadeWalletRow.user_id == user_id)
    if coins < 0:
        stmt = stmt.where(ArcadeWalletRow.coins_balance >= -coins)
    result = session.execute(stmt.values(**values).execution_options(synchronize_session=False))
    return result.rowcount == 1


def _current_wallet(session, user_id: str) -> ArcadeWalletRow:
    return session.get(ArcadeWalletRow, user_id, populate_existing=True)


def get_arcade_state(db: DbClient, user_id: str) -> dict:
    """Wallet (created on first access) and today's pet, if one was picked."""
    day = today_iso()
    _ensure_wallet(db, user_id)
    with db.Session() as session:
        wallet = session.get(ArcadeWalletRow, user_id)
        pet = _todays_pet(session, user_id, day)
        return {"wallet": row_to_dict(wallet), "pet": row_to_dict(pet), "date": day}


def select_pet(db: DbClient, user_id: str, pet_type: str) -> dict:
    if pet_type not in PET_TYPES:
        raise ApiError(400, "Unknown pet type")

    day = today_iso()
    with db.Session() as session:
        pet = _todays_pet(session, user_id, day)
        if pet is None:
            pet = ArcadeDailyPetRow(user_id=user_id, date=day, pet_type=pet_type)
            session.add(pet)
        pet.pet_type = pet_type
        pet.stage = "sleeping"
        pet.tasks_completed_today = 0
        pet.hatched_at = None
        pet.updated_at = time.time()
        session.commit()
        logger.info("[select-pet] %s picked %s", user_id, pet_type)
        return row_to_dict(pet)


def complete_pet_task(
    db: DbClient, user_id: str, *, index: int, task_text: str = ""
) -> dict:
    """Advance today's pet for one of the daily top-three slots and award coins.

    A slot counts once per day; repeating it returns ``awarded: False`` and
    leaves the pet and wallet unchanged.
    """
    if not 0 <= index < PET_TASK_SLOTS:
        raise ApiError(400, "Invalid task index")

    day = today_iso()
    _ensure_wallet(db, user_id)
    with db.Session() as session:
        missing = _todays_pet(session, user_id, day) is None
    if missing:
        _insert_once(db, ArcadeDailyPetRow(user_id=user_id, date=day, pet_type=DEFAULT_PET_TYPE))

    with db.Session() as session:
        try:
            _record_event(
                session,
                user_id,
                event_type="task_completed",
                dedupe_key=f"pet_task_complete:{user_id}:{day}:{index}",
                coins=TASK_COINS,
                metadata={"task_index": index, "task_text": task_text, "date": day},
            )
        except IntegrityError:
            session.rollback()
            logger.info("[complete-pet-task] duplicate slot %d for %s", index, user_id)
            return {"awarded": False, **get_arcade_state(db, user_id)}

        pet = _todays_pet(session, user_id, day, lock=True)
        pet.tasks_completed_today = (pet.tasks_completed_today or 0) + 1
        pet.stage = pet_stage(pet.tasks_completed_today)
        if pet.stage == "adult" and pet.hatched_at is None:
            pet.hatched_at = time.time()
        pet.updated_at = time.time()
        session.commit()

        return {
            "awarded": True,
            "coins_awarded": TASK_COINS,
            "wallet": row_to_dict(_current_wallet(session, user_id)),
            "pet": row_to_dict(pet),
            "date": day,
        }


def celebrate_win(db: DbClient, user_id: str, *, index: int, reflection: str = "") -> dict:
    if not 0 <= index < PET_TASK_SLOTS:
        raise ApiError(400, "Invalid task index")

    day = today_iso()
    _ensure_wallet(db, user_id)
    with db.Session() as session:
        try:
            _record_event(
                session,
                user_id,
                event_type="celebration_bonus",
                dedupe_key=f"celebration_bonus:{user_id}:{day}:{index}",
                coins=CELEBRATION_COINS,
                metadata={"reflection": reflection, "date": day},
            )
        except IntegrityError:
            session.rollback()
            return {"awarded": False, "wallet": get_arcade_state(db, user_id)["wallet"]}
        session.commit()
        return {
            "awarded": True,
            "coins_awarded": CELEBRATION_COINS,
            "wallet": row_to_dict(_current_wallet(session, user_id)),
        }


def convert_coins(db: DbClient, user_id: str, coins: int) -> dict:
    """Convert whole multiples of ``COINS_PER_TOKEN`` coins into tokens."""
    if coins < COINS_PER_TOKEN:
        raise ApiError(400, f"At least {COINS_PER_TOKEN} coins are required")
    tokens = coins // COINS_PER_TOKEN
    coins_used = tokens * COINS_PER_TOKEN

    _ensure_wallet(db, user_id)
    with db.Session() as session:
        applied = _record_event(
            session,
            user_id,
            event_type="tokens_purchased",
            dedupe_key=f"token_purchase:{user_id}:{new_id()}",
            coins=-coins_used,
            tokens=tokens,
        )
        if not applied:
            session.rollback()
            raise ApiError(400, "Not enough coins")
        session.commit()
        logger.info("[convert-coins] %s: %d coins -> %d tokens", user_id, coins_used, tokens)
        return {
            "coins_used": coins_used,
            "tokens_gained": tokens,
            "wallet": row_to_dict(_current_wallet(session, user_id)),
        }
