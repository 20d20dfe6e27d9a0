"""
Client data snapshots kept in object storage under ``backups/<user>/<key>/``.
"""

from __future__ import annotations

import json
import logging
import re
import time
from typing import Any

from backend.errors import ApiError
from backend.storage import StorageClient

logger = logging.getLogger(__name__)

BACKUP_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")
MAX_BACKUP_BYTES = 5 * 1024 * 1024


def _prefix(user_id: str, key: str) -> str:
    if not key or not BACKUP_KEY_PATTERN.match(key):
        raise ApiError(400, "Invalid backup key")
    return f"backups/{user_id}/{key}/"


def save_backup(storage: StorageClient, user_id: str, *, key: str, data: Any) -> dict:
    prefix = _prefix(user_id, key)
    if data is None:
        raise ApiError(400, "Backup data is required")
    if len(json.dumps(data, default=str)) > MAX_BACKUP_BYTES:
        raise ApiError(413, "Backup is too large")

    saved_at = time.time()
    # Millisecond names sort in write order.
    path = f"{prefix}{int(saved_at * 1000):013d}.json"
    storage.upload_json(path, {"key": key, "saved_at": saved_at, "data": data})
    logger.info("[save-backup] %s", path)
    return {"success": True, "path": path, "saved_at": saved_at}


def get_latest_backup(storage: StorageClient, user_id: str, *, key: str) -> dict:
    keys = storage.list_keys(_prefix(user_id, key))
    if not keys:
        raise ApiError(404, "No backup found")
    latest = max(keys)
    try:
        snapshot = json.loads(storage.get_bytes(latest))
    except FileNotFoundError:
        raise ApiError(404, "No backup found")
    return {"path": latest, **snapshot}
