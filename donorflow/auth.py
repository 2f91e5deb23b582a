"""Password hashing and credential checks."""

from __future__ import annotations

import logging
import sqlite3
from typing import TYPE_CHECKING

from werkzeug.security import check_password_hash, generate_password_hash

if TYPE_CHECKING:
    from .store import DonorFlowStore

logger = logging.getLogger(__name__)


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(password_hash: str, password: str) -> bool:
    if not password_hash or not password:
        return False
    return check_password_hash(password_hash, password)


def authenticate(store: "DonorFlowStore", username: str, password: str) -> sqlite3.Row | None:
    """Return the user row when the credentials match, otherwise None."""
    user = store.get_user_by_username(username)
    if user is None or not verify_password(user["password_hash"], password):
        logger.info("Failed login attempt for %r", (username or "").strip())
        return None
    return user
