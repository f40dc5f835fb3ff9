"""
Admin credential check.

There are no sessions or tokens: every login request re-verifies the
username and password against the stored bcrypt hash.
"""

import logging
from typing import Any, Dict, Optional

import bcrypt
from pymongo.database import Database

from database import create_document
from errors import AuthError, ValidationError
from schemas import User, collection_name

logger = logging.getLogger(__name__)

USERS = collection_name(User)


def hash_password(password: str, rounds: int = 12) -> str:
    try:
        return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds)).decode("utf-8")
    except ValueError as exc:
        raise ValidationError(str(exc), field="password") from exc


def verify_password(password: str, stored: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), stored.encode("utf-8"))
    except ValueError:
        # Malformed stored hash or over-long password; neither can match.
        return False


def authenticate(db: Database, username: str, password: str) -> Dict[str, Any]:
    """Verify credentials and return the stored role flag.

    Raises ``AuthError`` when the user is unknown or the password does not
    match. Whether a non-admin may proceed is the caller's decision.
    """
    user: Optional[Dict[str, Any]] = db[USERS].find_one({"username": username})
    if user is None or not verify_password(password, user.get("password", "")):
        logger.warning("Failed login for %r", username)
        raise AuthError()
    return {"isAdmin": bool(user.get("isAdmin", False))}


def bootstrap_admin(db: Database, username: Optional[str], password: Optional[str], rounds: int = 12) -> bool:
    """Create the admin account once; existing users are never touched.

    Returns True if a user was inserted.
    """
    if not username or not password:
        return False
    if db[USERS].find_one({"username": username}) is not None:
        return False
    user = User(username=username, password=hash_password(password, rounds), isAdmin=True)
    create_document(db, USERS, user)
    logger.info("Bootstrapped admin user %r", username)
    return True
