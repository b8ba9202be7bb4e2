from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from storefront.config import settings
from storefront.constants import MIN_PASSWORD_LENGTH, ROLE_SUPER_ADMIN
from storefront.db import sqlite as db
from storefront.errors import AuthenticationError, ValidationError
from storefront.utils.validators import require_email

logger = logging.getLogger(__name__)

PBKDF2_ITERATIONS = 260_000


def hash_password(password: str, salt: Optional[str] = None, iterations: int = PBKDF2_ITERATIONS) -> str:
    salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("utf-8"), iterations)
    return f"pbkdf2_sha256${iterations}${salt}${digest.hex()}"


def verify_password(password: str, encoded: str) -> bool:
    try:
        algo, iterations, salt, _ = encoded.split("$", 3)
    except ValueError:
        return False
    if algo != "pbkdf2_sha256":
        return False
    return hmac.compare_digest(hash_password(password, salt, int(iterations)), encoded)


def register_user(email: str, password: str, name: str) -> Dict[str, Any]:
    if not email or not password or not name:
        raise ValidationError("Email, password, and name are required.")
    require_email(email)
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.")
    user = db.create_user(email, name, hash_password(password))
    logger.info("Registered user %s", user["id"])
    return user


def authenticate(email: str, password: str) -> Dict[str, Any]:
    if not email or not password:
        raise AuthenticationError("Email and password are required.")
    row = db.get_user_credentials(email)
    if not row or not verify_password(password, row["password"]):
        raise AuthenticationError("Invalid email or password.")
    row.pop("password")
    return row


def start_session(user_id: str) -> str:
    token = secrets.token_urlsafe(32)
    expires = (datetime.now() + timedelta(days=settings.session_days)).strftime("%Y-%m-%d %H:%M:%S")
    db.create_session(token, user_id, expires)
    return token


def session_user(token: Optional[str]) -> Optional[Dict[str, Any]]:
    if not token:
        return None
    return db.get_session_user(token)


def end_session(token: Optional[str]) -> None:
    if token:
        db.delete_session(token)


def ensure_super_admin() -> None:
    """Create the configured super admin account if it does not exist yet."""
    email = settings.super_admin_email
    if not email or not settings.super_admin_password:
        return
    if db.get_user_credentials(email):
        return
    db.create_user(email, "Super Admin", hash_password(settings.super_admin_password), ROLE_SUPER_ADMIN)
    logger.info("Created super admin %s", email)
