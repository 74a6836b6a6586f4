"""
Operator accounts for dispute resolution, forfeits and resets.

Passwords are stored as ``pbkdf2_sha256$<iterations>$<salt hex>$<hash hex>``.
Usernames are case-insensitive and stored lower-cased.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import os
from typing import Optional

from sqlalchemy.orm import Session

from cuerank.db.models import OperatorUser, utcnow

logger = logging.getLogger(__name__)

PBKDF2_ALGORITHM = "sha256"
PBKDF2_ITERATIONS = 390_000
HASH_SCHEME = f"pbkdf2_{PBKDF2_ALGORITHM}"
SALT_SIZE = 16


def normalize_username(username: Optional[str]) -> str:
    return (username or "").strip().lower()


def _derive(password: str, salt: bytes, iterations: int) -> str:
    return hashlib.pbkdf2_hmac(
        PBKDF2_ALGORITHM, password.encode("utf-8"), salt, iterations
    ).hex()


def _parse_hash(stored_hash: Optional[str]) -> Optional[tuple[int, bytes, str]]:
    """(iterations, salt, expected hex) of a stored hash, or None if malformed."""
    parts = (stored_hash or "").split("$")
    if len(parts) != 4 or parts[0] != HASH_SCHEME:
        return None
    iter_raw, salt_hex, expected_hex = parts[1:]
    if not iter_raw.isdigit() or int(iter_raw) < 1:
        return None
    try:
        salt = bytes.fromhex(salt_hex)
    except ValueError:
        return None
    return int(iter_raw), salt, expected_hex


def hash_password(password: str, iterations: int = PBKDF2_ITERATIONS) -> str:
    """Hash a plaintext password using PBKDF2-HMAC-SHA256."""
    if not password:
        raise ValueError("Password cannot be empty")
    salt = os.urandom(SALT_SIZE)
    return f"{HASH_SCHEME}${iterations}${salt.hex()}${_derive(password, salt, iterations)}"


def verify_password(password: str, stored_hash: str) -> bool:
    """Check a password against a stored hash. Malformed hashes never match."""
    parsed = _parse_hash(stored_hash)
    if parsed is None:
        return False
    iterations, salt, expected_hex = parsed
    return hmac.compare_digest(_derive(password, salt, iterations), expected_hex)


def authenticate_operator(
    db: Session,
    username: str,
    password: str,
) -> Optional[OperatorUser]:
    """Return the active operator when credentials are valid."""
    normalized = normalize_username(username)
    operator = db.query(OperatorUser).filter(OperatorUser.username == normalized).first()
    if not operator or not operator.is_active:
        logger.debug("No active operator named %r", normalized)
        return None
    if not verify_password(password, operator.password_hash):
        logger.debug("Wrong password for operator %r", normalized)
        return None
    return operator


def create_or_update_operator(
    db: Session,
    username: str,
    password: str,
    is_active: bool = True,
    iterations: int = PBKDF2_ITERATIONS,
) -> OperatorUser:
    """Create a new operator, or update an existing one by username."""
    normalized = normalize_username(username)
    if not normalized:
        raise ValueError("Username cannot be empty")

    password_hash = hash_password(password, iterations=iterations)
    operator = db.query(OperatorUser).filter(OperatorUser.username == normalized).first()
    if operator:
        operator.password_hash = password_hash
        operator.is_active = is_active
        logger.info("Updated operator %s (active=%s)", normalized, is_active)
    else:
        operator = OperatorUser(
            username=normalized,
            password_hash=password_hash,
            is_active=is_active,
        )
        db.add(operator)
        logger.info("Created operator %s (active=%s)", normalized, is_active)
    db.flush()
    return operator


def mark_operator_login(db: Session, operator: OperatorUser) -> None:
    """Record the time of the operator's last authenticated request."""
    operator.last_login_at = utcnow()
    db.flush()
