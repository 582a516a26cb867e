"""
Password hashing and bearer tokens.

Guild passwords are bcrypt hashes. Session tokens are ``<payload>.<sig>``
where payload is unpadded urlsafe-base64 JSON ``{"uid", "exp"}`` and sig is
the hex HMAC-SHA256 of the payload under ``Config.SECRET_KEY``.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import time
from typing import Optional

import bcrypt

from guildwatch.core.config import Config


def hash_password(password: str, rounds: Optional[int] = None) -> str:
    salt = bcrypt.gensalt(rounds=rounds or Config.BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def check_password(password: str, password_hash: Optional[str]) -> bool:
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


def _sign(b64: str, secret: str) -> str:
    return hmac.new(
        secret.encode("utf-8"), b64.encode("utf-8"), hashlib.sha256
    ).hexdigest()


def create_token(
    user_id: int,
    ttl_seconds: Optional[int] = None,
    secret: Optional[str] = None,
) -> str:
    ttl = Config.SESSION_TTL_SECONDS if ttl_seconds is None else ttl_seconds
    payload = {"uid": user_id, "exp": int(time.time()) + max(0, ttl)}
    raw = json.dumps(payload, separators=(",", ":")).encode("utf-8")
    b64 = base64.urlsafe_b64encode(raw).decode("utf-8").rstrip("=")
    return f"{b64}.{_sign(b64, secret or Config.SECRET_KEY)}"


def verify_token(token: Optional[str], secret: Optional[str] = None) -> Optional[int]:
    """Return the user id carried by a valid, unexpired token, else None."""
    if not token:
        return None
    try:
        b64, sig = token.split(".", 1)
    except ValueError:
        return None
    expected = _sign(b64, secret or Config.SECRET_KEY)
    if not hmac.compare_digest(expected, sig):
        return None

    padded = b64 + "=" * (-len(b64) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.encode("utf-8"))
        payload = json.loads(raw.decode("utf-8"))
        exp = int(payload.get("exp", 0))
        uid = int(payload.get("uid", 0))
    except (ValueError, TypeError, AttributeError):
        return None

    if exp and time.time() > exp:
        return None
    return uid if uid > 0 else None
