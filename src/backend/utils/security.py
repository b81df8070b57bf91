# src/backend/utils/security.py
from __future__ import annotations

import hashlib
import hmac
import secrets
import time
from typing import Optional, Dict, Any

from jose import jwt, JWTError
from passlib.context import CryptContext
from fastapi import HTTPException

from src.backend.config import settings

JWT_SECRET: str = settings.JWT_SECRET
JWT_ALG: str = settings.JWT_ALG
ACCESS_TOKEN_EXPIRE_MINUTES: int = settings.ACCESS_TOKEN_EXPIRE_MINUTES

# Clock skew tolerance (seconds)
CLOCK_SKEW_LEEWAY: int = settings.JWT_LEEWAY_SECONDS


# ---- Password hashing policy ----
# bcrypt stays verifiable for accounts carried over from the previous system
pwd_context = CryptContext(
    schemes=["argon2", "bcrypt"],
    deprecated="auto",
)

# ---------------------------------------------------------------------
# Password Handling
# ---------------------------------------------------------------------
def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: Optional[str]) -> bool:
    if not hashed or not pwd_context.identify(hashed):
        return False
    return pwd_context.verify(plain, hashed)


def needs_rehash(hashed: str) -> bool:
    return pwd_context.needs_update(hashed)


def hmac_hash(raw: str) -> str:
    """Deterministic keyed hash for one-time tokens stored server-side."""
    return hmac.new(JWT_SECRET.encode(), raw.encode(), hashlib.sha256).hexdigest()


def new_url_token() -> str:
    return secrets.token_urlsafe(32)


# ---------------------------------------------------------------------
# Token Handling - Access Token
# ---------------------------------------------------------------------
def create_access_token(data: Dict[str, Any], minutes: Optional[int] = None) -> str:
    """
    Create a JWT access token with a unique `jti` so logout can revoke it.
    Uses epoch seconds to avoid timezone/datetime issues.
    """
    now_ts = int(time.time())
    exp_ts = now_ts + int(60 * (minutes or ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode = {**data, "iat": now_ts, "exp": exp_ts, "jti": secrets.token_hex(16)}
    return jwt.encode(to_encode, JWT_SECRET, algorithm=JWT_ALG)


def _check_exp_with_leeway(payload: Dict[str, Any]) -> None:
    exp = payload.get("exp")
    if exp is None:
        raise HTTPException(status_code=401, detail="Invalid token")

    now = int(time.time())
    if now > int(exp) + CLOCK_SKEW_LEEWAY:
        raise HTTPException(status_code=401, detail="Token expired")


def decode_access_token(token: str) -> Dict[str, Any]:
    """Return payload or raise HTTPException(401)."""
    try:
        # exp is enforced below with our own leeway; python-jose has no leeway kwarg
        payload = jwt.decode(
            token,
            JWT_SECRET,
            algorithms=[JWT_ALG],
            options={"verify_aud": False, "verify_exp": False},
        )
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")
    _check_exp_with_leeway(payload)
    return payload
