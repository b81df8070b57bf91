# src/backend/utils/auth.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Iterable, List, Optional

from fastapi import Request, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.backend.models.user import User
from src.backend.models.user import UserDepartment
from src.backend.models.revoked_token import RevokedToken
from src.backend.utils.database import get_db
from src.backend.utils.security import (
    create_access_token,
    decode_access_token,
    hash_password,
    needs_rehash,
    verify_password,
)
from src.backend.utils.timezone import LOCAL_TZ

logger = logging.getLogger(__name__)

ADMIN_ROLES = ("admin",)
MANAGER_ROLES = ("admin", "sub_admin", "manager")

# -------------------------------------------------------------------
# Helpers
# -------------------------------------------------------------------
def _get_header(request: Request, name: str) -> Optional[str]:
    val = request.headers.get(name)
    return val if isinstance(val, str) else None


def get_client_ip(request: Request) -> str:
    """Best-effort client IP with proxy header support."""
    xff = _get_header(request, "X-Forwarded-For")
    if xff:
        ip = xff.split(",")[0].strip()
        if ip:
            return ip
    xri = _get_header(request, "X-Real-IP")
    if xri:
        return xri.strip()
    return request.client.host if (request and request.client and request.client.host) else "0.0.0.0"


def _extract_bearer(request: Request) -> Optional[str]:
    auth_header = _get_header(request, "Authorization")
    if auth_header:
        parts = auth_header.split(" ", 1)
        if len(parts) == 2 and parts[0].lower() == "bearer":
            return parts[1].strip() or None
    return None


# -------------------------------------------------------------------
# Core auth
# -------------------------------------------------------------------
async def authenticate_user(db: AsyncSession, email: str, password: str) -> Optional[User]:
    email = (email or "").strip().lower()
    if not email or not password:
        return None

    user = await db.scalar(select(User).where(User.email == email))
    if not user or not user.is_active:
        return None

    if not verify_password(password, user.password):
        return None

    if needs_rehash(user.password or ""):
        user.password = hash_password(password)
        await db.commit()
        logger.info("Upgraded password hash for user %s", user.id)

    return user


def issue_token(user: User) -> str:
    return create_access_token({"sub": user.id, "role": user.role})


async def revoke_token(db: AsyncSession, payload: dict) -> None:
    jti = payload.get("jti")
    if not jti:
        return
    exists = await db.scalar(select(RevokedToken.id).where(RevokedToken.jti == jti))
    if exists:
        return
    db.add(
        RevokedToken(
            jti=jti,
            user_id=payload.get("sub"),
            expires_at=datetime.fromtimestamp(int(payload.get("exp", 0)), LOCAL_TZ),
        )
    )
    await db.commit()


# -------------------------------------------------------------------
# Protected dependency
# -------------------------------------------------------------------
async def get_token_payload(request: Request) -> dict:
    token = _extract_bearer(request)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")
    payload = decode_access_token(token)
    sub = payload.get("sub")
    if not isinstance(sub, str) or not sub:
        raise HTTPException(status_code=401, detail="Invalid token payload")
    return payload


async def get_current_user(
    payload: dict = Depends(get_token_payload),
    db: AsyncSession = Depends(get_db),
) -> User:
    jti = payload.get("jti")
    if jti and await db.scalar(select(RevokedToken.id).where(RevokedToken.jti == jti)):
        raise HTTPException(status_code=401, detail="Session has been logged out")

    user = await db.scalar(select(User).where(User.id == payload["sub"]))
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="User not found")
    return user


def require_roles(*roles: str) -> Callable:
    """Dependency factory: 403 unless the caller holds one of `roles`."""

    async def _checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in roles:
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return current_user

    return _checker


def has_role(user: User, roles: Iterable[str]) -> bool:
    return user.role in tuple(roles)


async def user_department_ids(db: AsyncSession, user: User) -> List[int]:
    """Primary department plus every assigned one."""
    res = await db.execute(select(UserDepartment.department_id).where(UserDepartment.user_id == user.id))
    ids = {d for d in res.scalars().all()}
    if user.department_id:
        ids.add(user.department_id)
    return sorted(ids)
