# src/backend/crud/users.py
from __future__ import annotations

from datetime import timedelta
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.backend.config import settings
from src.backend.models.password_reset_token import PasswordResetToken
from src.backend.models.user import User, UserDepartment
from src.backend.schemas.user import ProfileUpdate, UserCreate, UserUpdate
from src.backend.utils.exceptions import field_error
from src.backend.utils.security import hash_password, hmac_hash, new_url_token
from src.backend.utils.timezone import now_local

# -----------------------
# Basic getters / checks
# -----------------------
async def get_user(db: AsyncSession, user_id: str) -> Optional[User]:
    return await db.scalar(select(User).where(User.id == user_id))


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    return await db.scalar(select(User).where(User.email == (email or "").strip().lower()))


async def find_conflicts(
    db: AsyncSession,
    *,
    email: Optional[str] = None,
    employee_code: Optional[str] = None,
    exclude_id: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """Field errors for values already used by another account."""
    errors: List[Dict[str, Any]] = []
    if email:
        stmt = select(User.id).where(User.email == email.strip().lower())
        if exclude_id:
            stmt = stmt.where(User.id != exclude_id)
        if await db.scalar(stmt):
            errors.append(field_error("email", "Email is already registered", email))
    if employee_code:
        stmt = select(User.id).where(func.lower(User.employee_code) == employee_code.strip().lower())
        if exclude_id:
            stmt = stmt.where(User.id != exclude_id)
        if await db.scalar(stmt):
            errors.append(field_error("employeeCode", "Employee code is already in use", employee_code))
    return errors


async def user_names(db: AsyncSession, ids: Sequence[Optional[str]]) -> Dict[str, User]:
    """id -> User for display columns (creator names in lists and exports)."""
    wanted = {i for i in ids if i}
    if not wanted:
        return {}
    res = await db.execute(select(User).where(User.id.in_(wanted)))
    return {u.id: u for u in res.scalars().all()}

# -----------------------
# List + search + paging
# -----------------------
async def list_users(
    db: AsyncSession,
    q: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
    roles: Optional[Sequence[str]] = None,
) -> Tuple[List[User], int]:
    stmt = select(User)
    if q:
        like = f"%{q.strip()}%"
        stmt = stmt.where(
            or_(
                User.name.ilike(like),
                User.email.ilike(like),
                User.employee_code.ilike(like),
                User.role.ilike(like),
            )
        )
    if roles:
        stmt = stmt.where(User.role.in_(tuple(roles)))

    total = await db.scalar(select(func.count()).select_from(stmt.order_by(None).subquery()))
    res = await db.execute(stmt.order_by(User.created_at.desc()).limit(limit).offset(offset))
    return list(res.scalars().all()), int(total or 0)

# -----------------------
# Create / Update / Delete
# -----------------------
async def create_user(db: AsyncSession, data: UserCreate, *, role: Optional[str] = None) -> User:
    user = User(
        name=data.name,
        email=str(data.email).strip().lower(),
        password=hash_password(data.password.get_secret_value()),
        employee_code=data.employee_code,
        mobile_number=data.mobile_number,
        role=role or data.role,
        department_id=data.department_id,
        is_active=True,
    )
    db.add(user)
    try:
        await db.commit()
        await db.refresh(user)
    except IntegrityError:
        await db.rollback()
        raise
    return user


async def update_user(db: AsyncSession, row: User, data: UserUpdate | ProfileUpdate) -> User:
    changes = data.model_dump(exclude_unset=True)
    password = changes.pop("password", None)
    for key, value in changes.items():
        if key == "email" and value is not None:
            value = str(value).strip().lower()
        if key in ("name", "email", "role", "is_active") and value is None:
            continue
        setattr(row, key, value)
    if password is not None:
        row.password = hash_password(password.get_secret_value())
    try:
        await db.commit()
        await db.refresh(row)
    except IntegrityError:
        await db.rollback()
        raise
    return row


async def deactivate_user(db: AsyncSession, row: User) -> User:
    """Users own couriers and audit rows, so delete only switches them off."""
    row.is_active = False
    await db.commit()
    await db.refresh(row)
    return row


async def set_password(db: AsyncSession, row: User, raw_password: str) -> None:
    row.password = hash_password(raw_password)
    await db.commit()


async def set_profile_image(db: AsyncSession, row: User, url: Optional[str]) -> User:
    row.profile_image_url = url
    await db.commit()
    await db.refresh(row)
    return row

# -----------------------
# Department assignments
# -----------------------
async def list_user_department_ids(db: AsyncSession, user_id: str) -> List[int]:
    res = await db.execute(
        select(UserDepartment.department_id)
        .where(UserDepartment.user_id == user_id)
        .order_by(UserDepartment.department_id)
    )
    return list(res.scalars().all())


async def replace_user_departments(db: AsyncSession, user_id: str, department_ids: Sequence[int]) -> List[int]:
    await db.execute(delete(UserDepartment).where(UserDepartment.user_id == user_id))
    for dep_id in sorted(set(department_ids)):
        db.add(UserDepartment(user_id=user_id, department_id=dep_id))
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise
    return await list_user_department_ids(db, user_id)

# -----------------------
# Password reset tokens
# -----------------------
async def create_reset_token(db: AsyncSession, user: User) -> str:
    """Invalidate older links and return a fresh raw token (only its HMAC is stored)."""
    await db.execute(
        update(PasswordResetToken)
        .where(PasswordResetToken.user_id == user.id, PasswordResetToken.used_at.is_(None))
        .values(used_at=now_local())
    )
    raw = new_url_token()
    db.add(
        PasswordResetToken(
            user_id=user.id,
            token_hash=hmac_hash(raw),
            expires_at=now_local() + timedelta(minutes=settings.PASSWORD_RESET_EXPIRE_MINUTES),
        )
    )
    await db.commit()
    return raw


async def consume_reset_token(db: AsyncSession, raw: str, new_password: str) -> Optional[User]:
    """Single use: the token is marked used together with the password change."""
    row = await db.scalar(
        select(PasswordResetToken).where(
            PasswordResetToken.token_hash == hmac_hash(raw),
            PasswordResetToken.used_at.is_(None),
            PasswordResetToken.expires_at > now_local(),
        )
    )
    if not row:
        return None
    user = await get_user(db, row.user_id)
    if not user or not user.is_active:
        return None
    row.used_at = now_local()
    user.password = hash_password(new_password)
    await db.commit()
    return user
