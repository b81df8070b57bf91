# src/backend/crud/received_courier.py
from __future__ import annotations

from datetime import date
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.backend.models.received_courier import ReceivedCourier
from src.backend.models.user import User
from src.backend.schemas.received_courier import ReceivedCourierCreate, ReceivedCourierUpdate
from src.backend.utils.auth import MANAGER_ROLES
from src.backend.utils.database import commit_versioned
from src.backend.utils.exceptions import ConfirmationAlreadyProcessed, StaleRecord
from src.backend.utils.security import new_url_token
from src.backend.utils.status_flow import ReceivedCourierStatus, ensure_received_transition
from src.backend.utils.timezone import now_local


def scope_received(stmt, user: User, department_ids: Sequence[int]):
    if user.role == "admin":
        return stmt
    if user.role in MANAGER_ROLES:
        return stmt.where(
            or_(ReceivedCourier.department_id.in_(tuple(department_ids)), ReceivedCourier.created_by == user.id)
        )
    return stmt.where(ReceivedCourier.created_by == user.id)


def can_edit(user: User, row: ReceivedCourier, department_ids: Sequence[int]) -> bool:
    if user.role == "admin":
        return True
    if user.role in MANAGER_ROLES:
        return row.department_id in department_ids or row.created_by == user.id
    return row.created_by == user.id


async def list_received(
    db: AsyncSession,
    user: User,
    department_ids: Sequence[int],
    *,
    status: Optional[str] = None,
    q: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> Tuple[List[ReceivedCourier], int]:
    stmt = scope_received(select(ReceivedCourier), user, department_ids)
    if status and status != "all":
        stmt = stmt.where(ReceivedCourier.status == status)
    if q:
        like = f"%{q.strip()}%"
        stmt = stmt.where(
            or_(
                ReceivedCourier.pod_number.ilike(like),
                ReceivedCourier.from_location.ilike(like),
                ReceivedCourier.to_user.ilike(like),
                ReceivedCourier.courier_vendor.ilike(like),
                ReceivedCourier.custom_vendor.ilike(like),
            )
        )
    total = await db.scalar(select(func.count()).select_from(stmt.subquery()))
    res = await db.execute(
        stmt.order_by(ReceivedCourier.received_date.desc(), ReceivedCourier.id.desc()).limit(limit).offset(offset)
    )
    return list(res.scalars().all()), int(total or 0)


async def get_received(db: AsyncSession, rc_id: int) -> Optional[ReceivedCourier]:
    return await db.scalar(select(ReceivedCourier).where(ReceivedCourier.id == rc_id))


async def pod_taken(db: AsyncSession, pod_number: str, exclude_id: Optional[int] = None) -> bool:
    stmt = select(ReceivedCourier.id).where(func.lower(ReceivedCourier.pod_number) == pod_number.strip().lower())
    if exclude_id:
        stmt = stmt.where(ReceivedCourier.id != exclude_id)
    return (await db.scalar(stmt)) is not None


async def export_received(
    db: AsyncSession,
    user: User,
    department_ids: Sequence[int],
    start: Optional[date],
    end: Optional[date],
) -> List[ReceivedCourier]:
    stmt = scope_received(select(ReceivedCourier), user, department_ids)
    if start:
        stmt = stmt.where(ReceivedCourier.received_date >= start)
    if end:
        stmt = stmt.where(ReceivedCourier.received_date <= end)
    res = await db.execute(stmt.order_by(ReceivedCourier.received_date, ReceivedCourier.id))
    return list(res.scalars().all())


async def create_received(db: AsyncSession, data: ReceivedCourierCreate, user: User) -> ReceivedCourier:
    row = ReceivedCourier(
        **data.model_dump(),
        status=ReceivedCourierStatus.PENDING.value,
        created_by=user.id,
    )
    if row.department_id is None and not row.custom_department:
        row.department_id = user.department_id
    db.add(row)
    try:
        await db.commit()
        await db.refresh(row)
    except IntegrityError:
        await db.rollback()
        raise
    return row


async def update_received(db: AsyncSession, row: ReceivedCourier, data: ReceivedCourierUpdate) -> ReceivedCourier:
    if data.version is not None and data.version != row.version:
        raise StaleRecord()
    for key, value in data.model_dump(exclude_unset=True, exclude={"version"}).items():
        if key in ("pod_number", "from_location", "received_date", "send_email_notification") and value is None:
            continue
        setattr(row, key, value)
    await commit_versioned(db)
    await db.refresh(row)
    return row


async def delete_received(db: AsyncSession, row: ReceivedCourier) -> None:
    await db.delete(row)
    await db.commit()


async def dispatch(db: AsyncSession, row: ReceivedCourier) -> ReceivedCourier:
    """pending|dispatched -> dispatched with a fresh single-use token."""
    ensure_received_transition(row.status, ReceivedCourierStatus.DISPATCHED.value)
    row.status = ReceivedCourierStatus.DISPATCHED.value
    row.confirmation_token = new_url_token()
    row.dispatched_at = now_local()
    await commit_versioned(db)
    await db.refresh(row)
    return row


async def confirm_by_token(db: AsyncSession, token: str) -> Optional[ReceivedCourier]:
    row = await db.scalar(select(ReceivedCourier).where(ReceivedCourier.confirmation_token == token))
    if not row:
        return None
    if row.status == ReceivedCourierStatus.RECEIVED.value:
        raise ConfirmationAlreadyProcessed()
    ensure_received_transition(row.status, ReceivedCourierStatus.RECEIVED.value)
    row.status = ReceivedCourierStatus.RECEIVED.value
    row.confirmed_at = now_local()
    await commit_versioned(db)
    await db.refresh(row)
    return row


async def save(db: AsyncSession, row: ReceivedCourier) -> ReceivedCourier:
    await commit_versioned(db)
    await db.refresh(row)
    return row
