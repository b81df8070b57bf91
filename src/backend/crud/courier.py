# src/backend/crud/courier.py
from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.backend.models.courier import Courier
from src.backend.models.user import User
from src.backend.schemas.courier import CourierCreate, CourierUpdate
from src.backend.utils.auth import MANAGER_ROLES
from src.backend.utils.database import commit_versioned
from src.backend.utils.exceptions import ConfirmationAlreadyProcessed, StaleRecord
from src.backend.utils.security import new_url_token
from src.backend.utils.status_flow import (
    CourierStatus,
    append_pod_note,
    ensure_courier_transition,
)
from src.backend.utils.timezone import now_local, today_local

# -----------------------
# Visibility
# -----------------------
def scope_couriers(stmt, user: User, department_ids: Sequence[int]):
    """admin: everything; sub_admin/manager: their departments; user: own rows."""
    if user.role == "admin":
        return stmt
    if user.role in MANAGER_ROLES:
        return stmt.where(or_(Courier.department_id.in_(tuple(department_ids)), Courier.created_by == user.id))
    return stmt.where(Courier.created_by == user.id)


def can_edit(user: User, row: Courier, department_ids: Sequence[int]) -> bool:
    if user.role == "admin":
        return True
    if user.role in MANAGER_ROLES:
        return row.department_id in department_ids or row.created_by == user.id
    return row.created_by == user.id

# -----------------------
# Reads
# -----------------------
async def list_couriers(
    db: AsyncSession,
    user: User,
    department_ids: Sequence[int],
    *,
    status: Optional[str] = None,
    q: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> Tuple[List[Courier], int]:
    stmt = scope_couriers(select(Courier), user, department_ids)
    if status and status != "all":
        stmt = stmt.where(Courier.status == status)
    else:
        stmt = stmt.where(Courier.status != CourierStatus.DELETED.value)
    if q:
        like = f"%{q.strip()}%"
        stmt = stmt.where(
            or_(
                Courier.pod_no.ilike(like),
                Courier.to_branch.ilike(like),
                Courier.receiver_name.ilike(like),
                Courier.email.ilike(like),
                Courier.vendor.ilike(like),
                Courier.custom_vendor.ilike(like),
            )
        )
    total = await db.scalar(select(func.count()).select_from(stmt.subquery()))
    res = await db.execute(stmt.order_by(Courier.created_at.desc(), Courier.id.desc()).limit(limit).offset(offset))
    return list(res.scalars().all()), int(total or 0)


async def get_courier(db: AsyncSession, courier_id: int) -> Optional[Courier]:
    return await db.scalar(select(Courier).where(Courier.id == courier_id))


async def pod_taken(db: AsyncSession, pod_no: Optional[str], exclude_id: Optional[int] = None) -> bool:
    """POD numbers are unique among couriers that are not deleted."""
    if not pod_no:
        return False
    stmt = select(Courier.id).where(
        func.lower(Courier.pod_no) == pod_no.strip().lower(),
        Courier.status != CourierStatus.DELETED.value,
    )
    if exclude_id:
        stmt = stmt.where(Courier.id != exclude_id)
    return (await db.scalar(stmt)) is not None


async def export_couriers(
    db: AsyncSession,
    user: User,
    department_ids: Sequence[int],
    start: Optional[date],
    end: Optional[date],
) -> List[Courier]:
    stmt = scope_couriers(select(Courier), user, department_ids).where(
        Courier.status != CourierStatus.DELETED.value
    )
    if start:
        stmt = stmt.where(Courier.courier_date >= start)
    if end:
        stmt = stmt.where(Courier.courier_date <= end)
    res = await db.execute(stmt.order_by(Courier.courier_date, Courier.id))
    return list(res.scalars().all())

# -----------------------
# Writes
# -----------------------
async def create_courier(
    db: AsyncSession,
    data: CourierCreate,
    user: User,
    *,
    pod_copy_path: Optional[str] = None,
) -> Courier:
    row = Courier(
        **data.model_dump(exclude={"send_email"}),
        created_by=user.id,
        status=CourierStatus.ON_THE_WAY.value,
        pod_copy_path=pod_copy_path,
    )
    if row.department_id is None:
        row.department_id = user.department_id
    if row.courier_date is None:
        row.courier_date = today_local()
    if row.email:
        row.confirmation_token = new_url_token()
    db.add(row)
    try:
        await db.commit()
        await db.refresh(row)
    except IntegrityError:
        await db.rollback()
        raise
    return row


def apply_edits(row: Courier, data: CourierUpdate, *, pod_copy_path: Optional[str] = None) -> None:
    """Set edited columns on the row without committing."""
    changes = data.model_dump(exclude_unset=True, exclude={"status", "received_date", "received_remarks", "version"})
    for key, value in changes.items():
        if key == "to_branch" and not value:
            continue
        setattr(row, key, value)
    if pod_copy_path:
        row.pod_copy_path = pod_copy_path


def apply_status(
    row: Courier,
    target: str,
    *,
    received_date: Optional[date] = None,
    received_remarks: Optional[str] = None,
) -> None:
    """
    Apply one transition plus its side effects without committing. Setting
    the current status again is accepted and changes nothing.
    """
    if target == row.status:
        return
    new_status = ensure_courier_transition(row.status, target)

    if new_status is CourierStatus.RECEIVED:
        row.received_date = received_date or today_local()
        if received_remarks is not None:
            row.received_remarks = received_remarks
    elif new_status is CourierStatus.COMPLETED:
        row.details = append_pod_note(row.details, row.pod_no)
    elif new_status is CourierStatus.ON_THE_WAY:
        # links emailed before the delete stop working
        row.confirmation_token = new_url_token() if row.email else None
        row.confirmed_at = None
    row.status = new_status.value


def _ensure_token(row: Courier) -> None:
    if row.email and not row.confirmation_token and row.status == CourierStatus.ON_THE_WAY.value:
        row.confirmation_token = new_url_token()


async def update_courier(
    db: AsyncSession,
    row: Courier,
    data: CourierUpdate,
    *,
    pod_copy_path: Optional[str] = None,
) -> Courier:
    apply_edits(row, data, pod_copy_path=pod_copy_path)
    _ensure_token(row)
    await commit_versioned(db)
    await db.refresh(row)
    return row


async def patch_courier(
    db: AsyncSession,
    row: Courier,
    data: CourierUpdate,
    target: Optional[str] = None,
    *,
    received_date: Optional[date] = None,
    received_remarks: Optional[str] = None,
) -> Courier:
    """Field edits and a status move committed together, or not at all."""
    if target is not None and target != row.status:
        ensure_courier_transition(row.status, target)
    apply_edits(row, data)
    if target is not None:
        apply_status(row, target, received_date=received_date, received_remarks=received_remarks)
    _ensure_token(row)
    await commit_versioned(db)
    await db.refresh(row)
    return row


def check_version(row: Courier, version: Optional[int]) -> None:
    if version is not None and version != row.version:
        raise StaleRecord()


async def change_status(
    db: AsyncSession,
    row: Courier,
    target: str,
    *,
    received_date: Optional[date] = None,
    received_remarks: Optional[str] = None,
) -> Courier:
    if target == row.status:
        return row
    apply_status(row, target, received_date=received_date, received_remarks=received_remarks)
    await commit_versioned(db)
    await db.refresh(row)
    return row


async def confirm_by_token(db: AsyncSession, token: str) -> Optional[Courier]:
    """
    Emailed "received" link. None for an unknown token; a courier that
    already moved past on_the_way raises ConfirmationAlreadyProcessed.
    """
    row = await db.scalar(select(Courier).where(Courier.confirmation_token == token))
    if not row:
        return None
    if row.status != CourierStatus.ON_THE_WAY.value:
        raise ConfirmationAlreadyProcessed("This courier has already been marked as received")
    row.status = CourierStatus.RECEIVED.value
    row.received_date = today_local()
    row.confirmed_at = now_local()
    await commit_versioned(db)
    await db.refresh(row)
    return row


async def due_for_reminder(db: AsyncSession, cutoff: datetime) -> List[Courier]:
    res = await db.execute(
        select(Courier).where(
            Courier.status == CourierStatus.ON_THE_WAY.value,
            Courier.email.is_not(None),
            Courier.reminder_email_sent.is_(False),
            Courier.created_at <= cutoff,
        ).order_by(Courier.id)
    )
    return list(res.scalars().all())


async def save(db: AsyncSession, row: Courier) -> Courier:
    """Persist bookkeeping columns (email outcome, reminder flags)."""
    await commit_versioned(db)
    await db.refresh(row)
    return row
