# src/backend/crud/audit_log.py
from __future__ import annotations

from datetime import date, timedelta
from typing import List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.backend.models.audit_log import AuditLog
from src.backend.utils.timezone import start_of_day


def _filtered(
    action: Optional[str] = None,
    entity_type: Optional[str] = None,
    start: Optional[date] = None,
    end: Optional[date] = None,
):
    stmt = select(AuditLog)
    if action:
        stmt = stmt.where(AuditLog.action == action)
    if entity_type:
        stmt = stmt.where(AuditLog.entity_type == entity_type)
    # both bounds inclusive on the calendar date
    if start:
        stmt = stmt.where(AuditLog.timestamp >= start_of_day(start))
    if end:
        stmt = stmt.where(AuditLog.timestamp < start_of_day(end + timedelta(days=1)))
    return stmt


async def list_audit_logs(
    db: AsyncSession,
    *,
    action: Optional[str] = None,
    entity_type: Optional[str] = None,
    start: Optional[date] = None,
    end: Optional[date] = None,
    limit: int = 50,
    offset: int = 0,
) -> Tuple[List[AuditLog], int]:
    stmt = _filtered(action, entity_type, start, end)
    total = await db.scalar(select(func.count()).select_from(stmt.subquery()))
    res = await db.execute(stmt.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc()).limit(limit).offset(offset))
    return list(res.scalars().all()), int(total or 0)


async def export_audit_logs(
    db: AsyncSession,
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> List[AuditLog]:
    res = await db.execute(_filtered(start=start, end=end).order_by(AuditLog.timestamp.desc(), AuditLog.id.desc()))
    return list(res.scalars().all())
