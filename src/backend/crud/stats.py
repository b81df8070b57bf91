# src/backend/crud/stats.py
from __future__ import annotations

from datetime import date
from typing import Dict, List, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.backend.crud.courier import scope_couriers
from src.backend.crud.received_courier import scope_received
from src.backend.models.courier import Courier
from src.backend.models.received_courier import ReceivedCourier
from src.backend.models.user import User
from src.backend.utils.status_flow import CourierStatus, ReceivedCourierStatus
from src.backend.utils.timezone import today_local

MONTH_ABBR = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


def _month_start(d: date, back: int = 0) -> date:
    idx = d.year * 12 + (d.month - 1) - back
    return date(idx // 12, idx % 12 + 1, 1)


async def _count(db: AsyncSession, stmt) -> int:
    return int(await db.scalar(select(func.count()).select_from(stmt.subquery())) or 0)


async def courier_stats(db: AsyncSession, user: User, department_ids: Sequence[int]) -> Dict[str, int]:
    out_base = scope_couriers(select(Courier.id), user, department_ids).where(
        Courier.status != CourierStatus.DELETED.value
    )
    in_base = scope_received(select(ReceivedCourier.id), user, department_ids)

    today = today_local()
    month_start = _month_start(today)
    next_month = _month_start(today, back=-1)

    sent = await _count(db, out_base)
    received = await _count(db, in_base)
    on_the_way = await _count(db, out_base.where(Courier.status == CourierStatus.ON_THE_WAY.value))
    completed_out = await _count(
        db,
        out_base.where(Courier.status.in_((CourierStatus.COMPLETED.value, CourierStatus.RECEIVED.value))),
    )
    completed_in = await _count(db, in_base.where(ReceivedCourier.status == ReceivedCourierStatus.RECEIVED.value))
    this_month_sent = await _count(
        db, out_base.where(Courier.courier_date >= month_start, Courier.courier_date < next_month)
    )
    this_month_received = await _count(
        db,
        in_base.where(ReceivedCourier.received_date >= month_start, ReceivedCourier.received_date < next_month),
    )
    return {
        "total": sent + received,
        "onTheWay": on_the_way,
        "completed": completed_out + completed_in,
        "sent": sent,
        "received": received,
        "thisMonthSent": this_month_sent,
        "thisMonthReceived": this_month_received,
    }


async def monthly_stats(db: AsyncSession, user: User, department_ids: Sequence[int], months: int = 6) -> List[Dict]:
    out_base = scope_couriers(select(Courier.id), user, department_ids).where(
        Courier.status != CourierStatus.DELETED.value
    )
    in_base = scope_received(select(ReceivedCourier.id), user, department_ids)
    today = today_local()

    rows = []
    for back in range(months - 1, -1, -1):
        start = _month_start(today, back)
        end = _month_start(today, back - 1)
        rows.append({
            "month": MONTH_ABBR[start.month - 1],
            "sent": await _count(db, out_base.where(Courier.courier_date >= start, Courier.courier_date < end)),
            "received": await _count(
                db, in_base.where(ReceivedCourier.received_date >= start, ReceivedCourier.received_date < end)
            ),
        })
    return rows
