# src/backend/routes/audit_logs_api.py
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from src.backend.crud.audit_log import export_audit_logs, list_audit_logs
from src.backend.crud.users import user_names
from src.backend.models.user import User
from src.backend.schemas.audit_log import AuditLogOut
from src.backend.schemas.common import to_json
from src.backend.utils.auth import require_roles
from src.backend.utils.csv_export import csv_response, export_filename, rows_to_csv
from src.backend.utils.database import get_db
from src.backend.utils.timezone import to_local

router = APIRouter(prefix="/api/audit-logs", tags=["Audit Logs"])

EXPORT_HEADERS = ["Action", "Entity Type", "Entity ID", "Details", "User Name", "User Email", "Email ID", "Date & Time"]


def _check_range(start: Optional[date], end: Optional[date]) -> None:
    if start and end and start > end:
        raise HTTPException(status_code=400, detail="startDate must not be after endDate")


@router.get("")
async def api_list_audit_logs(
    action: Optional[str] = None,
    entity_type: Optional[str] = Query(None, alias="entityType"),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(require_roles("admin")),
    db: AsyncSession = Depends(get_db),
):
    _check_range(start_date, end_date)
    rows, total = await list_audit_logs(
        db, action=action, entity_type=entity_type, start=start_date, end=end_date, limit=limit, offset=offset
    )
    users = await user_names(db, [r.user_id for r in rows])
    items = []
    for r in rows:
        u = users.get(r.user_id) if r.user_id else None
        items.append(to_json(
            AuditLogOut, r,
            userName=u.name if u else None,
            userEmail=u.email if u else None,
            timestamp=to_local(r.timestamp).isoformat(),
        ))
    return {"items": items, "total": total, "limit": limit, "offset": offset}


@router.get("/export")
async def api_export_audit_logs(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    current_user: User = Depends(require_roles("admin")),
    db: AsyncSession = Depends(get_db),
):
    _check_range(start_date, end_date)
    rows = await export_audit_logs(db, start_date, end_date)
    users = await user_names(db, [r.user_id for r in rows])

    lines = []
    for r in rows:
        u = users.get(r.user_id) if r.user_id else None
        lines.append([
            r.action, r.entity_type, r.entity_id, r.details,
            u.name if u else "System", u.email if u else "", r.email_id,
            to_local(r.timestamp).strftime("%d/%m/%Y %H:%M:%S"),
        ])
    return csv_response(rows_to_csv(EXPORT_HEADERS, lines), export_filename("audit-logs", start_date, end_date))
