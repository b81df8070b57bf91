# src/backend/utils/audit.py
from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.backend.models.audit_log import AuditLog
from src.backend.models.user import User

logger = logging.getLogger(__name__)


def _jsonable(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def snapshot(row: Any, exclude: Iterable[str] = ("password", "confirmation_token")) -> Dict[str, Any]:
    """Column values of an ORM row, for AuditLog.entity_data."""
    skip = set(exclude)
    return {
        c.key: _jsonable(getattr(row, c.key))
        for c in row.__table__.columns
        if c.key not in skip
    }


def describe_changes(before: Dict[str, Any], after: Dict[str, Any], labels: Dict[str, str]) -> List[str]:
    """Human-readable diff like: Status: "on_the_way" → "received"."""
    lines = []
    for key, label in labels.items():
        old, new = before.get(key), after.get(key)
        if old != new:
            lines.append(f'{label}: "{old if old is not None else ""}" → "{new if new is not None else ""}"')
    return lines


async def log_audit(
    db: AsyncSession,
    user: Optional[User],
    action: str,
    entity_type: str,
    entity_id: Any = None,
    *,
    details: Optional[str] = None,
    email_id: Optional[str] = None,
    entity_data: Optional[Dict[str, Any]] = None,
    commit: bool = True,
) -> AuditLog:
    """Append an audit row. With commit=False it joins the caller's transaction."""
    row = AuditLog(
        user_id=user.id if user else None,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id is not None else None,
        email_id=email_id,
        details=details,
        entity_data=_jsonable(entity_data) if entity_data else None,
    )
    db.add(row)
    if commit:
        await db.commit()
    logger.info(
        "audit %s %s:%s by %s",
        action,
        entity_type,
        entity_id,
        user.id if user else "anonymous",
    )
    return row
