# src/backend/schemas/audit_log.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from src.backend.schemas.common import CamelModel


class AuditLogOut(CamelModel):
    id: int
    user_id: Optional[str] = None
    user_name: Optional[str] = None
    user_email: Optional[str] = None
    action: str
    entity_type: str
    entity_id: Optional[str] = None
    email_id: Optional[str] = None
    details: Optional[str] = None
    entity_data: Optional[Dict[str, Any]] = None
    timestamp: datetime


class AuditLogPage(CamelModel):
    items: List[AuditLogOut]
    total: int
    limit: int
    offset: int
