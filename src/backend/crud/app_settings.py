# src/backend/crud/app_settings.py
from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.backend.models.app_settings import SamlSettings, SmtpSettings, UserPolicy
from src.backend.schemas.app_settings import SamlSettingsIn, SmtpSettingsIn

# Frontend tabs a department policy can switch off
POLICY_TABS = (
    "dashboard",
    "couriers",
    "received_couriers",
    "authority_letter",
    "branches",
    "vendors",
    "departments",
    "users",
    "audit_logs",
    "settings",
)


async def get_smtp(db: AsyncSession) -> Optional[SmtpSettings]:
    return await db.scalar(select(SmtpSettings).order_by(SmtpSettings.id).limit(1))


async def save_smtp(db: AsyncSession, data: SmtpSettingsIn) -> SmtpSettings:
    row = await get_smtp(db)
    if row is None:
        row = SmtpSettings(host=data.host, from_email=str(data.from_email))
        db.add(row)
    values = data.model_dump(exclude={"password"})
    values["from_email"] = str(data.from_email)
    for key, value in values.items():
        setattr(row, key, value)
    # an empty password field keeps the stored secret
    if data.password is not None and data.password.get_secret_value():
        row.password = data.password.get_secret_value()
    await db.commit()
    await db.refresh(row)
    return row


async def get_saml(db: AsyncSession) -> Optional[SamlSettings]:
    return await db.scalar(select(SamlSettings).order_by(SamlSettings.id).limit(1))


async def save_saml(db: AsyncSession, data: SamlSettingsIn) -> SamlSettings:
    row = await get_saml(db)
    if row is None:
        row = SamlSettings()
        db.add(row)
    for key, value in data.model_dump().items():
        setattr(row, key, value)
    await db.commit()
    await db.refresh(row)
    return row


async def list_policies(db: AsyncSession, department_id: Optional[int] = None) -> List[UserPolicy]:
    stmt = select(UserPolicy)
    if department_id is not None:
        stmt = stmt.where(UserPolicy.department_id == department_id)
    res = await db.execute(stmt.order_by(UserPolicy.department_id, UserPolicy.tab_name))
    return list(res.scalars().all())


async def save_policies(db: AsyncSession, department_id: int, tabs: Dict[str, bool]) -> List[UserPolicy]:
    existing = {p.tab_name: p for p in await list_policies(db, department_id)}
    for tab, enabled in tabs.items():
        row = existing.get(tab)
        if row is None:
            db.add(UserPolicy(department_id=department_id, tab_name=tab, is_enabled=bool(enabled)))
        else:
            row.is_enabled = bool(enabled)
    await db.commit()
    return await list_policies(db, department_id)


async def enabled_tabs(db: AsyncSession, department_ids: Sequence[int]) -> Dict[str, bool]:
    """
    A tab is visible unless every one of the user's departments switched it off.
    Departments without a policy row leave the tab enabled.
    """
    tabs = {t: True for t in POLICY_TABS}
    if not department_ids:
        return tabs
    res = await db.execute(select(UserPolicy).where(UserPolicy.department_id.in_(tuple(department_ids))))
    by_tab: Dict[str, List[bool]] = {}
    for p in res.scalars().all():
        by_tab.setdefault(p.tab_name, []).append(p.is_enabled)
    for tab, flags in by_tab.items():
        tabs[tab] = any(flags) or len(flags) < len(set(department_ids))
    return tabs
