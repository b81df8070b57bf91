# src/backend/crud/vendor.py
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.backend.models.vendor import Vendor
from src.backend.schemas.vendor import VendorCreate


async def list_vendors(db: AsyncSession, active_only: bool = False) -> List[Vendor]:
    stmt = select(Vendor)
    if active_only:
        stmt = stmt.where(Vendor.is_active.is_(True))
    res = await db.execute(stmt.order_by(Vendor.vendor_name))
    return list(res.scalars().all())


async def get_vendor(db: AsyncSession, vendor_id: int) -> Optional[Vendor]:
    return await db.scalar(select(Vendor).where(Vendor.id == vendor_id))


async def vendor_name_taken(db: AsyncSession, name: str, exclude_id: Optional[int] = None) -> bool:
    stmt = select(Vendor.id).where(func.lower(Vendor.vendor_name) == name.strip().lower())
    if exclude_id:
        stmt = stmt.where(Vendor.id != exclude_id)
    return (await db.scalar(stmt)) is not None


async def create_vendor(db: AsyncSession, data: VendorCreate) -> Vendor:
    row = Vendor(**data.model_dump(mode="json"))
    db.add(row)
    try:
        await db.commit()
        await db.refresh(row)
    except IntegrityError:
        await db.rollback()
        raise
    return row


async def update_vendor(db: AsyncSession, row: Vendor, data: VendorCreate) -> Vendor:
    for key, value in data.model_dump(mode="json").items():
        setattr(row, key, value)
    try:
        await db.commit()
        await db.refresh(row)
    except IntegrityError:
        await db.rollback()
        raise
    return row


async def set_vendor_status(db: AsyncSession, row: Vendor, is_active: bool) -> Vendor:
    row.is_active = is_active
    await db.commit()
    await db.refresh(row)
    return row


async def delete_vendor(db: AsyncSession, row: Vendor) -> None:
    # couriers store the vendor name, not the id
    await db.delete(row)
    await db.commit()


async def get_vendor_by_name(db: AsyncSession, name: Optional[str]) -> Optional[Vendor]:
    if not name:
        return None
    return await db.scalar(select(Vendor).where(func.lower(Vendor.vendor_name) == name.strip().lower()))
