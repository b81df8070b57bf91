# src/backend/routes/vendors_api.py
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.backend.crud.vendor import (
    create_vendor,
    delete_vendor,
    get_vendor,
    list_vendors,
    set_vendor_status,
    update_vendor,
    vendor_name_taken,
)
from src.backend.models.user import User
from src.backend.schemas.common import to_json
from src.backend.schemas.vendor import VendorCreate, VendorOut, VendorStatus, VendorUpdate
from src.backend.utils.audit import log_audit
from src.backend.utils.auth import get_current_user, require_roles
from src.backend.utils.database import get_db
from src.backend.utils.exceptions import FieldConflict, field_error

router = APIRouter(prefix="/api/vendors", tags=["Vendors"])

require_vendor_admin = require_roles("admin", "sub_admin", "manager")


def _conflict(name: str) -> FieldConflict:
    return FieldConflict([field_error("vendorName", "Vendor already exists", name)], message="Vendor already exists")


async def _load(db: AsyncSession, vendor_id: int):
    row = await get_vendor(db, vendor_id)
    if not row:
        raise HTTPException(status_code=404, detail="Vendor not found")
    return row


@router.get("")
async def api_list_vendors(
    active: bool = False,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return [to_json(VendorOut, v) for v in await list_vendors(db, active_only=active)]


@router.post("", status_code=201)
async def api_create_vendor(
    payload: VendorCreate,
    current_user: User = Depends(require_vendor_admin),
    db: AsyncSession = Depends(get_db),
):
    if await vendor_name_taken(db, payload.vendor_name):
        raise _conflict(payload.vendor_name)
    try:
        row = await create_vendor(db, payload)
    except IntegrityError:
        raise _conflict(payload.vendor_name)
    await log_audit(db, current_user, "CREATE", "vendor", row.id, details=f"Created vendor {row.vendor_name}")
    return to_json(VendorOut, row)


@router.put("/{vendor_id}")
async def api_update_vendor(
    vendor_id: int,
    payload: VendorUpdate,
    current_user: User = Depends(require_vendor_admin),
    db: AsyncSession = Depends(get_db),
):
    row = await _load(db, vendor_id)
    if await vendor_name_taken(db, payload.vendor_name, exclude_id=row.id):
        raise _conflict(payload.vendor_name)
    try:
        row = await update_vendor(db, row, payload)
    except IntegrityError:
        raise _conflict(payload.vendor_name)
    await log_audit(db, current_user, "UPDATE", "vendor", row.id, details=f"Updated vendor {row.vendor_name}")
    return to_json(VendorOut, row)


@router.patch("/{vendor_id}/status")
async def api_vendor_status(
    vendor_id: int,
    payload: VendorStatus,
    current_user: User = Depends(require_vendor_admin),
    db: AsyncSession = Depends(get_db),
):
    row = await set_vendor_status(db, await _load(db, vendor_id), payload.is_active)
    await log_audit(
        db, current_user, "STATUS_CHANGE", "vendor", row.id,
        details=f"Vendor {row.vendor_name} {'activated' if row.is_active else 'deactivated'}",
    )
    return to_json(VendorOut, row)


@router.delete("/{vendor_id}")
async def api_delete_vendor(
    vendor_id: int,
    current_user: User = Depends(require_vendor_admin),
    db: AsyncSession = Depends(get_db),
):
    row = await _load(db, vendor_id)
    name = row.vendor_name
    await delete_vendor(db, row)
    await log_audit(db, current_user, "DELETE", "vendor", vendor_id, details=f"Deleted vendor {name}")
    return {"message": "Vendor deleted successfully"}
