# src/backend/routes/departments_api.py
import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.backend.crud.authority_letter import get_field as get_letter_field
from src.backend.crud.department import (
    create_department,
    create_dropdown_option,
    create_field,
    delete_dropdown_option,
    delete_field,
    department_name_taken,
    get_department,
    get_field,
    list_department_fields,
    list_departments,
    list_dropdown_options,
    list_fields,
    replace_department_fields,
    soft_delete_department,
    update_department,
    update_field,
)
from src.backend.models.user import User
from src.backend.schemas.common import to_json
from src.backend.schemas.department import (
    DepartmentCreate,
    DepartmentFieldsUpdate,
    DepartmentOut,
    DepartmentUpdate,
    DropdownOptionCreate,
    DropdownOptionOut,
    FieldCreate,
    FieldOut,
)
from src.backend.utils.audit import log_audit
from src.backend.utils.auth import get_current_user, require_roles
from src.backend.utils.database import get_db
from src.backend.utils.exceptions import FieldConflict, field_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/departments", tags=["Departments"])
fields_router = APIRouter(prefix="/api/fields", tags=["Departments"])
options_router = APIRouter(prefix="/api/field-dropdown-options", tags=["Departments"])

require_admin = require_roles("admin")


def _name_conflict(name: str) -> FieldConflict:
    return FieldConflict([field_error("name", "Department name already exists", name)], message="Department name already exists")


async def _load_department(db: AsyncSession, dep_id: int):
    row = await get_department(db, dep_id)
    if not row:
        raise HTTPException(status_code=404, detail="Department not found")
    return row

# -----------------------------------------------------------------------------
# Departments
# -----------------------------------------------------------------------------

@router.get("")
async def api_list_departments(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return [to_json(DepartmentOut, d) for d in await list_departments(db)]


@router.post("", status_code=201)
async def api_create_department(
    payload: DepartmentCreate,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    if await department_name_taken(db, payload.name):
        raise _name_conflict(payload.name)
    try:
        row = await create_department(db, payload)
    except IntegrityError:
        raise _name_conflict(payload.name)
    await log_audit(db, current_user, "CREATE", "department", row.id, details=f"Created department {row.name}")
    return to_json(DepartmentOut, row)


@router.get("/{dep_id}")
async def api_get_department(
    dep_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return to_json(DepartmentOut, await _load_department(db, dep_id))


@router.put("/{dep_id}")
async def api_update_department(
    dep_id: int,
    payload: DepartmentUpdate,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    row = await _load_department(db, dep_id)
    if await department_name_taken(db, payload.name, exclude_id=row.id):
        raise _name_conflict(payload.name)
    old_name = row.name
    try:
        row = await update_department(db, row, payload)
    except IntegrityError:
        raise _name_conflict(payload.name)
    await log_audit(
        db, current_user, "UPDATE", "department", row.id,
        details=f'Name: "{old_name}" → "{row.name}"',
    )
    return to_json(DepartmentOut, row)


@router.delete("/{dep_id}")
async def api_delete_department(
    dep_id: int,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    row = await _load_department(db, dep_id)
    await soft_delete_department(db, row)
    await log_audit(db, current_user, "DELETE", "department", dep_id, details=f"Deleted department {row.name}")
    return {"message": "Department deleted successfully"}


@router.get("/{dep_id}/fields")
async def api_department_fields(
    dep_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await _load_department(db, dep_id)
    return [to_json(FieldOut, f) for f in await list_department_fields(db, dep_id)]


@router.put("/{dep_id}/fields")
async def api_set_department_fields(
    dep_id: int,
    payload: DepartmentFieldsUpdate,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await _load_department(db, dep_id)
    try:
        rows = await replace_department_fields(db, dep_id, payload.field_ids)
    except IntegrityError:
        raise HTTPException(status_code=400, detail="Unknown field in assignment")
    await log_audit(
        db, current_user, "UPDATE", "department", dep_id,
        details=f"Assigned fields: {', '.join(f.name for f in rows) or 'none'}",
    )
    return [to_json(FieldOut, f) for f in rows]

# -----------------------------------------------------------------------------
# Custom fields
# -----------------------------------------------------------------------------

@fields_router.get("")
async def api_list_fields(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return [to_json(FieldOut, f) for f in await list_fields(db)]


@fields_router.post("", status_code=201)
async def api_create_field(
    payload: FieldCreate,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    try:
        row = await create_field(db, payload)
    except IntegrityError:
        raise FieldConflict([field_error("name", "Field name already exists", payload.name)])
    await log_audit(db, current_user, "CREATE", "field", row.id, details=f"Created field {row.name} ({row.type})")
    return to_json(FieldOut, row)


@fields_router.put("/{field_id}")
async def api_update_field(
    field_id: int,
    payload: FieldCreate,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    row = await get_field(db, field_id)
    if not row:
        raise HTTPException(status_code=404, detail="Field not found")
    try:
        row = await update_field(db, row, payload)
    except IntegrityError:
        raise FieldConflict([field_error("name", "Field name already exists", payload.name)])
    await log_audit(db, current_user, "UPDATE", "field", row.id, details=f"Updated field {row.name}")
    return to_json(FieldOut, row)


@fields_router.delete("/{field_id}")
async def api_delete_field(
    field_id: int,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    row = await get_field(db, field_id)
    if not row:
        raise HTTPException(status_code=404, detail="Field not found")
    name = row.name
    await delete_field(db, row)
    await log_audit(db, current_user, "DELETE", "field", field_id, details=f"Deleted field {name}")
    return {"message": "Field deleted successfully"}

# -----------------------------------------------------------------------------
# Dropdown options
# -----------------------------------------------------------------------------

@options_router.get("/{field_id}")
async def api_list_options(
    field_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return [to_json(DropdownOptionOut, o) for o in await list_dropdown_options(db, field_id)]


@options_router.post("/{field_id}", status_code=201)
async def api_create_option(
    field_id: int,
    payload: DropdownOptionCreate,
    current_user: User = Depends(require_roles("admin", "sub_admin", "manager")),
    db: AsyncSession = Depends(get_db),
):
    if not await get_letter_field(db, field_id):
        raise HTTPException(status_code=404, detail="Field not found")
    try:
        row = await create_dropdown_option(db, field_id, payload)
    except IntegrityError:
        raise HTTPException(status_code=400, detail="Unknown field for dropdown option")
    return to_json(DropdownOptionOut, row)


@options_router.delete("/option/{option_id}")
async def api_delete_option(
    option_id: int,
    current_user: User = Depends(require_roles("admin", "sub_admin", "manager")),
    db: AsyncSession = Depends(get_db),
):
    if not await delete_dropdown_option(db, option_id):
        raise HTTPException(status_code=404, detail="Option not found")
    return {"message": "Option deleted successfully"}
