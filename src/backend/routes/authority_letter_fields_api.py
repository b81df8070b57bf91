# src/backend/routes/authority_letter_fields_api.py
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.backend.crud.authority_letter import (
    create_field,
    delete_field,
    field_name_taken,
    get_field,
    get_template,
    list_fields,
    move_field,
    update_field,
)
from src.backend.models.authority_letter import AuthorityLetterField
from src.backend.models.user import User
from src.backend.routes.authority_templates_api import check_template_access, load_template
from src.backend.schemas.authority_letter import FieldReorder, LetterFieldCreate, LetterFieldOut, LetterFieldUpdate
from src.backend.schemas.common import to_json
from src.backend.utils.audit import log_audit
from src.backend.utils.auth import MANAGER_ROLES, get_current_user, require_roles, user_department_ids
from src.backend.utils.database import get_db
from src.backend.utils.exceptions import FieldConflict, field_error

router = APIRouter(prefix="/api/authority-letter-fields", tags=["Authority Letter Fields"])

require_field_admin = require_roles(*MANAGER_ROLES)


def _name_conflict(name: str) -> FieldConflict:
    return FieldConflict(
        [field_error("fieldName", "A field with this name already exists in the template", name)],
        message="A field with this name already exists in the template",
    )


async def _load_field(db: AsyncSession, field_id: int, user: User) -> AuthorityLetterField:
    row = await get_field(db, field_id)
    if not row:
        raise HTTPException(status_code=404, detail="Field not found")
    if user.role == "admin":
        return row
    dept_ids = await user_department_ids(db, user)
    if row.template_id:
        template = await get_template(db, row.template_id)
        if template:
            check_template_access(user, template, dept_ids)
            return row
    if row.department_id not in dept_ids:
        raise HTTPException(status_code=403, detail="Access denied to this template")
    return row


@router.get("")
async def api_list_fields(
    template_id: Optional[int] = Query(None, alias="templateId"),
    department_id: Optional[int] = Query(None, alias="departmentId"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if template_id is None and department_id is None:
        raise HTTPException(status_code=400, detail="templateId or departmentId is required")
    if template_id is not None:
        await load_template(db, template_id, current_user)
    elif current_user.role != "admin" and department_id not in await user_department_ids(db, current_user):
        raise HTTPException(status_code=403, detail="Access denied to this department")
    rows = await list_fields(db, template_id=template_id, department_id=department_id)
    return [to_json(LetterFieldOut, f) for f in rows]


@router.post("", status_code=201)
async def api_create_field(
    payload: LetterFieldCreate,
    current_user: User = Depends(require_field_admin),
    db: AsyncSession = Depends(get_db),
):
    if payload.template_id is None:
        raise HTTPException(status_code=400, detail="templateId is required")
    template = await load_template(db, payload.template_id, current_user)
    if payload.department_id is None:
        payload.department_id = template.department_id
    if await field_name_taken(db, payload.template_id, payload.field_name):
        raise _name_conflict(payload.field_name)
    try:
        row = await create_field(db, payload)
    except IntegrityError:
        raise _name_conflict(payload.field_name)
    await log_audit(
        db, current_user, "CREATE", "authority_letter_field", row.id,
        details=f"Added field ##{row.field_name}## to template {template.template_name}",
    )
    return to_json(LetterFieldOut, row)


@router.put("/reorder")
async def api_reorder_field(
    payload: FieldReorder,
    current_user: User = Depends(require_field_admin),
    db: AsyncSession = Depends(get_db),
):
    row = await _load_field(db, payload.field_id, current_user)
    siblings = await move_field(db, row, payload.direction)
    return [to_json(LetterFieldOut, f) for f in siblings]


@router.put("/{field_id}")
async def api_update_field(
    field_id: int,
    payload: LetterFieldUpdate,
    current_user: User = Depends(require_field_admin),
    db: AsyncSession = Depends(get_db),
):
    row = await _load_field(db, field_id, current_user)
    if payload.field_name and await field_name_taken(db, row.template_id, payload.field_name, exclude_id=row.id):
        raise _name_conflict(payload.field_name)
    try:
        row = await update_field(db, row, payload)
    except IntegrityError:
        raise _name_conflict(payload.field_name or row.field_name)
    await log_audit(
        db, current_user, "UPDATE", "authority_letter_field", row.id,
        details=f"Updated field ##{row.field_name}##",
    )
    return to_json(LetterFieldOut, row)


@router.delete("/{field_id}")
async def api_delete_field(
    field_id: int,
    current_user: User = Depends(require_field_admin),
    db: AsyncSession = Depends(get_db),
):
    row = await _load_field(db, field_id, current_user)
    name = row.field_name
    await delete_field(db, row)
    await log_audit(
        db, current_user, "DELETE", "authority_letter_field", field_id,
        details=f"Deleted field ##{name}##",
    )
    return {"message": "Field deleted successfully"}
