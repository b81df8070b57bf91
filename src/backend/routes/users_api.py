# src/backend/routes/users_api.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from src.backend.config import settings
from src.backend.crud.users import (
    create_user,
    deactivate_user,
    find_conflicts,
    get_user,
    list_user_department_ids,
    list_users,
    replace_user_departments,
    set_profile_image,
    update_user,
)
from src.backend.models.user import User as UserModel
from src.backend.schemas.common import to_json
from src.backend.schemas.user import UserCreate, UserDepartmentsUpdate, UserOut, UserUpdate
from src.backend.utils.audit import describe_changes, log_audit, snapshot
from src.backend.utils.auth import get_current_user, require_roles
from src.backend.utils.database import get_db
from src.backend.utils.exceptions import FieldConflict, field_error
from src.backend.utils.media import PROFILE_IMAGE_EXTS, delete_media_file, read_upload, save_media

router = APIRouter(prefix="/api/users", tags=["Users"])
admin_router = APIRouter(prefix="/api/admin", tags=["Users"])

require_user_admin = require_roles("admin", "sub_admin")

# roles a sub_admin may hand out or edit
SUB_ADMIN_MANAGEABLE = ("manager", "user")

USER_LABELS = {
    "name": "Name",
    "email": "Email",
    "role": "Role",
    "department_id": "Department",
    "employee_code": "Employee Code",
    "mobile_number": "Mobile",
    "is_active": "Active",
}


def _check_manageable(actor: UserModel, target_role: str) -> None:
    if actor.role == "admin":
        return
    if target_role not in SUB_ADMIN_MANAGEABLE:
        raise HTTPException(status_code=403, detail="Sub-admins can only manage manager and user accounts")


async def _load(db: AsyncSession, user_id: str) -> UserModel:
    row = await get_user(db, user_id)
    if not row:
        raise HTTPException(status_code=404, detail="User not found")
    return row


@router.get("")
async def api_list_users(
    q: Optional[str] = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    current_user: UserModel = Depends(require_roles("admin", "sub_admin", "manager")),
    db: AsyncSession = Depends(get_db),
):
    rows, total = await list_users(db, q=q, limit=limit, offset=offset)
    return {"users": [to_json(UserOut, r) for r in rows], "total": total}


@admin_router.get("/users")
async def api_admin_list_users(
    q: Optional[str] = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    current_user: UserModel = Depends(require_user_admin),
    db: AsyncSession = Depends(get_db),
):
    roles = None if current_user.role == "admin" else SUB_ADMIN_MANAGEABLE
    rows, total = await list_users(db, q=q, limit=limit, offset=offset, roles=roles)
    return {"users": [to_json(UserOut, r) for r in rows], "total": total}


@router.post("", status_code=201)
async def api_create_user(
    payload: UserCreate,
    current_user: UserModel = Depends(require_user_admin),
    db: AsyncSession = Depends(get_db),
):
    _check_manageable(current_user, payload.role)
    conflicts = await find_conflicts(db, email=str(payload.email), employee_code=payload.employee_code)
    if conflicts:
        raise FieldConflict(conflicts, message=conflicts[0]["message"])
    try:
        user = await create_user(db, payload)
    except IntegrityError:
        raise FieldConflict([field_error("email", "Email is already registered", str(payload.email))])
    await log_audit(
        db, current_user, "CREATE", "user", user.id,
        details=f"Created user {user.email} with role {user.role}",
        entity_data=snapshot(user),
    )
    return to_json(UserOut, user)


@router.post("/profile-image")
async def api_upload_profile_image(
    profileImage: UploadFile = File(...),
    current_user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    data, ext = await read_upload(
        profileImage,
        allowed=PROFILE_IMAGE_EXTS,
        max_size_mb=settings.MAX_PROFILE_IMAGE_MB,
        label="Profile image",
    )
    url = await run_in_threadpool(save_media, "profile-images", data, ext)
    old = current_user.profile_image_url
    user = await set_profile_image(db, current_user, url)
    if old and old != url:
        delete_media_file(old)
    return {"profileImageUrl": url, "user": to_json(UserOut, user)}


@router.get("/{user_id}")
async def api_get_user(
    user_id: str,
    current_user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if current_user.id != user_id and current_user.role not in ("admin", "sub_admin", "manager"):
        raise HTTPException(status_code=403, detail="Insufficient permissions")
    return to_json(UserOut, await _load(db, user_id))


@router.put("/{user_id}")
async def api_update_user(
    user_id: str,
    payload: UserUpdate,
    current_user: UserModel = Depends(require_user_admin),
    db: AsyncSession = Depends(get_db),
):
    row = await _load(db, user_id)
    _check_manageable(current_user, row.role)
    if payload.role is not None:
        _check_manageable(current_user, payload.role)

    conflicts = await find_conflicts(
        db,
        email=str(payload.email) if payload.email else None,
        employee_code=payload.employee_code,
        exclude_id=row.id,
    )
    if conflicts:
        raise FieldConflict(conflicts, message=conflicts[0]["message"])

    before = snapshot(row)
    try:
        row = await update_user(db, row, payload)
    except IntegrityError:
        raise FieldConflict([field_error("email", "Email or employee code already in use", str(payload.email))])
    changes = describe_changes(before, snapshot(row), USER_LABELS)
    if payload.password is not None:
        changes.append("Password: reset by administrator")
    await log_audit(
        db, current_user, "UPDATE", "user", row.id,
        details=f"User {row.email} updated. " + (", ".join(changes) or "No changes detected"),
    )
    return to_json(UserOut, row)


@router.delete("/{user_id}")
async def api_delete_user(
    user_id: str,
    current_user: UserModel = Depends(require_user_admin),
    db: AsyncSession = Depends(get_db),
):
    row = await _load(db, user_id)
    if row.id == current_user.id:
        raise HTTPException(status_code=400, detail="You cannot delete your own account")
    _check_manageable(current_user, row.role)
    await deactivate_user(db, row)
    await log_audit(db, current_user, "DELETE", "user", row.id, details=f"Deactivated user {row.email}")
    return {"message": "User deleted successfully"}


@router.get("/{user_id}/departments")
async def api_user_departments(
    user_id: str,
    current_user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if current_user.id != user_id and current_user.role not in ("admin", "sub_admin"):
        raise HTTPException(status_code=403, detail="Insufficient permissions")
    await _load(db, user_id)
    return {"departmentIds": await list_user_department_ids(db, user_id)}


@router.post("/{user_id}/departments")
async def api_set_user_departments(
    user_id: str,
    payload: UserDepartmentsUpdate,
    current_user: UserModel = Depends(require_user_admin),
    db: AsyncSession = Depends(get_db),
):
    row = await _load(db, user_id)
    _check_manageable(current_user, row.role)
    try:
        ids = await replace_user_departments(db, user_id, payload.department_ids)
    except IntegrityError:
        raise HTTPException(status_code=400, detail="Unknown department in assignment")
    await log_audit(
        db, current_user, "UPDATE", "user", user_id,
        details=f"Departments for {row.email} set to {ids}",
    )
    return {"departmentIds": ids}
