# src/backend/routes/authority_templates_api.py
"""
Authority letter templates. The router has no prefix of its own; the app
mounts it under both /api/authority-templates and /api/authority-letter-templates.
"""
import logging
from typing import Optional, Sequence

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from src.backend.config import settings
from src.backend.crud.authority_letter import (
    create_template,
    delete_template,
    get_template,
    list_templates,
    set_word_template,
    update_template,
)
from src.backend.crud.department import get_department
from src.backend.models.authority_letter import AuthorityLetterTemplate
from src.backend.models.user import User
from src.backend.schemas.authority_letter import TemplateCreate, TemplateOut, TemplateUpdate
from src.backend.schemas.common import to_json
from src.backend.utils.audit import log_audit
from src.backend.utils.auth import MANAGER_ROLES, get_current_user, require_roles, user_department_ids
from src.backend.utils.database import get_db
from src.backend.utils.exceptions import TemplateRenderError
from src.backend.utils.media import WORD_EXTS, delete_media_file, read_upload, save_media
from src.backend.utils.word_render import extract_docx_html, find_placeholders

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Authority Templates"])

require_template_admin = require_roles(*MANAGER_ROLES)


def check_template_access(user: User, template: AuthorityLetterTemplate, department_ids: Sequence[int]) -> None:
    if user.role == "admin":
        return
    if template.department_id not in department_ids:
        raise HTTPException(status_code=403, detail="Access denied to this template")


async def load_template(db: AsyncSession, template_id: int, user: User) -> AuthorityLetterTemplate:
    row = await get_template(db, template_id)
    if not row:
        raise HTTPException(status_code=404, detail="Template not found")
    check_template_access(user, row, await user_department_ids(db, user))
    return row


async def _check_department(db: AsyncSession, user: User, department_id: Optional[int]) -> None:
    if department_id is None:
        return
    # sqlite does not enforce the foreign key
    if not await get_department(db, department_id):
        raise HTTPException(status_code=400, detail="Unknown department for template")
    if user.role == "admin":
        return
    if department_id not in await user_department_ids(db, user):
        raise HTTPException(status_code=403, detail="Access denied to this department")


@router.get("")
async def api_list_templates(
    department_id: Optional[int] = Query(None, alias="departmentId"),
    active: bool = False,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if current_user.role == "admin":
        ids = [department_id] if department_id else None
    else:
        ids = await user_department_ids(db, current_user)
        if department_id:
            ids = [d for d in ids if d == department_id]
    rows = await list_templates(db, department_ids=ids, active_only=active)
    return [to_json(TemplateOut, t) for t in rows]


@router.post("/extract-word-content")
async def api_extract_word_content(
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
):
    data, ext = await read_upload(file, allowed=WORD_EXTS, max_size_mb=settings.MAX_WORD_TEMPLATE_MB, label="Word file")
    if ext != ".docx":
        raise TemplateRenderError("Legacy .doc files cannot be converted. Save the file as .docx first.")
    html_content = await run_in_threadpool(extract_docx_html, data)
    placeholders = await run_in_threadpool(find_placeholders, data)
    return {"htmlContent": html_content, "placeholders": placeholders}


@router.get("/{department_id}")
async def api_department_templates(
    department_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await _check_department(db, current_user, department_id)
    rows = await list_templates(db, department_ids=[department_id], active_only=True)
    return [to_json(TemplateOut, t) for t in rows]


@router.post("", status_code=201)
async def api_create_template(
    payload: TemplateCreate,
    current_user: User = Depends(require_template_admin),
    db: AsyncSession = Depends(get_db),
):
    if payload.department_id is None and current_user.role != "admin":
        payload.department_id = current_user.department_id
    await _check_department(db, current_user, payload.department_id)
    try:
        row = await create_template(db, payload)
    except IntegrityError:
        raise HTTPException(status_code=400, detail="Unknown department for template")
    await log_audit(
        db, current_user, "CREATE", "authority_template", row.id,
        details=f"Created authority letter template {row.template_name}",
    )
    return to_json(TemplateOut, row)


@router.put("/{template_id}")
async def api_update_template(
    template_id: int,
    payload: TemplateUpdate,
    current_user: User = Depends(require_template_admin),
    db: AsyncSession = Depends(get_db),
):
    row = await load_template(db, template_id, current_user)
    if "department_id" in payload.model_fields_set:
        await _check_department(db, current_user, payload.department_id)
    try:
        row = await update_template(db, row, payload)
    except IntegrityError:
        raise HTTPException(status_code=400, detail="Unknown department for template")
    await log_audit(
        db, current_user, "UPDATE", "authority_template", row.id,
        details=f"Updated authority letter template {row.template_name}",
    )
    return to_json(TemplateOut, row)


@router.delete("/{template_id}")
async def api_delete_template(
    template_id: int,
    current_user: User = Depends(require_template_admin),
    db: AsyncSession = Depends(get_db),
):
    row = await load_template(db, template_id, current_user)
    name, word_url = row.template_name, row.word_template_url
    await delete_template(db, row)
    delete_media_file(word_url)
    await log_audit(
        db, current_user, "DELETE", "authority_template", template_id,
        details=f"Deleted authority letter template {name}",
    )
    return {"message": "Template deleted successfully"}


@router.post("/{template_id}/upload-word")
async def api_upload_word(
    template_id: int,
    file: UploadFile = File(...),
    current_user: User = Depends(require_template_admin),
    db: AsyncSession = Depends(get_db),
):
    row = await load_template(db, template_id, current_user)
    data, ext = await read_upload(file, allowed=WORD_EXTS, max_size_mb=settings.MAX_WORD_TEMPLATE_MB, label="Word file")

    placeholders = []
    if ext == ".docx":
        # rejects files that are not a real .docx package
        placeholders = await run_in_threadpool(find_placeholders, data)

    url = await run_in_threadpool(save_media, "word-templates", data, ext)
    old = row.word_template_url
    row = await set_word_template(db, row, url)
    if old and old != url:
        delete_media_file(old)

    await log_audit(
        db, current_user, "UPDATE", "authority_template", row.id,
        details=f"Uploaded Word template {file.filename} for {row.template_name}",
    )
    return {
        "wordTemplateUrl": url,
        "placeholders": placeholders,
        "renderable": ext == ".docx",
        "template": to_json(TemplateOut, row),
    }
