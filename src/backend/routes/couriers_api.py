# src/backend/routes/couriers_api.py
import logging
from datetime import date, timedelta
from typing import Any, Dict, Optional, Tuple, Type

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile

from src.backend.config import settings
from src.backend.crud.branch import branch_named
from src.backend.crud.courier import (
    can_edit,
    change_status,
    check_version,
    confirm_by_token,
    create_courier,
    due_for_reminder,
    export_couriers,
    get_courier,
    list_couriers,
    patch_courier,
    pod_taken,
    save,
    update_courier,
)
from src.backend.crud.department import department_names
from src.backend.crud.received_courier import export_received
from src.backend.crud.users import user_names
from src.backend.crud.vendor import get_vendor_by_name
from src.backend.models.courier import Courier
from src.backend.models.user import User
from src.backend.schemas.common import to_json
from src.backend.schemas.courier import CourierCreate, CourierOut, CourierPatch, CourierUpdate
from src.backend.utils.audit import describe_changes, log_audit, snapshot
from src.backend.utils.auth import MANAGER_ROLES, get_current_user, require_roles, user_department_ids
from src.backend.utils.csv_export import csv_response, export_filename, rows_to_csv
from src.backend.utils.database import get_db
from src.backend.utils.email_notifier import (
    EmailResult,
    app_base_url,
    courier_reminder_email,
    courier_sent_email,
    deliver,
    record_email_result,
    split_addresses,
)
from src.backend.utils.error_handler import html_notice, wants_html
from src.backend.utils.exceptions import ConfirmationAlreadyProcessed, FieldConflict, TransitionNotAllowed, field_error
from src.backend.utils.media import POD_COPY_EXTS, delete_media_file, media_path, read_media, read_upload, save_media
from src.backend.utils.status_flow import CourierStatus, ensure_courier_transition, parse_courier_status
from src.backend.utils.timezone import now_local

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/couriers", tags=["Couriers"])

EXPORT_HEADERS = [
    "Type", "POD No", "To Branch / From Location", "Email", "Vendor", "Date",
    "Status", "Details", "Contact Details", "Remarks", "Department", "Created By",
]

COURIER_LABELS = {
    "to_branch": "To Branch",
    "email": "Email",
    "cc_emails": "CC",
    "courier_date": "Courier Date",
    "vendor": "Vendor",
    "custom_vendor": "Custom Vendor",
    "pod_no": "POD No",
    "details": "Details",
    "contact_details": "Contact Details",
    "receiver_name": "Receiver",
    "remarks": "Remarks",
    "department_id": "Department",
    "pod_copy_path": "POD Copy",
}

# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

async def _parse_body(request: Request, model: Type[BaseModel]) -> Tuple[Any, Optional[UploadFile]]:
    """
    The form posts multipart when a POD copy is attached and JSON otherwise.
    Both shapes are validated by the same schema.
    """
    ctype = (request.headers.get("content-type") or "").lower()
    upload: Optional[UploadFile] = None
    data: Dict[str, Any]
    if ctype.startswith("multipart/form-data") or ctype.startswith("application/x-www-form-urlencoded"):
        form = await request.form()
        data = {}
        for key, value in form.multi_items():
            if isinstance(value, UploadFile):
                if key == "podCopy" and value.filename:
                    upload = value
                continue
            data[key] = value
    else:
        try:
            data = await request.json()
        except ValueError:
            raise HTTPException(status_code=400, detail="Request body must be JSON")
        if not isinstance(data, dict):
            raise HTTPException(status_code=400, detail="Request body must be a JSON object")
    try:
        return model.model_validate(data), upload
    except ValidationError as e:
        raise RequestValidationError(e.errors(include_url=False))


def _pod_conflict(pod_no: Optional[str]) -> FieldConflict:
    return FieldConflict(
        [field_error("podNo", "POD number already exists", pod_no)],
        message="POD number already exists",
    )


async def _store_pod_copy(upload: Optional[UploadFile]) -> Optional[str]:
    if upload is None:
        return None
    data, ext = await read_upload(
        upload,
        allowed=POD_COPY_EXTS,
        max_size_mb=settings.MAX_POD_UPLOAD_MB,
        label="POD copy",
    )
    return await run_in_threadpool(save_media, "pod-copies", data, ext)


async def _load_editable(db: AsyncSession, courier_id: int, user: User) -> Tuple[Courier, list]:
    row = await get_courier(db, courier_id)
    if not row:
        raise HTTPException(status_code=404, detail="Courier not found")
    dept_ids = await user_department_ids(db, user)
    if not can_edit(user, row, dept_ids):
        raise HTTPException(status_code=403, detail="You do not have permission to modify this courier")
    return row, dept_ids


async def _notify_recipient(db: AsyncSession, row: Courier, sender: User) -> EmailResult:
    """Dispatch notification with the confirmation link; the POD copy rides along."""
    base = await app_base_url(db)
    confirm_url = f"{base}/api/couriers/confirm-received?token={row.confirmation_token}"
    names = await department_names(db, [row.department_id])
    vendor = await get_vendor_by_name(db, row.custom_vendor or row.vendor)
    greeting = "Dear Branch Team" if await branch_named(db, row.to_branch) else None

    subject, body = courier_sent_email(
        row,
        confirm_url,
        sender_name=sender.name or sender.email,
        department_name=names.get(row.department_id),
        greeting=greeting,
        vendor_phone=vendor.mobile_number if vendor else None,
    )
    attachments = []
    path = media_path(row.pod_copy_path)
    if path is not None and path.is_file():
        data = await run_in_threadpool(read_media, row.pod_copy_path)
        attachments.append((f"POD_{row.pod_no or row.id}{path.suffix}", data))

    return await deliver(
        db,
        row.email,
        subject,
        body,
        cc=split_addresses(row.cc_emails),
        reply_to=sender.email,
        attachments=attachments,
    )

# -----------------------------------------------------------------------------
# Unauthenticated + fixed paths (before /{courier_id})
# -----------------------------------------------------------------------------

@router.get("/confirm-received")
async def api_confirm_received(
    request: Request,
    token: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db),
):
    html = wants_html(request)
    try:
        row = await confirm_by_token(db, token)
    except ConfirmationAlreadyProcessed as e:
        if html:
            return html_notice(409, "Already confirmed", e.message)
        raise
    if row is None:
        if html:
            return html_notice(404, "Link not valid", "This confirmation link is invalid or has expired.")
        raise HTTPException(status_code=404, detail="Invalid or expired confirmation link")

    await log_audit(
        db, None, "CONFIRM", "courier", row.id,
        details=f"Courier POD {row.pod_no or row.id} confirmed received by recipient",
        email_id=row.email,
    )
    if html:
        return html_notice(200, "Thank you", "The courier has been marked as received.")
    return {"message": "Courier marked as received", "courier": to_json(CourierOut, row)}


@router.get("/export")
async def api_export_couriers(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if start_date and end_date and start_date > end_date:
        raise HTTPException(status_code=400, detail="startDate must not be after endDate")

    dept_ids = await user_department_ids(db, current_user)
    outbound = await export_couriers(db, current_user, dept_ids, start_date, end_date)
    inbound = await export_received(db, current_user, dept_ids, start_date, end_date)

    depts = await department_names(db, [c.department_id for c in outbound] + [r.department_id for r in inbound])
    users = await user_names(db, [c.created_by for c in outbound] + [r.created_by for r in inbound])

    def _creator(uid: Optional[str]) -> str:
        u = users.get(uid) if uid else None
        return (u.name or u.email) if u else ""

    rows = []
    for c in outbound:
        rows.append([
            "Sent Courier", c.pod_no, c.to_branch, c.email, c.custom_vendor or c.vendor,
            c.courier_date.isoformat() if c.courier_date else "", c.status, c.details,
            c.contact_details, c.remarks, depts.get(c.department_id, ""), _creator(c.created_by),
        ])
    for r in inbound:
        rows.append([
            "Received Courier", r.pod_number, r.from_location, r.email_id, r.custom_vendor or r.courier_vendor,
            r.received_date.isoformat(), r.status, "", "",
            r.remarks, depts.get(r.department_id, r.custom_department or ""), _creator(r.created_by),
        ])

    await log_audit(
        db, current_user, "EXPORT", "courier",
        details=f"Exported {len(outbound)} sent and {len(inbound)} received couriers",
    )
    return csv_response(
        rows_to_csv(EXPORT_HEADERS, rows),
        export_filename("couriers-export", start_date, end_date),
    )


@router.post("/send-reminders")
async def api_send_reminders(
    current_user: User = Depends(require_roles("admin")),
    db: AsyncSession = Depends(get_db),
):
    cutoff = now_local() - timedelta(hours=settings.REMINDER_AFTER_HOURS)
    due = await due_for_reminder(db, cutoff)
    base = await app_base_url(db)
    sent = failed = 0
    for row in due:
        subject, body = courier_reminder_email(
            row, f"{base}/api/couriers/confirm-received?token={row.confirmation_token}"
        )
        result = await deliver(db, row.email, subject, body, cc=split_addresses(row.cc_emails))
        record_email_result(row, result)
        if result.status == "sent":
            row.reminder_email_sent = True
            row.reminder_email_sent_at = now_local()
            sent += 1
        else:
            failed += 1
        await save(db, row)
    logger.info("Reminder run: %s due, %s sent, %s not sent", len(due), sent, failed)
    return {"processed": len(due), "sent": sent, "failed": failed}

# -----------------------------------------------------------------------------
# CRUD
# -----------------------------------------------------------------------------

@router.get("")
async def api_list_couriers(
    status: Optional[str] = None,
    q: Optional[str] = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    dept_ids = await user_department_ids(db, current_user)
    rows, total = await list_couriers(
        db, current_user, dept_ids, status=status, q=q, limit=limit, offset=offset
    )
    return {"couriers": [to_json(CourierOut, r) for r in rows], "total": total}


@router.post("", status_code=201)
async def api_create_courier(
    request: Request,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    payload, upload = await _parse_body(request, CourierCreate)

    if payload.department_id and current_user.role != "admin":
        if payload.department_id not in await user_department_ids(db, current_user):
            raise HTTPException(status_code=403, detail="You cannot create couriers for this department")
    if await pod_taken(db, payload.pod_no):
        raise _pod_conflict(payload.pod_no)

    pod_copy_path = await _store_pod_copy(upload)
    try:
        row = await create_courier(db, payload, current_user, pod_copy_path=pod_copy_path)
    except IntegrityError:
        delete_media_file(pod_copy_path)
        raise _pod_conflict(payload.pod_no)

    await log_audit(
        db, current_user, "CREATE", "courier", row.id,
        details=f"Courier to {row.to_branch} created (POD {row.pod_no or 'N/A'})",
        email_id=row.email,
        entity_data=snapshot(row),
    )

    if payload.send_email and row.email:
        result = await _notify_recipient(db, row, current_user)
        record_email_result(row, result)
        row = await save(db, row)
        if result.status == "sent":
            await log_audit(
                db, current_user, "DISPATCH_EMAIL", "courier", row.id,
                details=f"Dispatch notification sent to {row.email}",
                email_id=row.email,
            )
    elif row.email:
        result = EmailResult("skipped", "email not requested")
    else:
        result = EmailResult("skipped", "no recipient address")

    return to_json(CourierOut, row, emailStatus=result.status, emailMessage=result.message)


@router.get("/{courier_id}")
async def api_get_courier(
    courier_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    row, _ = await _load_editable(db, courier_id, current_user)
    return to_json(CourierOut, row)


@router.put("/{courier_id}")
async def api_update_courier(
    courier_id: int,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    row, _ = await _load_editable(db, courier_id, current_user)
    payload, upload = await _parse_body(request, CourierUpdate)

    if payload.pod_no and await pod_taken(db, payload.pod_no, exclude_id=row.id):
        raise _pod_conflict(payload.pod_no)

    before = snapshot(row)
    old_copy = row.pod_copy_path
    pod_copy_path = await _store_pod_copy(upload)
    try:
        row = await update_courier(db, row, payload, pod_copy_path=pod_copy_path)
    except IntegrityError:
        delete_media_file(pod_copy_path)
        raise _pod_conflict(payload.pod_no)
    if pod_copy_path and old_copy and old_copy != pod_copy_path:
        delete_media_file(old_copy)

    changes = describe_changes(before, snapshot(row), COURIER_LABELS)
    await log_audit(
        db, current_user, "UPDATE", "courier", row.id,
        details=f"Courier POD {row.pod_no or row.id} updated. " + (", ".join(changes) or "No changes detected"),
        email_id=row.email,
    )
    return to_json(CourierOut, row)


@router.patch("/{courier_id}")
async def api_patch_courier(
    courier_id: int,
    payload: CourierPatch,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    row, _ = await _load_editable(db, courier_id, current_user)
    check_version(row, payload.version)

    target: Optional[CourierStatus] = None
    if payload.status is not None:
        target = parse_courier_status(payload.status)
        if target is None:
            raise HTTPException(status_code=400, detail=f"Unknown status '{payload.status}'")
        touches_deleted = CourierStatus.DELETED in (target, CourierStatus(row.status))
        if touches_deleted and target.value != row.status and current_user.role not in MANAGER_ROLES:
            raise HTTPException(status_code=403, detail="Only managers can delete or restore couriers")

    edits = CourierUpdate.model_validate(
        payload.model_dump(exclude_unset=True, exclude={"status", "received_date", "received_remarks", "version"})
    )
    if edits.pod_no and await pod_taken(db, edits.pod_no, exclude_id=row.id):
        raise _pod_conflict(edits.pod_no)

    if target is not None and target.value != row.status:
        ensure_courier_transition(row.status, target.value)
        pod_no = edits.pod_no or row.pod_no
        if target is CourierStatus.ON_THE_WAY and await pod_taken(db, pod_no, exclude_id=row.id):
            raise _pod_conflict(pod_no)

    before = snapshot(row)
    try:
        row = await patch_courier(
            db, row, edits,
            target.value if target is not None else None,
            received_date=payload.received_date,
            received_remarks=payload.received_remarks,
        )
    except IntegrityError:
        raise _pod_conflict(edits.pod_no or row.pod_no)

    changes = describe_changes(before, snapshot(row), {**COURIER_LABELS, "status": "Status"})
    action = "STATUS_CHANGE" if before["status"] != row.status else "UPDATE"
    await log_audit(
        db, current_user, action, "courier", row.id,
        details=f"Courier POD {row.pod_no or row.id}: " + (", ".join(changes) or "No changes detected"),
        email_id=row.email,
    )
    return to_json(CourierOut, row)


@router.delete("/{courier_id}")
async def api_delete_courier(
    courier_id: int,
    current_user: User = Depends(require_roles(*MANAGER_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    row, _ = await _load_editable(db, courier_id, current_user)
    previous = row.status
    row = await change_status(db, row, CourierStatus.DELETED.value)
    await log_audit(
        db, current_user, "DELETE", "courier", row.id,
        details=f'Courier POD {row.pod_no or row.id} deleted. Status: "{previous}" → "deleted"',
        email_id=row.email,
    )
    return {"message": "Courier deleted successfully", "courier": to_json(CourierOut, row)}


@router.post("/{courier_id}/restore")
async def api_restore_courier(
    courier_id: int,
    current_user: User = Depends(require_roles(*MANAGER_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    row, _ = await _load_editable(db, courier_id, current_user)
    if row.status != CourierStatus.DELETED.value:
        raise TransitionNotAllowed("Courier", row.status, CourierStatus.ON_THE_WAY.value)
    # the POD number may have been reused while this courier was deleted
    if await pod_taken(db, row.pod_no, exclude_id=row.id):
        raise _pod_conflict(row.pod_no)
    row = await change_status(db, row, CourierStatus.ON_THE_WAY.value)
    await log_audit(
        db, current_user, "RESTORE", "courier", row.id,
        details=f"Courier POD {row.pod_no or row.id} restored to on_the_way",
        email_id=row.email,
    )
    return {"message": "Courier restored successfully", "courier": to_json(CourierOut, row)}
