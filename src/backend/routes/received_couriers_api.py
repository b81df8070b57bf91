# src/backend/routes/received_couriers_api.py
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.backend.crud.received_courier import (
    can_edit,
    confirm_by_token,
    create_received,
    delete_received,
    dispatch,
    get_received,
    list_received,
    pod_taken,
    save,
    update_received,
)
from src.backend.models.received_courier import ReceivedCourier
from src.backend.models.user import User
from src.backend.schemas.common import to_json
from src.backend.schemas.received_courier import (
    ReceivedCourierCreate,
    ReceivedCourierOut,
    ReceivedCourierUpdate,
)
from src.backend.utils.audit import describe_changes, log_audit, snapshot
from src.backend.utils.auth import get_current_user, user_department_ids
from src.backend.utils.database import get_db
from src.backend.utils.email_notifier import (
    EmailResult,
    app_base_url,
    deliver,
    received_courier_arrival_email,
    received_courier_dispatch_email,
    record_email_result,
    split_addresses,
)
from src.backend.utils.error_handler import html_notice, wants_html
from src.backend.utils.exceptions import ConfirmationAlreadyProcessed, FieldConflict, field_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/received-couriers", tags=["Received Couriers"])

RECEIVED_LABELS = {
    "pod_number": "POD Number",
    "received_date": "Received Date",
    "from_location": "From",
    "to_user": "To",
    "courier_vendor": "Vendor",
    "custom_vendor": "Custom Vendor",
    "receiver_name": "Receiver",
    "email_id": "Email",
    "cc_emails": "CC",
    "department_id": "Department",
    "custom_department": "Custom Department",
    "remarks": "Remarks",
}


def _pod_conflict(pod_number: Optional[str]) -> FieldConflict:
    return FieldConflict(
        [field_error("podNumber", "POD number already exists", pod_number)],
        message="POD number already exists",
    )


async def _load_editable(db: AsyncSession, rc_id: int, user: User) -> ReceivedCourier:
    row = await get_received(db, rc_id)
    if not row:
        raise HTTPException(status_code=404, detail="Received courier not found")
    if not can_edit(user, row, await user_department_ids(db, user)):
        raise HTTPException(status_code=403, detail="You do not have permission to modify this courier")
    return row


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
            return html_notice(404, "Link not valid", "This confirmation link is invalid.")
        raise HTTPException(status_code=404, detail="Invalid confirmation link")

    await log_audit(
        db, None, "CONFIRM", "received_courier", row.id,
        details=f"Received courier POD {row.pod_number} confirmed by {row.email_id or 'recipient'}",
        email_id=row.email_id,
    )
    if html:
        return html_notice(200, "Thank you", "Receipt confirmed. The courier desk has been notified.")
    return {"message": "Courier receipt confirmed", "receivedCourier": to_json(ReceivedCourierOut, row)}


@router.get("")
async def api_list_received(
    status: Optional[str] = None,
    q: Optional[str] = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    dept_ids = await user_department_ids(db, current_user)
    rows, total = await list_received(
        db, current_user, dept_ids, status=status, q=q, limit=limit, offset=offset
    )
    return {"receivedCouriers": [to_json(ReceivedCourierOut, r) for r in rows], "total": total}


@router.post("", status_code=201)
async def api_create_received(
    payload: ReceivedCourierCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if await pod_taken(db, payload.pod_number):
        raise _pod_conflict(payload.pod_number)
    try:
        row = await create_received(db, payload, current_user)
    except IntegrityError:
        raise _pod_conflict(payload.pod_number)

    await log_audit(
        db, current_user, "CREATE", "received_courier", row.id,
        details=f"Received courier POD {row.pod_number} from {row.from_location}",
        email_id=row.email_id,
        entity_data=snapshot(row),
    )

    if row.send_email_notification:
        subject, body = received_courier_arrival_email(row)
        result = await deliver(db, row.email_id, subject, body, cc=split_addresses(row.cc_emails))
        record_email_result(row, result)
        row = await save(db, row)
    else:
        result = EmailResult("skipped", "email not requested")
    return to_json(ReceivedCourierOut, row, emailStatus=result.status, emailMessage=result.message)


@router.get("/{rc_id}")
async def api_get_received(
    rc_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return to_json(ReceivedCourierOut, await _load_editable(db, rc_id, current_user))


@router.put("/{rc_id}")
async def api_update_received(
    rc_id: int,
    payload: ReceivedCourierUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    row = await _load_editable(db, rc_id, current_user)
    if payload.pod_number and await pod_taken(db, payload.pod_number, exclude_id=row.id):
        raise _pod_conflict(payload.pod_number)

    before = snapshot(row)
    try:
        row = await update_received(db, row, payload)
    except IntegrityError:
        raise _pod_conflict(payload.pod_number)

    changes = describe_changes(before, snapshot(row), RECEIVED_LABELS)
    await log_audit(
        db, current_user, "UPDATE", "received_courier", row.id,
        details=f"Received courier POD {row.pod_number} updated. " + (", ".join(changes) or "No changes detected"),
        email_id=row.email_id,
    )
    return to_json(ReceivedCourierOut, row)


@router.delete("/{rc_id}")
async def api_delete_received(
    rc_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    row = await _load_editable(db, rc_id, current_user)
    data = snapshot(row)
    await delete_received(db, row)
    await log_audit(
        db, current_user, "DELETE", "received_courier", rc_id,
        details=f"Deleted received courier POD {data['pod_number']}",
        entity_data=data,
    )
    return {"message": "Received courier deleted successfully"}


@router.post("/{rc_id}/dispatch")
async def api_dispatch_received(
    rc_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    row = await _load_editable(db, rc_id, current_user)
    if not row.email_id:
        raise HTTPException(status_code=400, detail="Recipient email is required to dispatch")

    row = await dispatch(db, row)
    base = await app_base_url(db)
    confirm_url = f"{base}/api/received-couriers/confirm-received?token={row.confirmation_token}"
    subject, body = received_courier_dispatch_email(row, confirm_url)
    result = await deliver(
        db, row.email_id, subject, body,
        cc=split_addresses(row.cc_emails),
        reply_to=current_user.email,
    )
    record_email_result(row, result)
    row = await save(db, row)

    await log_audit(
        db, current_user, "DISPATCH_EMAIL", "received_courier", row.id,
        details=f"Dispatched POD {row.pod_number} to {row.email_id} ({result.status})",
        email_id=row.email_id,
    )
    return to_json(ReceivedCourierOut, row, emailStatus=result.status, emailMessage=result.message)
