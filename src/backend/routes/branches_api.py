# src/backend/routes/branches_api.py
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.backend.config import settings
from src.backend.crud.branch import (
    bulk_delete_branches,
    code_taken,
    create_branch,
    delete_branch,
    existing_codes,
    export_branches,
    get_branch,
    get_import_report,
    insert_branches,
    list_branches,
    save_import_report,
    set_branch_status,
    update_branch,
)
from src.backend.models.user import User
from src.backend.schemas.branch import (
    BranchBulkDelete,
    BranchCreate,
    BranchImportCommit,
    BranchOut,
    BranchStatusUpdate,
    BranchUpdate,
)
from src.backend.schemas.common import to_json
from src.backend.utils.audit import describe_changes, log_audit, snapshot
from src.backend.utils.auth import get_current_user, require_roles
from src.backend.utils.branch_import import (
    EXPORT_HEADERS,
    SAMPLE_HEADERS,
    SAMPLE_ROWS,
    ImportAnalysis,
    analyze_rows,
    unknown_headers,
)
from src.backend.utils.csv_export import csv_response, read_csv_rows, rows_to_csv
from src.backend.utils.database import get_db
from src.backend.utils.exceptions import BulkLimitExceeded, FieldConflict, field_error
from src.backend.utils.media import CSV_EXTS, read_upload
from src.backend.utils.timezone import to_local

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/branches", tags=["Branches"])

require_branch_admin = require_roles("admin", "manager", "sub_admin")

BRANCH_LABELS = {
    "branch_name": "Branch Name",
    "branch_code": "Branch Code",
    "branch_address": "Address",
    "pincode": "Pincode",
    "state": "State",
    "email": "Email",
    "latitude": "Latitude",
    "longitude": "Longitude",
    "status": "Status",
}


def _code_conflict(code: str) -> FieldConflict:
    return FieldConflict(
        [field_error("branchCode", "Branch code already exists", code)],
        message="Branch code already exists",
    )


async def _load(db: AsyncSession, branch_id: int):
    row = await get_branch(db, branch_id)
    if not row:
        raise HTTPException(status_code=404, detail="Branch not found")
    return row


async def _analyze_upload(db: AsyncSession, upload: UploadFile) -> ImportAnalysis:
    data, _ = await read_upload(
        upload,
        allowed=CSV_EXTS,
        max_size_mb=settings.MAX_CSV_UPLOAD_MB,
        label="CSV file",
    )
    headers, rows = read_csv_rows(data)
    if len(unknown_headers(headers)) == len([h for h in headers if h]):
        raise HTTPException(
            status_code=400,
            detail=f"Unrecognised CSV header. Expected columns: {', '.join(SAMPLE_HEADERS)}",
        )
    if not rows:
        raise HTTPException(status_code=400, detail="CSV file has no data rows")
    if len(rows) > settings.BULK_MAX_ROWS:
        raise BulkLimitExceeded(len(rows), settings.BULK_MAX_ROWS)
    return analyze_rows(rows, await existing_codes(db))


def _approval_required(analysis_dict: dict, has_duplicates: bool) -> HTTPException:
    # duplicates are a conflict; bad rows alone are a plain client error
    status = 409 if has_duplicates else 400
    return HTTPException(
        status_code=status,
        detail={
            "message": "Upload contains duplicates or invalid rows. Admin approval is required to import the valid rows.",
            "requiresApproval": True,
            **analysis_dict,
        },
    )


def _import_summary(created, duplicates: int, invalid: int) -> dict:
    return {
        "inserted": len(created),
        "skippedDuplicates": duplicates,
        "skippedInvalid": invalid,
        "branches": [to_json(BranchOut, b) for b in created],
    }

# -----------------------------------------------------------------------------
# Fixed paths (before /{branch_id})
# -----------------------------------------------------------------------------

@router.get("/export")
async def api_export_branches(
    status: str = Query("all", pattern="^(all|active|closed)$"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    rows = await export_branches(db, status)
    lines = [
        [
            b.sr_no, b.branch_name, b.branch_code, b.branch_address, b.pincode, b.state,
            b.email, b.latitude, b.longitude, b.status,
            to_local(b.created_at).strftime("%Y-%m-%d") if b.created_at else "",
        ]
        for b in rows
    ]
    await log_audit(db, current_user, "EXPORT", "branch", details=f"Exported {len(rows)} {status} branches")
    return csv_response(rows_to_csv(EXPORT_HEADERS, lines), f"{status}_branches.csv")


@router.get("/sample-csv")
async def api_branch_sample_csv(current_user: User = Depends(get_current_user)):
    return csv_response(rows_to_csv(SAMPLE_HEADERS, SAMPLE_ROWS), "branch_sample.csv")


@router.post("/bulk-upload", status_code=201)
async def api_bulk_upload(
    file: UploadFile = File(...),
    admin_approval: bool = Form(False, alias="adminApproval"),
    current_user: User = Depends(require_branch_admin),
    db: AsyncSession = Depends(get_db),
):
    analysis = await _analyze_upload(db, file)
    if analysis.has_issues and not admin_approval:
        raise _approval_required(analysis.as_dict(), bool(analysis.duplicates))

    try:
        created = await insert_branches(db, analysis.valid)
    except IntegrityError:
        raise HTTPException(status_code=409, detail="Branch codes changed during import. Upload again.")

    await log_audit(
        db, current_user, "BULK_UPLOAD", "branch",
        details=(
            f"Imported {len(created)} of {analysis.total_rows} rows "
            f"({len(analysis.duplicates)} duplicates, {len(analysis.validation_errors)} invalid skipped)"
        ),
    )
    return _import_summary(created, len(analysis.duplicates), len(analysis.validation_errors))


@router.post("/bulk-upload/validate")
async def api_bulk_validate(
    file: UploadFile = File(...),
    current_user: User = Depends(require_branch_admin),
    db: AsyncSession = Depends(get_db),
):
    analysis = await _analyze_upload(db, file)
    report = await save_import_report(db, analysis, current_user.id)
    return {"reportId": report.id, "requiresApproval": analysis.has_issues, **analysis.as_dict()}


@router.post("/bulk-upload/commit", status_code=201)
async def api_bulk_commit(
    payload: BranchImportCommit,
    current_user: User = Depends(require_branch_admin),
    db: AsyncSession = Depends(get_db),
):
    report = await get_import_report(db, payload.report_id)
    if not report:
        raise HTTPException(status_code=404, detail="Import report not found")
    if current_user.role != "admin" and report.created_by != current_user.id:
        raise HTTPException(status_code=403, detail="Only the user who validated this import can commit it")
    if report.committed_at is not None:
        raise HTTPException(status_code=409, detail="This import has already been committed")

    # the table may have changed since validation
    current = {c.strip().lower() for c in await existing_codes(db)}
    to_insert, late_duplicates = [], []
    for r in report.rows:
        if str(r.get("branch_code", "")).lower() in current:
            late_duplicates.append({
                "row": r.get("row"),
                **field_error("branchCode", "Branch code already exists", r.get("branch_code")),
            })
        else:
            to_insert.append(r)

    summary = dict(report.report or {})
    duplicates = list(summary.get("duplicates", [])) + late_duplicates
    invalid = list(summary.get("validationErrors", []))
    if (duplicates or invalid) and not payload.admin_approval:
        summary["duplicates"] = duplicates
        raise _approval_required(summary, bool(duplicates))

    try:
        created = await insert_branches(db, to_insert, report=report)
    except IntegrityError:
        raise HTTPException(status_code=409, detail="Branch codes changed during import. Validate again.")

    await log_audit(
        db, current_user, "BULK_UPLOAD", "branch", report.id,
        details=f"Committed import report {report.id}: {len(created)} branches inserted",
    )
    return _import_summary(created, len(duplicates), len(invalid))


@router.post("/bulk-delete")
async def api_bulk_delete(
    payload: BranchBulkDelete,
    current_user: User = Depends(require_branch_admin),
    db: AsyncSession = Depends(get_db),
):
    codes = await bulk_delete_branches(db, payload.branch_ids)
    await log_audit(
        db, current_user, "BULK_DELETE", "branch",
        details=f"Deleted {len(codes)} branches: {', '.join(codes)}" if codes else "No branches matched",
    )
    return {"deleted": len(codes), "branchCodes": codes}

# -----------------------------------------------------------------------------
# CRUD
# -----------------------------------------------------------------------------

@router.get("")
async def api_list_branches(
    q: Optional[str] = None,
    status: Optional[str] = Query(None, pattern="^(all|active|closed)$"),
    limit: int = Query(50, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    rows, total = await list_branches(db, q=q, status=status, limit=limit, offset=offset)
    return {"branches": [to_json(BranchOut, b) for b in rows], "total": total}


@router.post("", status_code=201)
async def api_create_branch(
    payload: BranchCreate,
    current_user: User = Depends(require_branch_admin),
    db: AsyncSession = Depends(get_db),
):
    if await code_taken(db, payload.branch_code):
        raise _code_conflict(payload.branch_code)
    try:
        row = await create_branch(db, payload)
    except IntegrityError:
        raise _code_conflict(payload.branch_code)
    await log_audit(
        db, current_user, "CREATE", "branch", row.id,
        details=f"Created branch {row.branch_code} ({row.branch_name})",
        entity_data=snapshot(row),
    )
    return to_json(BranchOut, row)


@router.get("/{branch_id}")
async def api_get_branch(
    branch_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return to_json(BranchOut, await _load(db, branch_id))


@router.put("/{branch_id}")
async def api_update_branch(
    branch_id: int,
    payload: BranchUpdate,
    current_user: User = Depends(require_branch_admin),
    db: AsyncSession = Depends(get_db),
):
    row = await _load(db, branch_id)
    if await code_taken(db, payload.branch_code, exclude_id=row.id):
        raise _code_conflict(payload.branch_code)
    before = snapshot(row)
    try:
        row = await update_branch(db, row, payload)
    except IntegrityError:
        raise _code_conflict(payload.branch_code)
    changes = describe_changes(before, snapshot(row), BRANCH_LABELS)
    await log_audit(
        db, current_user, "UPDATE", "branch", row.id,
        details=f"Branch {row.branch_code} updated. " + (", ".join(changes) or "No changes detected"),
    )
    return to_json(BranchOut, row)


@router.patch("/{branch_id}/status")
async def api_branch_status(
    branch_id: int,
    payload: BranchStatusUpdate,
    current_user: User = Depends(require_branch_admin),
    db: AsyncSession = Depends(get_db),
):
    row = await _load(db, branch_id)
    previous = row.status
    row = await set_branch_status(db, row, payload.status)
    await log_audit(
        db, current_user, "STATUS_CHANGE", "branch", row.id,
        details=f'Branch {row.branch_code} status: "{previous}" → "{row.status}"',
    )
    return to_json(BranchOut, row)


@router.delete("/{branch_id}")
async def api_delete_branch(
    branch_id: int,
    current_user: User = Depends(require_branch_admin),
    db: AsyncSession = Depends(get_db),
):
    row = await _load(db, branch_id)
    data = snapshot(row)
    await delete_branch(db, row)
    await log_audit(
        db, current_user, "DELETE", "branch", branch_id,
        details=f"Deleted branch {data['branch_code']}",
        entity_data=data,
    )
    return {"message": "Branch deleted successfully"}
