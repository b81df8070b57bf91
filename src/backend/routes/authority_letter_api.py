# src/backend/routes/authority_letter_api.py
"""
Authority letter generation: HTML preview, PDF, DOCX and bulk zip output.
"""
import asyncio
import io
import json
import logging
import re
import zipfile
from datetime import date
from typing import Any, Dict, List, Optional, Sequence, Tuple

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Response, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from src.backend.config import settings
from src.backend.crud.authority_letter import list_fields
from src.backend.models.authority_letter import AuthorityLetterTemplate
from src.backend.models.user import User
from src.backend.routes.authority_templates_api import load_template
from src.backend.schemas.authority_letter import GenerateRequest
from src.backend.utils.audit import log_audit
from src.backend.utils.auth import get_current_user, user_department_ids
from src.backend.utils.csv_export import csv_response, read_csv_rows, rows_to_csv
from src.backend.utils.database import get_db
from src.backend.utils.exceptions import (
    AppError,
    BulkLimitExceeded,
    FieldValidationError,
    GenerationTimeout,
    TemplateRenderError,
)
from src.backend.utils.media import CSV_EXTS, read_media, read_upload
from src.backend.utils.pdf_render import html_to_pdf
from src.backend.utils.placeholders import (
    FieldSpec,
    RenderReport,
    prepare,
    render_html,
    replacement_for,
    resolve_policy,
)
from src.backend.utils.timezone import today_local
from src.backend.utils.word_render import DOCX_MEDIA_TYPE, find_placeholders, html_to_docx, render_docx

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/authority-letter", tags=["Authority Letter"])

PDF_MEDIA_TYPE = "application/pdf"
_ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)
_UNSAFE_NAME_CHARS = re.compile(r"[^\w.-]+")


# -----------------------------------------------------------------------------
# Rendering helpers (blocking; called through the threadpool)
# -----------------------------------------------------------------------------
class LetterJob:
    """Everything needed to render one template, loaded once per request."""

    def __init__(self, template: AuthorityLetterTemplate, specs: List[FieldSpec], policy: str, today: date):
        self.template = template
        self.specs = specs
        self.policy = policy
        self.today = today
        self.word_data: Optional[bytes] = None

    @property
    def has_word(self) -> bool:
        return bool(self.template.word_template_url)

    def load_word(self) -> bytes:
        url = self.template.word_template_url or ""
        if url.lower().endswith(".doc"):
            raise TemplateRenderError("Legacy .doc templates cannot be rendered. Upload the template as .docx.")
        if self.word_data is None:
            self.word_data = read_media(url)
        return self.word_data

    def html(self, values: Dict[str, Any]) -> Tuple[str, RenderReport]:
        result = render_html(self.template.template_content, self.specs, values, today=self.today, policy=self.policy)
        return result.content, result.report

    def pdf(self, values: Dict[str, Any]) -> Tuple[bytes, RenderReport]:
        content, report = self.html(values)
        return html_to_pdf(content, title=self.template.template_name), report

    def docx(self, values: Dict[str, Any]) -> Tuple[bytes, RenderReport]:
        if not self.has_word:
            content, report = self.html(values)
            return html_to_docx(content), report
        data = self.load_word()
        _, resolved, report = prepare(
            None, self.specs, values,
            today=self.today, policy=self.policy, extra_names=find_placeholders(data),
        )
        return render_docx(data, lambda name: replacement_for(name, resolved, self.policy)), report


async def _job(db: AsyncSession, user: User, template_id: int, strict: bool) -> LetterJob:
    template = await load_template(db, template_id, user)
    fields = await list_fields(db, template_id=template.id)
    if not fields and template.department_id:
        fields = await list_fields(db, department_id=template.department_id)
    specs = [FieldSpec.from_model(f) for f in fields]
    return LetterJob(template, specs, resolve_policy(strict, settings.PLACEHOLDER_POLICY), today_local())


def _file_response(data: bytes, media_type: str, filename: str, report: RenderReport, inline: bool = False) -> Response:
    disposition = "inline" if inline else "attachment"
    headers = {"Content-Disposition": f'{disposition}; filename="{filename}"'}
    if report.warnings:
        # JSON keeps non-ASCII field names header-safe
        headers["X-Template-Warnings"] = json.dumps(report.warnings)
    return Response(content=data, media_type=media_type, headers=headers)


def _filename(job: LetterJob, ext: str) -> str:
    return f"authority_letter_{job.template.id}_{job.today.isoformat()}.{ext}"


# -----------------------------------------------------------------------------
# Single letters
# -----------------------------------------------------------------------------
@router.post("/preview")
async def api_preview(
    payload: GenerateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    job = await _job(db, current_user, payload.template_id, payload.strict)
    content, report = job.html(payload.field_values)
    return {
        "htmlContent": content,
        "templateName": job.template.template_name,
        "warnings": report.warnings,
        "unknownPlaceholders": report.unknown_placeholders,
    }


@router.post("/preview-pdf")
async def api_preview_pdf(
    payload: GenerateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    job = await _job(db, current_user, payload.template_id, payload.strict)
    data, report = await run_in_threadpool(job.pdf, payload.field_values)
    return _file_response(data, PDF_MEDIA_TYPE, _filename(job, "pdf"), report, inline=True)


async def _send_pdf(db: AsyncSession, user: User, job: LetterJob, values: Dict[str, Any]) -> Response:
    data, report = await run_in_threadpool(job.pdf, values)
    await log_audit(
        db, user, "authority_letter_pdf", "authority_letter", job.template.id,
        details=f"Generated PDF from template {job.template.template_name}",
    )
    return _file_response(data, PDF_MEDIA_TYPE, _filename(job, "pdf"), report)


async def _send_docx(db: AsyncSession, user: User, job: LetterJob, values: Dict[str, Any]) -> Response:
    data, report = await run_in_threadpool(job.docx, values)
    await log_audit(
        db, user, "authority_letter_word", "authority_letter", job.template.id,
        details=f"Generated Word document from template {job.template.template_name}",
    )
    return _file_response(data, DOCX_MEDIA_TYPE, _filename(job, "docx"), report)


@router.post("/generate-pdf")
async def api_generate_pdf(
    payload: GenerateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    job = await _job(db, current_user, payload.template_id, payload.strict)
    return await _send_pdf(db, current_user, job, payload.field_values)


@router.post("/generate")
async def api_generate_docx(
    payload: GenerateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    job = await _job(db, current_user, payload.template_id, payload.strict)
    return await _send_docx(db, current_user, job, payload.field_values)


@router.post("/generate-template")
async def api_generate_from_template(
    payload: GenerateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Word output when the template has a Word file, PDF otherwise."""
    job = await _job(db, current_user, payload.template_id, payload.strict)
    if job.has_word:
        return await _send_docx(db, current_user, job, payload.field_values)
    return await _send_pdf(db, current_user, job, payload.field_values)


# -----------------------------------------------------------------------------
# Bulk
# -----------------------------------------------------------------------------
def _row_values(raw: Dict[str, str], specs: Sequence[FieldSpec]) -> Dict[str, str]:
    """CSV headers match field names exactly; a field label is accepted too."""
    values: Dict[str, str] = dict(raw)
    by_label = {s.label.strip().lower(): s.name for s in specs if s.label}
    names = {s.name for s in specs}
    for header, value in raw.items():
        if header in names:
            continue
        name = by_label.get(header.strip().lower())
        if name and name not in raw:
            values[name] = value
    return values


def _row_errors(exc: AppError) -> List[str]:
    errors = exc.extra.get("errors")
    if errors:
        return [e.get("message", str(e)) for e in errors]
    return [exc.message]


def archive_name(row_id: str, idx: int, fmt: str, used: set) -> str:
    """Zip entry name for one letter: flat, unique, and free of path parts."""
    safe = _UNSAFE_NAME_CHARS.sub("_", row_id).replace("..", "_").strip("._")
    name = f"authority_letter_{safe}.{fmt}"
    if not safe or name in used:
        name = f"authority_letter_{idx}_{safe}.{fmt}" if safe else f"authority_letter_{idx}.{fmt}"
    used.add(name)
    return name


def _build_bulk(job: LetterJob, rows: List[Dict[str, str]], fmt: str) -> Tuple[bytes, List[Dict[str, Any]]]:
    manifest: List[Dict[str, Any]] = []
    files: List[Tuple[str, bytes]] = []
    used: set = set()
    render = job.docx if fmt == "docx" else job.pdf

    for idx, raw in enumerate(rows, start=1):
        row_id = (raw.get("row_id") or "").strip() or str(idx)
        entry: Dict[str, Any] = {"row": idx, "rowId": row_id, "status": "generated", "file": None, "errors": []}
        try:
            data, report = render(_row_values(raw, job.specs))
        except (FieldValidationError, TemplateRenderError) as e:
            entry.update(status="failed", errors=_row_errors(e))
        else:
            name = archive_name(row_id, idx, fmt, used)
            files.append((name, data))
            entry.update(file=name, warnings=report.warnings)
        manifest.append(entry)

    manifest_csv = rows_to_csv(
        ["Row", "Row ID", "Status", "File", "Errors"],
        [[m["row"], m["rowId"], m["status"], m["file"], "; ".join(m["errors"])] for m in manifest],
    )
    files.append(("manifest.json", json.dumps(manifest, indent=2).encode("utf-8")))
    files.append(("manifest.csv", manifest_csv.encode("utf-8")))

    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        for name, payload in files:
            info = zipfile.ZipInfo(name, date_time=_ZIP_EPOCH)
            info.compress_type = zipfile.ZIP_DEFLATED
            zf.writestr(info, payload)
    return buf.getvalue(), manifest


@router.post("/bulk-generate")
async def api_bulk_generate(
    file: UploadFile = File(...),
    template_id: int = Form(..., alias="templateId"),
    output_format: Optional[str] = Form(None, alias="format"),
    strict: bool = Form(False),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    job = await _job(db, current_user, template_id, strict)
    fmt = (output_format or ("docx" if job.has_word else "pdf")).lower()
    if fmt not in ("pdf", "docx"):
        raise HTTPException(status_code=400, detail="format must be pdf or docx")

    data, _ = await read_upload(file, allowed=CSV_EXTS, max_size_mb=settings.MAX_CSV_UPLOAD_MB, label="CSV file")
    _, rows = read_csv_rows(data)
    if not rows:
        raise HTTPException(status_code=400, detail="CSV file has no data rows")
    if len(rows) > settings.BULK_MAX_ROWS:
        raise BulkLimitExceeded(len(rows), settings.BULK_MAX_ROWS)

    try:
        archive, manifest = await asyncio.wait_for(
            run_in_threadpool(_build_bulk, job, rows, fmt),
            timeout=settings.BULK_TIMEOUT_SECONDS,
        )
    except asyncio.TimeoutError:
        logger.error("Bulk generation for template %s timed out after %ss", template_id, settings.BULK_TIMEOUT_SECONDS)
        raise GenerationTimeout(settings.BULK_TIMEOUT_SECONDS)

    generated = sum(1 for m in manifest if m["status"] == "generated")
    failed = len(manifest) - generated
    if not generated:
        raise AppError("No letters could be generated", status_code=422, manifest=manifest)

    await log_audit(
        db, current_user, "bulk_authority_letters", "authority_letter", job.template.id,
        details=f"Bulk generated {generated} {fmt.upper()} letters from {job.template.template_name} ({failed} failed)",
    )
    return Response(
        content=archive,
        media_type="application/zip",
        headers={
            "Content-Disposition": f'attachment; filename="authority_letters_{job.template.id}_{job.today.isoformat()}.zip"',
            "X-Bulk-Generated": str(generated),
            "X-Bulk-Failed": str(failed),
        },
    )


@router.get("/sample-csv/{department_id}")
async def api_sample_csv(
    department_id: int,
    template_id: Optional[int] = Query(None, alias="templateId"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if template_id is not None:
        await load_template(db, template_id, current_user)
        fields = await list_fields(db, template_id=template_id)
    else:
        if current_user.role != "admin" and department_id not in await user_department_ids(db, current_user):
            raise HTTPException(status_code=403, detail="Access denied to this department")
        fields = await list_fields(db, department_id=department_id)

    def _sample(f, n: int) -> str:
        if f.field_type == "date":
            return f"2025-0{n}-1{n}"
        if f.field_type == "number":
            return str(1000 * n + 500)
        return f"Sample {f.field_label} {n}"

    headers = ["row_id", *[f.field_name for f in fields], "notes"]
    rows = [[str(n), *[_sample(f, n) for f in fields], ""] for n in (1, 2, 3)]
    return csv_response(rows_to_csv(headers, rows), f"authority_letter_sample_{department_id}.csv")
