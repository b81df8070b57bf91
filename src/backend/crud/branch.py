# src/backend/crud/branch.py
import uuid
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.backend.models.branch import Branch, BranchImportReport
from src.backend.schemas.branch import BranchCreate
from src.backend.utils.branch_import import ImportAnalysis
from src.backend.utils.timezone import now_local

_BRANCH_COLUMNS = (
    "sr_no", "branch_name", "branch_code", "branch_address", "pincode",
    "state", "email", "latitude", "longitude", "status", "department_id",
)


def _normalize_status(v: Optional[str]) -> str:
    return (v or "active").strip().lower()


async def list_branches(
    db: AsyncSession,
    q: Optional[str] = None,
    status: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> Tuple[List[Branch], int]:
    base = select(Branch)
    if q:
        like = f"%{q.strip()}%"
        base = base.where(
            or_(
                Branch.branch_code.ilike(like),
                Branch.branch_name.ilike(like),
                Branch.branch_address.ilike(like),
                Branch.state.ilike(like),
                Branch.pincode.ilike(like),
            )
        )
    if status and status != "all":
        base = base.where(Branch.status == _normalize_status(status))

    total = await db.scalar(select(func.count()).select_from(base.subquery()))
    res = await db.execute(
        base.order_by(Branch.sr_no.is_(None), Branch.sr_no, Branch.branch_code).limit(limit).offset(offset)
    )
    return list(res.scalars().all()), int(total or 0)


async def export_branches(db: AsyncSession, status: str = "all") -> List[Branch]:
    stmt = select(Branch)
    if status != "all":
        stmt = stmt.where(Branch.status == _normalize_status(status))
    res = await db.execute(stmt.order_by(Branch.sr_no.is_(None), Branch.sr_no, Branch.branch_code))
    return list(res.scalars().all())


async def get_branch(db: AsyncSession, branch_id: int) -> Optional[Branch]:
    return await db.scalar(select(Branch).where(Branch.id == branch_id))


async def branch_named(db: AsyncSession, name: Optional[str]) -> Optional[Branch]:
    """Branch whose name matches a courier destination, case-insensitive."""
    if not name:
        return None
    return await db.scalar(
        select(Branch).where(func.lower(Branch.branch_name) == name.strip().lower()).limit(1)
    )


async def code_taken(db: AsyncSession, code: str, exclude_id: Optional[int] = None) -> bool:
    stmt = select(Branch.id).where(func.lower(Branch.branch_code) == code.strip().lower())
    if exclude_id:
        stmt = stmt.where(Branch.id != exclude_id)
    return (await db.scalar(stmt)) is not None


async def existing_codes(db: AsyncSession) -> List[str]:
    res = await db.execute(select(Branch.branch_code))
    return list(res.scalars().all())


async def create_branch(db: AsyncSession, data: BranchCreate) -> Branch:
    row = Branch(**data.model_dump(mode="json", include=set(_BRANCH_COLUMNS)))
    row.status = _normalize_status(row.status)
    db.add(row)
    try:
        await db.commit()
        await db.refresh(row)
    except IntegrityError:
        await db.rollback()
        raise
    return row


async def update_branch(db: AsyncSession, row: Branch, data: BranchCreate) -> Branch:
    for key, value in data.model_dump(mode="json", include=set(_BRANCH_COLUMNS)).items():
        setattr(row, key, value)
    row.status = _normalize_status(row.status)
    row.updated_at = now_local()
    try:
        await db.commit()
        await db.refresh(row)
    except IntegrityError:
        await db.rollback()
        raise
    return row


async def set_branch_status(db: AsyncSession, row: Branch, status: str) -> Branch:
    row.status = _normalize_status(status)
    await db.commit()
    await db.refresh(row)
    return row


async def delete_branch(db: AsyncSession, row: Branch) -> None:
    await db.delete(row)
    await db.commit()


async def bulk_delete_branches(db: AsyncSession, ids: Sequence[int]) -> List[str]:
    """Delete by id; returns the codes that were removed."""
    res = await db.execute(select(Branch.branch_code).where(Branch.id.in_(tuple(ids))))
    codes = list(res.scalars().all())
    await db.execute(delete(Branch).where(Branch.id.in_(tuple(ids))))
    await db.commit()
    return codes


async def insert_branches(
    db: AsyncSession,
    rows: Iterable[Dict[str, Any]],
    report: Optional[BranchImportReport] = None,
) -> List[Branch]:
    """All-or-nothing insert of analysed rows; a given report is closed in the same transaction."""
    created = []
    for r in rows:
        row = Branch(**{k: r.get(k) for k in _BRANCH_COLUMNS})
        row.status = _normalize_status(row.status)
        db.add(row)
        created.append(row)
    if report is not None:
        report.committed_at = now_local()
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise
    for row in created:
        await db.refresh(row)
    return created

# -----------------------
# Two-step import reports
# -----------------------
async def save_import_report(db: AsyncSession, analysis: ImportAnalysis, created_by: Optional[str]) -> BranchImportReport:
    report = BranchImportReport(
        id=str(uuid.uuid4()),
        created_by=created_by,
        rows=analysis.valid,
        report=analysis.as_dict(),
    )
    db.add(report)
    await db.commit()
    await db.refresh(report)
    return report


async def get_import_report(db: AsyncSession, report_id: str) -> Optional[BranchImportReport]:
    return await db.scalar(select(BranchImportReport).where(BranchImportReport.id == report_id))

