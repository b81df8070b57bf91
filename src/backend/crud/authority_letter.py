# src/backend/crud/authority_letter.py
from __future__ import annotations

from typing import List, Optional, Sequence

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.backend.models.authority_letter import AuthorityLetterField, AuthorityLetterTemplate
from src.backend.schemas.authority_letter import LetterFieldCreate, LetterFieldUpdate, TemplateCreate, TemplateUpdate

# -----------------------
# Templates
# -----------------------
async def list_templates(
    db: AsyncSession,
    department_ids: Optional[Sequence[int]] = None,
    active_only: bool = False,
) -> List[AuthorityLetterTemplate]:
    stmt = select(AuthorityLetterTemplate)
    if department_ids is not None:
        stmt = stmt.where(AuthorityLetterTemplate.department_id.in_(tuple(department_ids)))
    if active_only:
        stmt = stmt.where(AuthorityLetterTemplate.is_active.is_(True))
    res = await db.execute(
        stmt.order_by(AuthorityLetterTemplate.is_default.desc(), AuthorityLetterTemplate.template_name)
    )
    return list(res.scalars().all())


async def get_template(db: AsyncSession, template_id: int) -> Optional[AuthorityLetterTemplate]:
    return await db.scalar(select(AuthorityLetterTemplate).where(AuthorityLetterTemplate.id == template_id))


async def _clear_other_defaults(db: AsyncSession, row: AuthorityLetterTemplate) -> None:
    await db.execute(
        update(AuthorityLetterTemplate)
        .where(
            AuthorityLetterTemplate.department_id == row.department_id,
            AuthorityLetterTemplate.id != row.id,
        )
        .values(is_default=False)
    )


async def create_template(db: AsyncSession, data: TemplateCreate) -> AuthorityLetterTemplate:
    row = AuthorityLetterTemplate(**data.model_dump())
    db.add(row)
    try:
        await db.flush()
        if row.is_default:
            await _clear_other_defaults(db, row)
        await db.commit()
        await db.refresh(row)
    except IntegrityError:
        await db.rollback()
        raise
    return row


async def update_template(db: AsyncSession, row: AuthorityLetterTemplate, data: TemplateUpdate) -> AuthorityLetterTemplate:
    for key, value in data.model_dump(exclude_unset=True).items():
        if key in ("template_name", "template_content", "is_default", "is_active") and value is None:
            continue
        setattr(row, key, value)
    try:
        if row.is_default:
            await _clear_other_defaults(db, row)
        await db.commit()
        await db.refresh(row)
    except IntegrityError:
        await db.rollback()
        raise
    return row


async def set_word_template(db: AsyncSession, row: AuthorityLetterTemplate, url: Optional[str]) -> AuthorityLetterTemplate:
    row.word_template_url = url
    await db.commit()
    await db.refresh(row)
    return row


async def delete_template(db: AsyncSession, row: AuthorityLetterTemplate) -> None:
    # fields follow through ON DELETE CASCADE; SQLite needs the explicit delete
    res = await db.execute(select(AuthorityLetterField).where(AuthorityLetterField.template_id == row.id))
    for f in res.scalars().all():
        await db.delete(f)
    await db.delete(row)
    await db.commit()

# -----------------------
# Fields
# -----------------------
async def list_fields(
    db: AsyncSession,
    *,
    template_id: Optional[int] = None,
    department_id: Optional[int] = None,
) -> List[AuthorityLetterField]:
    stmt = select(AuthorityLetterField)
    if template_id is not None:
        stmt = stmt.where(AuthorityLetterField.template_id == template_id)
    elif department_id is not None:
        # legacy rows were attached to a department rather than a template
        stmt = stmt.where(
            or_(
                AuthorityLetterField.department_id == department_id,
                AuthorityLetterField.template_id.in_(
                    select(AuthorityLetterTemplate.id).where(AuthorityLetterTemplate.department_id == department_id)
                ),
            )
        )
    res = await db.execute(stmt.order_by(AuthorityLetterField.sort_order, AuthorityLetterField.id))
    return list(res.scalars().all())


async def get_field(db: AsyncSession, field_id: int) -> Optional[AuthorityLetterField]:
    return await db.scalar(select(AuthorityLetterField).where(AuthorityLetterField.id == field_id))


async def field_name_taken(
    db: AsyncSession, template_id: Optional[int], name: str, exclude_id: Optional[int] = None
) -> bool:
    stmt = select(AuthorityLetterField.id).where(
        AuthorityLetterField.template_id == template_id,
        AuthorityLetterField.field_name == name,
    )
    if exclude_id:
        stmt = stmt.where(AuthorityLetterField.id != exclude_id)
    return (await db.scalar(stmt)) is not None


async def create_field(db: AsyncSession, data: LetterFieldCreate) -> AuthorityLetterField:
    values = data.model_dump()
    if values.get("sort_order") is None:
        current = await db.scalar(
            select(func.max(AuthorityLetterField.sort_order)).where(
                AuthorityLetterField.template_id == data.template_id
            )
        )
        values["sort_order"] = (current or 0) + 1
    row = AuthorityLetterField(**values)
    db.add(row)
    try:
        await db.commit()
        await db.refresh(row)
    except IntegrityError:
        await db.rollback()
        raise
    return row


async def update_field(db: AsyncSession, row: AuthorityLetterField, data: LetterFieldUpdate) -> AuthorityLetterField:
    for key, value in data.model_dump(exclude_unset=True).items():
        if value is None:
            continue
        setattr(row, key, value)
    try:
        await db.commit()
        await db.refresh(row)
    except IntegrityError:
        await db.rollback()
        raise
    return row


async def delete_field(db: AsyncSession, row: AuthorityLetterField) -> None:
    await db.delete(row)
    await db.commit()


async def move_field(db: AsyncSession, row: AuthorityLetterField, direction: str) -> List[AuthorityLetterField]:
    """
    Swap sort_order with the neighbour in `direction`. Orders are renumbered
    first so duplicate or missing values from older rows cannot stall a move.
    """
    siblings = await list_fields(db, template_id=row.template_id) if row.template_id else await list_fields(
        db, department_id=row.department_id
    )
    for idx, f in enumerate(siblings, start=1):
        f.sort_order = idx
    pos = next(i for i, f in enumerate(siblings) if f.id == row.id)
    other = pos - 1 if direction == "up" else pos + 1
    if 0 <= other < len(siblings):
        a, b = siblings[pos], siblings[other]
        a.sort_order, b.sort_order = b.sort_order, a.sort_order
        siblings[pos], siblings[other] = b, a
    await db.commit()
    return siblings
