# src/backend/crud/department.py
from __future__ import annotations

from typing import List, Optional, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.backend.models.authority_letter import FieldDropdownOption
from src.backend.models.department import Department, DepartmentField, Field
from src.backend.schemas.department import DepartmentCreate, DropdownOptionCreate, FieldCreate
from src.backend.utils.timezone import now_local

# -----------------------
# Departments
# -----------------------
async def list_departments(db: AsyncSession, ids: Optional[Sequence[int]] = None) -> List[Department]:
    stmt = select(Department).where(Department.deleted_at.is_(None))
    if ids is not None:
        stmt = stmt.where(Department.id.in_(tuple(ids)))
    res = await db.execute(stmt.order_by(Department.name))
    return list(res.scalars().all())


async def get_department(db: AsyncSession, dep_id: int) -> Optional[Department]:
    return await db.scalar(
        select(Department).where(Department.id == dep_id, Department.deleted_at.is_(None))
    )


async def department_name_taken(db: AsyncSession, name: str, exclude_id: Optional[int] = None) -> bool:
    stmt = select(Department.id).where(
        func.lower(Department.name) == name.strip().lower(),
        Department.deleted_at.is_(None),
    )
    if exclude_id:
        stmt = stmt.where(Department.id != exclude_id)
    return (await db.scalar(stmt)) is not None


async def create_department(db: AsyncSession, data: DepartmentCreate) -> Department:
    row = Department(name=data.name)
    db.add(row)
    try:
        await db.commit()
        await db.refresh(row)
    except IntegrityError:
        await db.rollback()
        raise
    return row


async def update_department(db: AsyncSession, row: Department, data: DepartmentCreate) -> Department:
    row.name = data.name
    try:
        await db.commit()
        await db.refresh(row)
    except IntegrityError:
        await db.rollback()
        raise
    return row


async def soft_delete_department(db: AsyncSession, row: Department) -> None:
    """Couriers, templates and branches keep pointing at the row."""
    row.deleted_at = now_local()
    await db.commit()


async def department_names(db: AsyncSession, ids: Sequence[Optional[int]]) -> dict[int, str]:
    wanted = {i for i in ids if i}
    if not wanted:
        return {}
    # soft-deleted names still label historic records
    res = await db.execute(select(Department.id, Department.name).where(Department.id.in_(wanted)))
    return {i: n for i, n in res.all()}

# -----------------------
# Custom fields
# -----------------------
async def list_fields(db: AsyncSession) -> List[Field]:
    res = await db.execute(select(Field).order_by(Field.name))
    return list(res.scalars().all())


async def get_field(db: AsyncSession, field_id: int) -> Optional[Field]:
    return await db.scalar(select(Field).where(Field.id == field_id))


async def create_field(db: AsyncSession, data: FieldCreate) -> Field:
    row = Field(name=data.name, type=data.type)
    db.add(row)
    try:
        await db.commit()
        await db.refresh(row)
    except IntegrityError:
        await db.rollback()
        raise
    return row


async def update_field(db: AsyncSession, row: Field, data: FieldCreate) -> Field:
    row.name = data.name
    row.type = data.type
    try:
        await db.commit()
        await db.refresh(row)
    except IntegrityError:
        await db.rollback()
        raise
    return row


async def delete_field(db: AsyncSession, row: Field) -> None:
    await db.execute(delete(DepartmentField).where(DepartmentField.field_id == row.id))
    await db.delete(row)
    await db.commit()


async def list_department_fields(db: AsyncSession, dep_id: int) -> List[Field]:
    res = await db.execute(
        select(Field)
        .join(DepartmentField, DepartmentField.field_id == Field.id)
        .where(DepartmentField.department_id == dep_id)
        .order_by(Field.name)
    )
    return list(res.scalars().all())


async def replace_department_fields(db: AsyncSession, dep_id: int, field_ids: Sequence[int]) -> List[Field]:
    await db.execute(delete(DepartmentField).where(DepartmentField.department_id == dep_id))
    for fid in sorted(set(field_ids)):
        db.add(DepartmentField(department_id=dep_id, field_id=fid))
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise
    return await list_department_fields(db, dep_id)

# -----------------------
# Dropdown options (authority letter fields)
# -----------------------
async def list_dropdown_options(db: AsyncSession, field_id: int) -> List[FieldDropdownOption]:
    res = await db.execute(
        select(FieldDropdownOption)
        .where(FieldDropdownOption.field_id == field_id)
        .order_by(FieldDropdownOption.sort_order, FieldDropdownOption.id)
    )
    return list(res.scalars().all())


async def create_dropdown_option(db: AsyncSession, field_id: int, data: DropdownOptionCreate) -> FieldDropdownOption:
    sort_order = data.sort_order
    if sort_order is None:
        current = await db.scalar(
            select(func.max(FieldDropdownOption.sort_order)).where(FieldDropdownOption.field_id == field_id)
        )
        sort_order = (current or 0) + 1
    row = FieldDropdownOption(
        field_id=field_id,
        department_id=data.department_id,
        option_value=data.option_value.strip(),
        option_label=(data.option_label or data.option_value).strip(),
        sort_order=sort_order,
    )
    db.add(row)
    try:
        await db.commit()
        await db.refresh(row)
    except IntegrityError:
        await db.rollback()
        raise
    return row


async def delete_dropdown_option(db: AsyncSession, option_id: int) -> bool:
    res = await db.execute(delete(FieldDropdownOption).where(FieldDropdownOption.id == option_id))
    await db.commit()
    return bool(res.rowcount)
