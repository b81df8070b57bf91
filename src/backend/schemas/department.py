# src/backend/schemas/department.py
from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import Field, field_validator

from src.backend.schemas.common import CamelModel


class DepartmentCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=150)

    @field_validator("name", mode="before")
    @classmethod
    def _trim(cls, v):
        return v.strip() if isinstance(v, str) else v


class DepartmentUpdate(DepartmentCreate):
    pass


class DepartmentOut(CamelModel):
    id: int
    name: str
    authority_document_path: Optional[str] = None
    created_at: Optional[datetime] = None


class FieldCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=150)
    type: Literal["text", "calendar", "dropdown"] = "text"

    @field_validator("name", mode="before")
    @classmethod
    def _trim(cls, v):
        return v.strip() if isinstance(v, str) else v


class FieldOut(CamelModel):
    id: int
    name: str
    type: str


class DepartmentFieldsUpdate(CamelModel):
    field_ids: List[int] = Field(default_factory=list)


class DropdownOptionCreate(CamelModel):
    option_value: str = Field(..., min_length=1, max_length=255)
    option_label: Optional[str] = Field(None, max_length=255)
    department_id: Optional[int] = None
    sort_order: Optional[int] = None


class DropdownOptionOut(CamelModel):
    id: int
    field_id: int
    department_id: Optional[int] = None
    option_value: str
    option_label: str
    sort_order: int
