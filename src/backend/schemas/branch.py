# src/backend/schemas/branch.py
from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import EmailStr, Field, field_validator

from src.backend.schemas.common import CamelModel, blank_to_none


class BranchCreate(CamelModel):
    sr_no: Optional[int] = None
    branch_name: str = Field(..., min_length=1, max_length=150)
    branch_code: str = Field(..., min_length=1, max_length=50)
    branch_address: str = Field(..., min_length=1)
    pincode: str = Field(..., pattern=r"^\d{6}$")
    state: str = Field(..., min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    latitude: Optional[str] = None
    longitude: Optional[str] = None
    status: Literal["active", "closed"] = "active"
    department_id: Optional[int] = None

    @field_validator("branch_name", "branch_code", "branch_address", "pincode", "state", mode="before")
    @classmethod
    def _trim(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("sr_no", "email", "latitude", "longitude", "department_id", mode="before")
    @classmethod
    def _blank(cls, v):
        return blank_to_none(v)

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, v):
        return (v or "active").strip().lower() if isinstance(v, str) or v is None else v

    @field_validator("latitude", "longitude")
    @classmethod
    def _coordinate(cls, v):
        if v is None:
            return v
        try:
            float(v)
        except ValueError:
            raise ValueError("Coordinate must be a number")
        return v


class BranchUpdate(BranchCreate):
    pass


class BranchStatusUpdate(CamelModel):
    status: Literal["active", "closed"]


class BranchBulkDelete(CamelModel):
    branch_ids: List[int] = Field(..., min_length=1)


class BranchImportCommit(CamelModel):
    report_id: str
    admin_approval: bool = False


class BranchOut(CamelModel):
    id: int
    sr_no: Optional[int] = None
    branch_name: str
    branch_code: str
    branch_address: str
    pincode: str
    state: str
    email: Optional[str] = None
    latitude: Optional[str] = None
    longitude: Optional[str] = None
    status: str
    department_id: Optional[int] = None
    created_at: Optional[datetime] = None
