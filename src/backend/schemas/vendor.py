# src/backend/schemas/vendor.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import EmailStr, Field, field_validator

from src.backend.schemas.common import CamelModel, blank_to_none, check_mobile


class VendorCreate(CamelModel):
    vendor_name: str = Field(..., min_length=1, max_length=150)
    mobile_number: Optional[str] = None
    email: Optional[EmailStr] = None
    address: Optional[str] = None
    is_active: bool = True

    @field_validator("vendor_name", mode="before")
    @classmethod
    def _trim(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("mobile_number", "email", "address", mode="before")
    @classmethod
    def _blank(cls, v):
        return blank_to_none(v)

    @field_validator("mobile_number")
    @classmethod
    def _mobile(cls, v):
        return check_mobile(v)


class VendorUpdate(VendorCreate):
    pass


class VendorStatus(CamelModel):
    is_active: bool


class VendorOut(CamelModel):
    id: int
    vendor_name: str
    mobile_number: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None
