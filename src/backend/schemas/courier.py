# src/backend/schemas/courier.py
from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from pydantic import EmailStr, Field, field_validator

from src.backend.schemas.common import CamelModel, blank_to_none


class CourierCreate(CamelModel):
    department_id: Optional[int] = None
    to_branch: str = Field(..., min_length=1, max_length=255)
    email: Optional[EmailStr] = None
    cc_emails: Optional[str] = None
    courier_date: Optional[date] = None
    vendor: Optional[str] = Field(None, max_length=150)
    custom_vendor: Optional[str] = Field(None, max_length=150)
    pod_no: Optional[str] = Field(None, max_length=100)
    details: Optional[str] = None
    contact_details: Optional[str] = None
    receiver_name: Optional[str] = Field(None, max_length=150)
    remarks: Optional[str] = None
    # notify the recipient with a confirmation link
    send_email: bool = True

    @field_validator(
        "email", "cc_emails", "vendor", "custom_vendor", "pod_no", "details",
        "contact_details", "receiver_name", "remarks", "courier_date", "department_id",
        mode="before",
    )
    @classmethod
    def _blank(cls, v):
        return blank_to_none(v)

    @field_validator("to_branch", mode="before")
    @classmethod
    def _trim(cls, v):
        return v.strip() if isinstance(v, str) else v


class CourierUpdate(CamelModel):
    """Field edits only; status moves go through PATCH."""

    department_id: Optional[int] = None
    to_branch: Optional[str] = Field(None, min_length=1, max_length=255)
    email: Optional[EmailStr] = None
    cc_emails: Optional[str] = None
    courier_date: Optional[date] = None
    vendor: Optional[str] = Field(None, max_length=150)
    custom_vendor: Optional[str] = Field(None, max_length=150)
    pod_no: Optional[str] = Field(None, max_length=100)
    details: Optional[str] = None
    contact_details: Optional[str] = None
    receiver_name: Optional[str] = Field(None, max_length=150)
    remarks: Optional[str] = None

    @field_validator(
        "email", "cc_emails", "vendor", "custom_vendor", "pod_no", "details",
        "contact_details", "receiver_name", "remarks", "courier_date", "department_id",
        mode="before",
    )
    @classmethod
    def _blank(cls, v):
        return blank_to_none(v)


class CourierPatch(CourierUpdate):
    status: Optional[str] = None
    received_date: Optional[date] = None
    received_remarks: Optional[str] = None
    version: Optional[int] = None

    @field_validator("received_date", "received_remarks", mode="before")
    @classmethod
    def _blank_received(cls, v):
        return blank_to_none(v)


class CourierOut(CamelModel):
    id: int
    department_id: Optional[int] = None
    created_by: Optional[str] = None
    to_branch: str
    email: Optional[str] = None
    cc_emails: Optional[str] = None
    courier_date: Optional[date] = None
    vendor: Optional[str] = None
    custom_vendor: Optional[str] = None
    pod_no: Optional[str] = None
    details: Optional[str] = None
    contact_details: Optional[str] = None
    receiver_name: Optional[str] = None
    remarks: Optional[str] = None
    status: str
    received_date: Optional[date] = None
    received_remarks: Optional[str] = None
    pod_copy_path: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    last_email_status: Optional[str] = None
    last_email_error: Optional[str] = None
    last_email_at: Optional[datetime] = None
    version: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
