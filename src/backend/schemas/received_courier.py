# src/backend/schemas/received_courier.py
from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from pydantic import EmailStr, Field, field_validator

from src.backend.schemas.common import CamelModel, blank_to_none


class ReceivedCourierCreate(CamelModel):
    pod_number: str = Field(..., min_length=1, max_length=100)
    received_date: date
    from_location: str = Field(..., min_length=1, max_length=255)
    to_user: Optional[str] = Field(None, max_length=255)
    courier_vendor: Optional[str] = Field(None, max_length=150)
    custom_vendor: Optional[str] = Field(None, max_length=150)
    receiver_name: Optional[str] = Field(None, max_length=150)
    email_id: Optional[EmailStr] = None
    cc_emails: Optional[str] = None
    send_email_notification: bool = False
    department_id: Optional[int] = None
    custom_department: Optional[str] = Field(None, max_length=150)
    remarks: Optional[str] = None

    @field_validator("pod_number", "from_location", mode="before")
    @classmethod
    def _trim(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator(
        "to_user", "courier_vendor", "custom_vendor", "receiver_name", "email_id",
        "cc_emails", "department_id", "custom_department", "remarks",
        mode="before",
    )
    @classmethod
    def _blank(cls, v):
        return blank_to_none(v)


class ReceivedCourierUpdate(CamelModel):
    pod_number: Optional[str] = Field(None, min_length=1, max_length=100)
    received_date: Optional[date] = None
    from_location: Optional[str] = Field(None, min_length=1, max_length=255)
    to_user: Optional[str] = Field(None, max_length=255)
    courier_vendor: Optional[str] = Field(None, max_length=150)
    custom_vendor: Optional[str] = Field(None, max_length=150)
    receiver_name: Optional[str] = Field(None, max_length=150)
    email_id: Optional[EmailStr] = None
    cc_emails: Optional[str] = None
    send_email_notification: Optional[bool] = None
    department_id: Optional[int] = None
    custom_department: Optional[str] = Field(None, max_length=150)
    remarks: Optional[str] = None
    version: Optional[int] = None

    @field_validator(
        "to_user", "courier_vendor", "custom_vendor", "receiver_name", "email_id",
        "cc_emails", "department_id", "custom_department", "remarks",
        mode="before",
    )
    @classmethod
    def _blank(cls, v):
        return blank_to_none(v)


class ReceivedCourierOut(CamelModel):
    id: int
    pod_number: str
    received_date: date
    from_location: str
    to_user: Optional[str] = None
    courier_vendor: Optional[str] = None
    custom_vendor: Optional[str] = None
    receiver_name: Optional[str] = None
    email_id: Optional[str] = None
    cc_emails: Optional[str] = None
    send_email_notification: bool
    department_id: Optional[int] = None
    custom_department: Optional[str] = None
    remarks: Optional[str] = None
    status: str
    dispatched_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    last_email_status: Optional[str] = None
    last_email_error: Optional[str] = None
    last_email_at: Optional[datetime] = None
    version: int
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
