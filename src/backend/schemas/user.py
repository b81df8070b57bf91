# src/backend/schemas/user.py
from __future__ import annotations

import re
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import EmailStr, Field, SecretStr, field_validator

from src.backend.schemas.common import CamelModel, blank_to_none, check_mobile

Role = Literal["admin", "sub_admin", "manager", "user"]

_PASSWORD_RULE = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)")
PASSWORD_MESSAGE = (
    "Password must contain at least one uppercase letter, one lowercase letter, and one number"
)


def check_password_strength(v: SecretStr) -> SecretStr:
    raw = v.get_secret_value()
    if len(raw) < 8:
        raise ValueError("Password must be at least 8 characters")
    if not _PASSWORD_RULE.match(raw):
        raise ValueError(PASSWORD_MESSAGE)
    return v


class UserCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: SecretStr
    employee_code: Optional[str] = Field(None, max_length=50)
    mobile_number: Optional[str] = None
    role: Role = "user"
    department_id: Optional[int] = Field(None, gt=0)

    @field_validator("name", mode="before")
    @classmethod
    def _trim(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("employee_code", "mobile_number", mode="before")
    @classmethod
    def _blank(cls, v):
        return blank_to_none(v)

    @field_validator("mobile_number")
    @classmethod
    def _mobile(cls, v):
        return check_mobile(v)

    @field_validator("password")
    @classmethod
    def _strong(cls, v):
        return check_password_strength(v)


class UserRegister(UserCreate):
    """Self-registration; the role is always `user` regardless of input."""


class UserUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    first_name: Optional[str] = Field(None, max_length=50)
    last_name: Optional[str] = Field(None, max_length=50)
    email: Optional[EmailStr] = None
    employee_code: Optional[str] = Field(None, max_length=50)
    mobile_number: Optional[str] = None
    role: Optional[Role] = None
    department_id: Optional[int] = Field(None, gt=0)
    password: Optional[SecretStr] = None
    is_active: Optional[bool] = None

    @field_validator("employee_code", "mobile_number", "first_name", "last_name", mode="before")
    @classmethod
    def _blank(cls, v):
        return blank_to_none(v)

    @field_validator("mobile_number")
    @classmethod
    def _mobile(cls, v):
        return check_mobile(v)

    @field_validator("password")
    @classmethod
    def _strong(cls, v):
        return check_password_strength(v) if v is not None else v


class ProfileUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    first_name: Optional[str] = Field(None, max_length=50)
    last_name: Optional[str] = Field(None, max_length=50)
    employee_code: Optional[str] = Field(None, max_length=50)
    mobile_number: Optional[str] = None

    @field_validator("employee_code", "mobile_number", "first_name", "last_name", mode="before")
    @classmethod
    def _blank(cls, v):
        return blank_to_none(v)

    @field_validator("mobile_number")
    @classmethod
    def _mobile(cls, v):
        return check_mobile(v)


class PasswordChange(CamelModel):
    current_password: SecretStr
    new_password: SecretStr
    confirm_password: SecretStr

    @field_validator("new_password")
    @classmethod
    def _strong(cls, v):
        return check_password_strength(v)


class LoginRequest(CamelModel):
    email: EmailStr
    password: SecretStr


class ForgotPasswordRequest(CamelModel):
    email: EmailStr


class ResetPasswordRequest(CamelModel):
    token: str = Field(..., min_length=10)
    new_password: SecretStr

    @field_validator("new_password")
    @classmethod
    def _strong(cls, v):
        return check_password_strength(v)


class UserOut(CamelModel):
    id: str
    email: str
    name: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    employee_code: Optional[str] = None
    mobile_number: Optional[str] = None
    role: str
    department_id: Optional[int] = None
    profile_image_url: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None


class UserDepartmentsUpdate(CamelModel):
    department_ids: List[int] = Field(default_factory=list)
