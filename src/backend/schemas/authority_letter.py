# src/backend/schemas/authority_letter.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Literal, Optional

from pydantic import Field, field_validator

from src.backend.schemas.common import CamelModel
from src.backend.utils.field_transform import DATE_FORMATS, NUMBER_FORMATS, TEXT_TRANSFORMS


class TemplateCreate(CamelModel):
    department_id: Optional[int] = None
    template_name: str = Field(..., min_length=1, max_length=200)
    template_content: str = ""
    template_description: Optional[str] = None
    is_default: bool = False
    is_active: bool = True

    @field_validator("template_name", mode="before")
    @classmethod
    def _trim(cls, v):
        return v.strip() if isinstance(v, str) else v


class TemplateUpdate(CamelModel):
    department_id: Optional[int] = None
    template_name: Optional[str] = Field(None, min_length=1, max_length=200)
    template_content: Optional[str] = None
    template_description: Optional[str] = None
    is_default: Optional[bool] = None
    is_active: Optional[bool] = None


class TemplateOut(CamelModel):
    id: int
    department_id: Optional[int] = None
    template_name: str
    template_content: str
    template_description: Optional[str] = None
    is_default: bool
    is_active: bool
    word_template_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class LetterFieldCreate(CamelModel):
    template_id: Optional[int] = None
    department_id: Optional[int] = None
    field_name: str = Field(..., min_length=1, max_length=100, pattern=r"^[^#\r\n]+$")
    field_label: str = Field(..., min_length=1, max_length=200)
    field_type: Literal["text", "number", "date", "textarea"] = "text"
    text_transform: str = "none"
    number_format: str = "none"
    date_format: str = "DD-MM-YYYY"
    is_required: bool = False
    sort_order: Optional[int] = None

    @field_validator("field_name", "field_label", mode="before")
    @classmethod
    def _trim(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("text_transform")
    @classmethod
    def _text(cls, v):
        # `capitalize` is accepted for old rows and behaves like `none`
        if v not in TEXT_TRANSFORMS and v != "capitalize":
            raise ValueError(f"Unsupported text transform '{v}'")
        return v

    @field_validator("number_format")
    @classmethod
    def _number(cls, v):
        if v not in NUMBER_FORMATS:
            raise ValueError(f"Unsupported number format '{v}'")
        return v

    @field_validator("date_format")
    @classmethod
    def _date(cls, v):
        if v not in DATE_FORMATS:
            raise ValueError(f"Unsupported date format '{v}'")
        return v


class LetterFieldUpdate(CamelModel):
    field_name: Optional[str] = Field(None, min_length=1, max_length=100, pattern=r"^[^#\r\n]+$")
    field_label: Optional[str] = Field(None, min_length=1, max_length=200)
    field_type: Optional[Literal["text", "number", "date", "textarea"]] = None
    text_transform: Optional[str] = None
    number_format: Optional[str] = None
    date_format: Optional[str] = None
    is_required: Optional[bool] = None
    sort_order: Optional[int] = None

    @field_validator("text_transform")
    @classmethod
    def _text(cls, v):
        if v is not None and v not in TEXT_TRANSFORMS and v != "capitalize":
            raise ValueError(f"Unsupported text transform '{v}'")
        return v

    @field_validator("number_format")
    @classmethod
    def _number(cls, v):
        if v is not None and v not in NUMBER_FORMATS:
            raise ValueError(f"Unsupported number format '{v}'")
        return v

    @field_validator("date_format")
    @classmethod
    def _date(cls, v):
        if v is not None and v not in DATE_FORMATS:
            raise ValueError(f"Unsupported date format '{v}'")
        return v


class LetterFieldOut(CamelModel):
    id: int
    template_id: Optional[int] = None
    department_id: Optional[int] = None
    field_name: str
    field_label: str
    field_type: str
    text_transform: str
    number_format: str
    date_format: str
    is_required: bool
    sort_order: int


class FieldReorder(CamelModel):
    field_id: int
    direction: Literal["up", "down"]
    template_id: Optional[int] = None


class GenerateRequest(CamelModel):
    template_id: int
    field_values: Dict[str, Any] = Field(default_factory=dict)
    strict: bool = False
