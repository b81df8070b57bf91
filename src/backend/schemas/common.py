# src/backend/schemas/common.py
from __future__ import annotations

import re
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

MOBILE_RE = re.compile(r"^\+?[1-9]\d{0,15}$")


class CamelModel(BaseModel):
    """JSON in and out uses camelCase; Python code uses snake_case."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


def blank_to_none(v: Any) -> Any:
    if isinstance(v, str):
        v = v.strip()
        return v or None
    return v


def check_mobile(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    if not MOBILE_RE.match(v):
        raise ValueError("Invalid mobile number format")
    return v


class Message(BaseModel):
    message: str


def to_json(model_cls: type[BaseModel], row: Any, **extra: Any) -> dict:
    """ORM row -> camelCase JSON dict, plus optional extra keys."""
    data = model_cls.model_validate(row).model_dump(by_alias=True, mode="json")
    data.update(extra)
    return data
