# src/backend/utils/placeholders.py
"""
`##field_name##` placeholder engine.

Templates are compiled once into an ordered token list, values are formatted
per field definition, and unknown or missing placeholders are reported instead
of silently passed through.
"""
from __future__ import annotations

import html
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from src.backend.utils.exceptions import FieldValidationError, TemplateRenderError, field_error
from src.backend.utils.field_transform import transform_field_value

PLACEHOLDER_RE = re.compile(r"##([^#\r\n]{1,100}?)##")

# resolved to the generation date unless a field supplies them
BUILTIN_DATE_NAMES = ("currentDate", "current_date", "Current Date", "Currunt Date")

POLICIES = ("keep", "blank", "error")


@dataclass(frozen=True)
class Placeholder:
    name: str
    raw: str


Token = Union[str, Placeholder]


@dataclass(frozen=True)
class CompiledTemplate:
    tokens: Tuple[Token, ...]

    @property
    def names(self) -> Tuple[str, ...]:
        seen: Dict[str, None] = {}
        for tok in self.tokens:
            if isinstance(tok, Placeholder):
                seen.setdefault(tok.name, None)
        return tuple(seen)

    def render(
        self,
        values: Mapping[str, str],
        *,
        policy: str = "keep",
        escape: Optional[Callable[[str], str]] = None,
    ) -> str:
        out: List[str] = []
        for tok in self.tokens:
            if isinstance(tok, str):
                out.append(tok)
                continue
            rep = replacement_for(tok.name, values, policy)
            if rep is None:
                out.append(tok.raw)
            else:
                out.append(escape(rep) if escape else rep)
        return "".join(out)


@dataclass(frozen=True)
class FieldSpec:
    name: str
    label: str = ""
    type: str = "text"
    text_transform: str = "none"
    number_format: str = "none"
    date_format: str = "DD-MM-YYYY"
    required: bool = False

    @classmethod
    def from_model(cls, row: Any) -> "FieldSpec":
        return cls(
            name=row.field_name,
            label=row.field_label or row.field_name,
            type=row.field_type or "text",
            text_transform=row.text_transform or "none",
            number_format=row.number_format or "none",
            date_format=row.date_format or "DD-MM-YYYY",
            required=bool(row.is_required),
        )


@dataclass
class RenderReport:
    missing_required: List[Dict[str, Any]] = field(default_factory=list)
    unknown_placeholders: List[str] = field(default_factory=list)
    unused_fields: List[str] = field(default_factory=list)

    @property
    def warnings(self) -> List[str]:
        msgs = [f"Unknown placeholder ##{n}##" for n in self.unknown_placeholders]
        msgs += [f"Field '{n}' is not used by the template" for n in self.unused_fields]
        return msgs

    def as_dict(self) -> Dict[str, Any]:
        return {
            "missingRequired": self.missing_required,
            "unknownPlaceholders": self.unknown_placeholders,
            "unusedFields": self.unused_fields,
            "warnings": self.warnings,
        }


@dataclass
class RenderResult:
    content: str
    report: RenderReport


def compile_template(content: Optional[str]) -> CompiledTemplate:
    text = content or ""
    tokens: List[Token] = []
    pos = 0
    for m in PLACEHOLDER_RE.finditer(text):
        name = m.group(1).strip()
        if not name:
            continue
        if m.start() > pos:
            tokens.append(text[pos:m.start()])
        tokens.append(Placeholder(name=name, raw=m.group(0)))
        pos = m.end()
    if pos < len(text):
        tokens.append(text[pos:])
    return CompiledTemplate(tokens=tuple(tokens))


def replacement_for(name: str, values: Mapping[str, str], policy: str) -> Optional[str]:
    """None means: leave the token as written."""
    if name in values:
        return values[name]
    if policy == "blank":
        return ""
    return None


def _is_blank(v: Any) -> bool:
    return v is None or (isinstance(v, str) and not v.strip())


def resolve_values(
    fields: Sequence[FieldSpec],
    raw_values: Mapping[str, Any],
    *,
    today: date,
) -> Dict[str, str]:
    """Formatted value per placeholder name, including the date built-ins."""
    resolved: Dict[str, str] = {}
    for f in fields:
        resolved[f.name] = transform_field_value(
            raw_values.get(f.name),
            f.type,
            text_transform=f.text_transform,
            number_format=f.number_format,
            date_format=f.date_format,
        )
    today_str = today.strftime("%d/%m/%Y")
    for name in BUILTIN_DATE_NAMES:
        if name not in resolved or not resolved[name]:
            supplied = raw_values.get(name)
            resolved[name] = str(supplied) if not _is_blank(supplied) else today_str
    return resolved


def check_values(
    compiled: CompiledTemplate,
    fields: Sequence[FieldSpec],
    raw_values: Mapping[str, Any],
) -> RenderReport:
    report = RenderReport()
    defined = {f.name for f in fields}
    used = set(compiled.names)

    for f in fields:
        if f.required and _is_blank(raw_values.get(f.name)):
            report.missing_required.append(
                field_error(f.name, f"{f.label or f.name} is required", raw_values.get(f.name))
            )
    report.unknown_placeholders = [
        n for n in compiled.names if n not in defined and n not in BUILTIN_DATE_NAMES
    ]
    report.unused_fields = [f.name for f in fields if f.name not in used]
    return report


def prepare(
    content: Optional[str],
    fields: Sequence[FieldSpec],
    raw_values: Mapping[str, Any],
    *,
    today: date,
    policy: str = "keep",
    extra_names: Iterable[str] = (),
) -> Tuple[CompiledTemplate, Dict[str, str], RenderReport]:
    """
    Compile + validate + resolve. Raises before anything is rendered when
    required values are missing or the policy forbids unknown placeholders.
    `extra_names` adds placeholders found outside `content` (e.g. a Word file).
    """
    compiled = compile_template(content)
    if extra_names:
        extra = tuple(Placeholder(name=n, raw=f"##{n}##") for n in extra_names if n not in compiled.names)
        compiled = CompiledTemplate(tokens=compiled.tokens + extra)

    report = check_values(compiled, fields, raw_values)
    if report.missing_required:
        raise FieldValidationError(report.missing_required, message="Required fields are missing")
    if policy == "error" and report.unknown_placeholders:
        raise TemplateRenderError(
            "Template contains placeholders with no matching field",
            unknown_placeholders=report.unknown_placeholders,
        )
    values = resolve_values(fields, raw_values, today=today)
    return compiled, values, report


def render_text(
    content: Optional[str],
    fields: Sequence[FieldSpec],
    raw_values: Mapping[str, Any],
    *,
    today: date,
    policy: str = "keep",
) -> RenderResult:
    """Plain-text substitution (no escaping)."""
    compiled, values, report = prepare(content, fields, raw_values, today=today, policy=policy)
    return RenderResult(compiled.render(values, policy=policy), report)


def render_html(
    content: Optional[str],
    fields: Sequence[FieldSpec],
    raw_values: Mapping[str, Any],
    *,
    today: date,
    policy: str = "keep",
) -> RenderResult:
    """Substitution into HTML; values are escaped and newlines become <br>."""
    compiled, values, report = prepare(content, fields, raw_values, today=today, policy=policy)

    def _escape(v: str) -> str:
        return html.escape(v, quote=False).replace("\n", "<br/>")

    return RenderResult(compiled.render(values, policy=policy, escape=_escape), report)


def resolve_policy(strict: bool, default: str) -> str:
    if strict:
        return "error"
    return default if default in POLICIES else "keep"
