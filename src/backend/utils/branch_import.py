# src/backend/utils/branch_import.py
"""
Row analysis for bulk branch uploads: header mapping, per-row validation and
duplicate detection by branch code (case-insensitive, against the table and
within the file).
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError

from src.backend.schemas.branch import BranchCreate
from src.backend.utils.exceptions import field_error

SAMPLE_HEADERS = (
    "srNo", "branchName", "branchCode", "branchAddress", "pincode",
    "state", "email", "latitude", "longitude", "status",
)
EXPORT_HEADERS = (
    "Sr. No", "Branch Name", "Branch Code", "Branch Address", "Pincode",
    "State", "Email", "Latitude", "Longitude", "Status", "Created Date",
)

SAMPLE_ROWS = (
    ("1", "Main Branch", "BR001", "12 MG Road, Pune", "411001", "Maharashtra",
     "main@example.com", "18.5204", "73.8567", "active"),
    ("2", "City Branch", "BR002", "4 Park Street, Kolkata", "700016", "West Bengal",
     "", "", "", "active"),
)

# lower-cased header text -> BranchCreate attribute
_HEADER_MAP: Dict[str, str] = {}
for _sample, _attr in zip(
    SAMPLE_HEADERS,
    ("sr_no", "branch_name", "branch_code", "branch_address", "pincode",
     "state", "email", "latitude", "longitude", "status"),
):
    _HEADER_MAP[_sample.lower()] = _attr
for _export, _attr in zip(
    EXPORT_HEADERS[:-1],
    ("sr_no", "branch_name", "branch_code", "branch_address", "pincode",
     "state", "email", "latitude", "longitude", "status"),
):
    _HEADER_MAP[_export.lower()] = _attr

# attribute -> camelCase name used in error payloads
_FIELD_NAMES = dict(zip(
    ("sr_no", "branch_name", "branch_code", "branch_address", "pincode",
     "state", "email", "latitude", "longitude", "status"),
    SAMPLE_HEADERS,
))


@dataclass
class ImportAnalysis:
    valid: List[Dict[str, Any]] = field(default_factory=list)
    duplicates: List[Dict[str, Any]] = field(default_factory=list)
    validation_errors: List[Dict[str, Any]] = field(default_factory=list)
    total_rows: int = 0

    @property
    def has_issues(self) -> bool:
        return bool(self.duplicates or self.validation_errors)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "totalRows": self.total_rows,
            "validRows": len(self.valid),
            "duplicates": self.duplicates,
            "validationErrors": self.validation_errors,
        }


def map_row(raw: Dict[str, str]) -> Dict[str, Any]:
    """Header-normalised row; unknown columns are ignored."""
    out: Dict[str, Any] = {}
    for key, value in raw.items():
        attr = _HEADER_MAP.get((key or "").strip().lower())
        if attr:
            out[attr] = value
    return out


def unknown_headers(headers: Iterable[str]) -> List[str]:
    ignored = {EXPORT_HEADERS[-1].lower()}
    return [h for h in headers if h and h.strip().lower() not in _HEADER_MAP and h.strip().lower() not in ignored]


def _row_errors(row_no: int, exc: ValidationError, raw: Dict[str, Any]) -> List[Dict[str, Any]]:
    errors = []
    for err in exc.errors():
        attr = str(err["loc"][0]) if err.get("loc") else "row"
        name = _FIELD_NAMES.get(attr, attr)
        msg = err.get("msg", "Invalid value")
        value = raw.get(attr)
        if err.get("type") == "missing" or (isinstance(value, str) and not value.strip()):
            msg = f"{name} is required"
        errors.append({"row": row_no, **field_error(name, msg, value)})
    return errors


def analyze_rows(
    rows: List[Dict[str, str]],
    existing_codes: Iterable[str],
    department_id: Optional[int] = None,
) -> ImportAnalysis:
    """
    Row numbers are 1-based data rows. The first occurrence of a code in the
    file wins; later ones are reported as duplicates.
    """
    existing = {c.strip().lower() for c in existing_codes if c}
    seen_in_file: Dict[str, int] = {}
    result = ImportAnalysis(total_rows=len(rows))

    for idx, raw in enumerate(rows, start=1):
        mapped = map_row(raw)
        if department_id is not None and not mapped.get("department_id"):
            mapped["department_id"] = department_id
        try:
            branch = BranchCreate.model_validate(mapped)
        except ValidationError as e:
            result.validation_errors.extend(_row_errors(idx, e, mapped))
            continue

        code_key = branch.branch_code.lower()
        if code_key in existing:
            result.duplicates.append({
                "row": idx,
                **field_error("branchCode", "Branch code already exists", branch.branch_code),
            })
            continue
        if code_key in seen_in_file:
            result.duplicates.append({
                "row": idx,
                **field_error(
                    "branchCode",
                    f"Duplicate branch code in file (first seen on row {seen_in_file[code_key]})",
                    branch.branch_code,
                ),
            })
            continue

        seen_in_file[code_key] = idx
        result.valid.append({"row": idx, **branch.model_dump(mode="json")})
    return result
