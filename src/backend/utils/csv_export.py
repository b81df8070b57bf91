# src/backend/utils/csv_export.py
from __future__ import annotations

import csv
import io
from typing import Any, Dict, Iterable, List, Sequence

from fastapi import Response

from src.backend.utils.exceptions import AppError


def rows_to_csv(headers: Sequence[str], rows: Iterable[Sequence[Any]]) -> str:
    """Every cell quoted, so commas, quotes and newlines in free text survive."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(headers)
    for row in rows:
        writer.writerow(["" if v is None else v for v in row])
    return buffer.getvalue()


def csv_response(text: str, filename: str) -> Response:
    return Response(
        content=text,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def read_csv_rows(data: bytes) -> tuple[List[str], List[Dict[str, str]]]:
    """
    Decode an uploaded CSV (BOM tolerated) into (headers, rows).
    Row dicts are keyed by the stripped header text; fully blank lines are dropped.
    """
    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise AppError("CSV file must be UTF-8 encoded", status_code=400)

    reader = csv.reader(io.StringIO(text))
    try:
        header_row = next(reader)
    except StopIteration:
        raise AppError("CSV file is empty", status_code=400)
    except csv.Error as e:
        raise AppError(f"Could not parse CSV: {e}", status_code=400)

    headers = [h.strip() for h in header_row]
    if not any(headers):
        raise AppError("CSV header row is empty", status_code=400)

    rows: List[Dict[str, str]] = []
    try:
        for raw in reader:
            if not any(c.strip() for c in raw):
                continue
            rows.append({h: (raw[i].strip() if i < len(raw) else "") for i, h in enumerate(headers) if h})
    except csv.Error as e:
        raise AppError(f"Could not parse CSV: {e}", status_code=400)
    return headers, rows


def export_filename(prefix: str, start: Any, end: Any) -> str:
    if start or end:
        return f"{prefix}_{start or 'start'}_to_{end or 'end'}.csv"
    return f"{prefix}_all.csv"
