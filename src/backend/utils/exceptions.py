# src/backend/utils/exceptions.py
from __future__ import annotations

from typing import Any, Dict, List, Optional


def field_error(field: str, message: str, value: Any = None) -> Dict[str, Any]:
    """Shape the client binds to a single form field."""
    return {"field": field, "message": message, "value": value}


class AppError(Exception):
    """Base for errors the API turns into a structured JSON response."""

    status_code: int = 400

    def __init__(self, message: str, status_code: Optional[int] = None, **extra: Any):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.extra: Dict[str, Any] = extra


class FieldConflict(AppError):
    """Duplicate value on a unique field (email, POD number, branch code...)."""

    status_code = 409

    def __init__(self, errors: List[Dict[str, Any]], message: str = "Duplicate entry"):
        super().__init__(message, errors=errors)
        self.errors = errors


class FieldValidationError(AppError):
    status_code = 422

    def __init__(self, errors: List[Dict[str, Any]], message: str = "Validation failed"):
        super().__init__(message, errors=errors)
        self.errors = errors


class TransitionNotAllowed(AppError):
    status_code = 409

    def __init__(self, entity: str, from_status: str, to_status: str):
        super().__init__(
            f"{entity} cannot move from '{from_status}' to '{to_status}'",
            from_status=from_status,
            to_status=to_status,
        )


class ConfirmationAlreadyProcessed(AppError):
    status_code = 409

    def __init__(self, message: str = "This confirmation link has already been used"):
        super().__init__(message)


class StaleRecord(AppError):
    status_code = 409

    def __init__(self, message: str = "Record was modified by another user. Reload and try again."):
        super().__init__(message)


class TemplateRenderError(AppError):
    status_code = 422


class BulkLimitExceeded(AppError):
    status_code = 413

    def __init__(self, rows: int, limit: int):
        super().__init__(
            f"File has {rows} data rows; the limit is {limit}",
            rows=rows,
            limit=limit,
        )


class GenerationTimeout(AppError):
    status_code = 504

    def __init__(self, seconds: int):
        super().__init__(f"Generation did not finish within {seconds} seconds")
