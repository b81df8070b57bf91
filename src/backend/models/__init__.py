# Import every model so Base.metadata knows all tables.
from src.backend.models.department import Department, Field, DepartmentField
from src.backend.models.user import User, UserDepartment
from src.backend.models.revoked_token import RevokedToken
from src.backend.models.password_reset_token import PasswordResetToken
from src.backend.models.courier import Courier
from src.backend.models.received_courier import ReceivedCourier
from src.backend.models.branch import Branch, BranchImportReport
from src.backend.models.vendor import Vendor
from src.backend.models.authority_letter import (
    AuthorityLetterTemplate,
    AuthorityLetterField,
    FieldDropdownOption,
)
from src.backend.models.audit_log import AuditLog
from src.backend.models.app_settings import SmtpSettings, SamlSettings, UserPolicy

__all__ = [
    "Department",
    "Field",
    "DepartmentField",
    "User",
    "UserDepartment",
    "RevokedToken",
    "PasswordResetToken",
    "Courier",
    "ReceivedCourier",
    "Branch",
    "BranchImportReport",
    "Vendor",
    "AuthorityLetterTemplate",
    "AuthorityLetterField",
    "FieldDropdownOption",
    "AuditLog",
    "SmtpSettings",
    "SamlSettings",
    "UserPolicy",
]
