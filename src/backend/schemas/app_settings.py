# src/backend/schemas/app_settings.py
from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import EmailStr, Field, SecretStr

from src.backend.schemas.common import CamelModel


class SmtpSettingsIn(CamelModel):
    host: str = Field(..., min_length=1, max_length=255)
    port: int = Field(587, gt=0, lt=65536)
    use_tls: bool = True
    use_ssl: bool = False
    username: Optional[str] = None
    # omitted or empty keeps the stored password
    password: Optional[SecretStr] = None
    from_email: EmailStr
    from_name: Optional[str] = None
    application_url: Optional[str] = None


class SmtpSettingsOut(CamelModel):
    host: str
    port: int
    use_tls: bool
    use_ssl: bool
    username: Optional[str] = None
    has_password: bool = False
    from_email: str
    from_name: Optional[str] = None
    application_url: Optional[str] = None


class SmtpTestRequest(CamelModel):
    to: EmailStr


class SamlSettingsIn(CamelModel):
    enabled: bool = False
    entity_id: Optional[str] = None
    sso_url: Optional[str] = None
    x509_certificate: Optional[str] = None
    callback_url: Optional[str] = None
    attribute_email: str = "email"
    attribute_name: str = "name"


class SamlSettingsOut(SamlSettingsIn):
    pass


class UserPolicyIn(CamelModel):
    department_id: int
    tab_name: str = Field(..., min_length=1, max_length=100)
    is_enabled: bool = True


class UserPolicyOut(UserPolicyIn):
    id: int


class UserPoliciesBulk(CamelModel):
    department_id: int
    policies: Dict[str, bool] = Field(default_factory=dict)


class PermissionsOut(CamelModel):
    role: str
    department_ids: List[int]
    tabs: Dict[str, bool]
