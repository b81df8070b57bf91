# src/backend/routes/settings_api.py
import logging
from typing import Optional
from xml.sax.saxutils import quoteattr

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from src.backend.crud.app_settings import (
    POLICY_TABS,
    enabled_tabs,
    get_saml,
    get_smtp,
    list_policies,
    save_policies,
    save_saml,
    save_smtp,
)
from src.backend.models.user import User
from src.backend.schemas.app_settings import (
    PermissionsOut,
    SamlSettingsIn,
    SamlSettingsOut,
    SmtpSettingsIn,
    SmtpSettingsOut,
    SmtpTestRequest,
    UserPoliciesBulk,
    UserPolicyOut,
)
from src.backend.schemas.common import to_json
from src.backend.utils.audit import log_audit
from src.backend.utils.auth import get_current_user, require_roles, user_department_ids
from src.backend.utils.database import get_db
from src.backend.utils.email_notifier import EmailDeliveryError, app_base_url, load_mail_config, send_email

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Settings"])

require_admin = require_roles("admin")

# -----------------------------------------------------------------------------
# SMTP
# -----------------------------------------------------------------------------

def _smtp_out(row) -> dict:
    return to_json(SmtpSettingsOut, row, hasPassword=bool(row.password))


@router.get("/smtp-settings")
async def api_get_smtp(
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    row = await get_smtp(db)
    return _smtp_out(row) if row else None


@router.put("/smtp-settings")
async def api_save_smtp(
    payload: SmtpSettingsIn,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    row = await save_smtp(db, payload)
    await log_audit(
        db, current_user, "UPDATE", "smtp_settings", row.id,
        details=f"SMTP settings saved ({row.host}:{row.port}, from {row.from_email})",
    )
    return _smtp_out(row)


@router.post("/smtp-settings/test")
async def api_test_smtp(
    payload: SmtpTestRequest,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    config = await load_mail_config(db)
    try:
        await run_in_threadpool(
            send_email,
            config,
            str(payload.to),
            "Courier Desk SMTP test",
            "<p>This is a test email from the courier desk. Your mail settings work.</p>",
        )
    except EmailDeliveryError as e:
        logger.error("SMTP test to %s failed: %s", payload.to, e)
        raise HTTPException(status_code=502, detail=f"Test email failed: {e}")
    return {"message": f"Test email sent to {payload.to}"}

# -----------------------------------------------------------------------------
# SAML (configuration only)
# -----------------------------------------------------------------------------

@router.get("/saml-settings")
async def api_get_saml(
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    row = await get_saml(db)
    return to_json(SamlSettingsOut, row) if row else SamlSettingsOut().model_dump(by_alias=True)


@router.post("/saml-settings")
async def api_save_saml(
    payload: SamlSettingsIn,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    if payload.enabled and not (payload.entity_id and payload.sso_url):
        raise HTTPException(status_code=400, detail="Entity ID and SSO URL are required to enable SAML")
    row = await save_saml(db, payload)
    await log_audit(
        db, current_user, "UPDATE", "saml_settings", row.id,
        details=f"SAML settings saved (enabled={row.enabled})",
    )
    return to_json(SamlSettingsOut, row)


@router.get("/saml-settings-public")
async def api_saml_public(db: AsyncSession = Depends(get_db)):
    row = await get_saml(db)
    return {"enabled": bool(row and row.enabled)}


@router.get("/saml/metadata")
async def api_saml_metadata(db: AsyncSession = Depends(get_db)):
    row = await get_saml(db)
    base = await app_base_url(db)
    entity_id = (row.entity_id if row and row.entity_id else f"{base}/api/saml/metadata")
    acs = (row.callback_url if row and row.callback_url else f"{base}/api/saml/callback")
    xml = (
        '<?xml version="1.0" encoding="UTF-8"?>'
        f'<md:EntityDescriptor xmlns:md="urn:oasis:names:tc:SAML:2.0:metadata" entityID={quoteattr(entity_id)}>'
        '<md:SPSSODescriptor AuthnRequestsSigned="false" WantAssertionsSigned="true" '
        'protocolSupportEnumeration="urn:oasis:names:tc:SAML:2.0:protocol">'
        "<md:NameIDFormat>urn:oasis:names:tc:SAML:1.1:nameid-format:emailAddress</md:NameIDFormat>"
        '<md:AssertionConsumerService Binding="urn:oasis:names:tc:SAML:2.0:bindings:HTTP-POST" '
        f'Location={quoteattr(acs)} index="1"/>'
        "</md:SPSSODescriptor>"
        "</md:EntityDescriptor>"
    )
    return Response(content=xml, media_type="application/xml")


@router.get("/saml/login")
async def api_saml_login(db: AsyncSession = Depends(get_db)):
    row = await get_saml(db)
    if not row or not row.enabled or not row.sso_url:
        raise HTTPException(status_code=404, detail="SAML login is not enabled")
    return RedirectResponse(url=row.sso_url, status_code=302)

# -----------------------------------------------------------------------------
# User policies
# -----------------------------------------------------------------------------

@router.get("/user-policies")
async def api_list_policies(
    department_id: Optional[int] = Query(None, alias="departmentId"),
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    rows = await list_policies(db, department_id)
    return {"tabs": list(POLICY_TABS), "policies": [to_json(UserPolicyOut, p) for p in rows]}


@router.post("/user-policies")
async def api_save_policies(
    payload: UserPoliciesBulk,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    unknown = sorted(set(payload.policies) - set(POLICY_TABS))
    if unknown:
        raise HTTPException(status_code=400, detail=f"Unknown tabs: {', '.join(unknown)}")
    rows = await save_policies(db, payload.department_id, payload.policies)
    await log_audit(
        db, current_user, "UPDATE", "user_policy", payload.department_id,
        details="Tabs: " + ", ".join(f"{p.tab_name}={'on' if p.is_enabled else 'off'}" for p in rows),
    )
    return [to_json(UserPolicyOut, p) for p in rows]


@router.get("/user-permissions")
async def api_user_permissions(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    dept_ids = await user_department_ids(db, current_user)
    # admins are never restricted by department policies
    tabs = {t: True for t in POLICY_TABS} if current_user.role == "admin" else await enabled_tabs(db, dept_ids)
    return PermissionsOut(role=current_user.role, department_ids=dept_ids, tabs=tabs).model_dump(by_alias=True)
