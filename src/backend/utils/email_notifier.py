# src/backend/utils/email_notifier.py
from __future__ import annotations

import base64
import html
import logging
import smtplib
from dataclasses import dataclass
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import List, Optional, Sequence, Tuple

import requests
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from src.backend.config import settings
from src.backend.models.app_settings import SmtpSettings
from src.backend.utils.timezone import now_local

logger = logging.getLogger(__name__)

# (filename, payload)
Attachment = Tuple[str, bytes]


class EmailDeliveryError(Exception):
    pass


@dataclass
class MailConfig:
    host: str
    port: int
    use_tls: bool
    use_ssl: bool
    username: Optional[str]
    password: Optional[str]
    from_email: str
    from_name: Optional[str] = None


@dataclass
class EmailResult:
    status: str                 # sent | failed | skipped
    error: Optional[str] = None

    @property
    def message(self) -> str:
        if self.status == "sent":
            return "Email notification sent"
        if self.status == "skipped":
            return f"Email not sent: {self.error}"
        return f"Email sending failed: {self.error}"


def split_addresses(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    parts = raw.replace(";", ",").split(",")
    return [p.strip() for p in parts if p.strip()]


async def load_mail_config(db: AsyncSession) -> Optional[MailConfig]:
    row = await db.scalar(select(SmtpSettings).order_by(SmtpSettings.id).limit(1))
    if not row:
        return None
    return MailConfig(
        host=row.host,
        port=row.port,
        use_tls=row.use_tls,
        use_ssl=row.use_ssl,
        username=row.username,
        password=row.password,
        from_email=row.from_email,
        from_name=row.from_name,
    )


async def app_base_url(db: AsyncSession) -> str:
    row = await db.scalar(select(SmtpSettings).order_by(SmtpSettings.id).limit(1))
    url = (row.application_url if row else None) or settings.APP_BASE_URL
    return url.rstrip("/")


def send_email(
    config: Optional[MailConfig],
    to: str,
    subject: str,
    body_html: str,
    cc: Optional[List[str]] = None,
    reply_to: Optional[str] = None,
    attachments: Sequence[Attachment] = (),
) -> None:
    """
    Blocking send through the configured provider.
    - smtp   → settings stored in smtp_settings
    - resend → HTTPS API (hosts without outbound SMTP)
    Raises EmailDeliveryError on any failure.
    """
    try:
        if settings.EMAIL_PROVIDER.lower() == "resend":
            _send_resend(config, to, subject, body_html, cc or [], reply_to, attachments)
        else:
            if config is None:
                raise EmailDeliveryError("SMTP is not configured")
            _send_smtp(config, to, subject, body_html, cc or [], reply_to, attachments)
    except EmailDeliveryError:
        raise
    except (smtplib.SMTPException, OSError, requests.RequestException) as e:
        raise EmailDeliveryError(str(e)) from e


# ─────────────────────────────────────────────────────────
# RESEND (HTTPS)
# ─────────────────────────────────────────────────────────
def _send_resend(
    config: Optional[MailConfig],
    to: str,
    subject: str,
    body_html: str,
    cc: List[str],
    reply_to: Optional[str],
    attachments: Sequence[Attachment],
) -> None:
    api_key = settings.RESEND_API_KEY
    if not api_key:
        raise EmailDeliveryError("RESEND_API_KEY not set")
    from_email = config.from_email if config else "onboarding@resend.dev"

    body = {
        "from": from_email,
        "to": [to],
        "cc": cc,
        "subject": subject,
        "html": body_html,
    }
    if reply_to:
        body["reply_to"] = reply_to
    if attachments:
        body["attachments"] = [
            {"filename": name, "content": base64.b64encode(data).decode("ascii")}
            for name, data in attachments
        ]

    res = requests.post(
        "https://api.resend.com/emails",
        headers={
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        },
        json=body,
        timeout=settings.EMAIL_TIMEOUT_SECONDS,
    )
    if res.status_code >= 400:
        raise EmailDeliveryError(f"Resend error: {res.text}")
    logger.info("Email sent via Resend to %s", to)


# ─────────────────────────────────────────────────────────
# SMTP
# ─────────────────────────────────────────────────────────
def _send_smtp(
    config: MailConfig,
    to: str,
    subject: str,
    body_html: str,
    cc: List[str],
    reply_to: Optional[str],
    attachments: Sequence[Attachment],
) -> None:
    msg = MIMEMultipart("mixed")
    msg["From"] = formataddr((config.from_name or "", config.from_email))
    msg["To"] = to
    if cc:
        msg["Cc"] = ", ".join(cc)
    if reply_to:
        msg["Reply-To"] = reply_to
    msg["Subject"] = subject
    msg.attach(MIMEText(body_html, "html", "utf-8"))
    for name, data in attachments:
        part = MIMEApplication(data, Name=name)
        part["Content-Disposition"] = f'attachment; filename="{name}"'
        msg.attach(part)

    timeout = settings.EMAIL_TIMEOUT_SECONDS
    if config.use_ssl:
        server: smtplib.SMTP = smtplib.SMTP_SSL(config.host, config.port, timeout=timeout)
    else:
        server = smtplib.SMTP(config.host, config.port, timeout=timeout)
    try:
        if config.use_tls and not config.use_ssl:
            server.starttls()
        if config.username:
            server.login(config.username, config.password or "")
        server.sendmail(config.from_email, [to, *cc], msg.as_string())
    finally:
        server.quit()
    logger.info("Email sent via SMTP to %s", to)


async def deliver(
    db: AsyncSession,
    to: Optional[str],
    subject: str,
    body_html: str,
    cc: Optional[List[str]] = None,
    reply_to: Optional[str] = None,
    attachments: Sequence[Attachment] = (),
) -> EmailResult:
    """
    Best-effort notification: never raises, the outcome is returned so the
    caller can record it on the record and report it in the response.
    """
    if not to:
        return EmailResult("skipped", "no recipient address")
    config = await load_mail_config(db)
    if config is None and settings.EMAIL_PROVIDER.lower() != "resend":
        logger.warning("SMTP not configured; skipped email to %s", to)
        return EmailResult("skipped", "SMTP not configured")
    try:
        await run_in_threadpool(send_email, config, to, subject, body_html, cc, reply_to, attachments)
    except EmailDeliveryError as e:
        logger.error("Email to %s failed: %s", to, e)
        return EmailResult("failed", str(e))
    return EmailResult("sent")


def record_email_result(row, result: EmailResult) -> None:
    """Stamp last_email_* columns on a courier-like row."""
    row.last_email_status = result.status
    row.last_email_error = result.error
    row.last_email_at = now_local()


# ─────────────────────────────────────────────────────────
# Message bodies
# ─────────────────────────────────────────────────────────
def _e(v) -> str:
    return html.escape(str(v)) if v is not None else ""


def courier_sent_email(
    courier,
    confirm_url: str,
    *,
    sender_name: str,
    department_name: Optional[str] = None,
    greeting: Optional[str] = None,
    vendor_phone: Optional[str] = None,
) -> tuple[str, str]:
    subject = "Courier Dispatch Notification - Courier Management System"
    vendor = courier.custom_vendor or courier.vendor
    greeting = greeting or f"Dear {courier.receiver_name or 'Team'}"
    contact = (
        f"<p>For any assistance regarding this courier, you may coordinate directly "
        f"with our courier vendor at {_e(vendor_phone)}.</p>"
        if vendor_phone else ""
    )
    body = (
        f"<h3>{_e(department_name or 'N/A')} &bull; Courier Sent</h3>"
        f"<p>{_e(greeting)},</p>"
        f"<p>This is to notify you that a courier has been <strong>sent to you from "
        f"{_e(vendor or 'N/A')} courier services</strong>.</p>"
        f"{contact}"
        "<table cellpadding=\"4\">"
        f"<tr><td>Courier ID</td><td><b>{_e(courier.pod_no or 'N/A')}</b></td></tr>"
        f"<tr><td>From</td><td><b>{_e(sender_name)}</b></td></tr>"
        f"<tr><td>To</td><td><b>{_e(courier.to_branch)}</b></td></tr>"
        f"<tr><td>Contact Details</td><td><b>{_e(courier.contact_details or 'N/A')}</b></td></tr>"
        f"<tr><td>Sent Date</td><td><b>{_e(courier.courier_date or 'N/A')}</b></td></tr>"
        f"<tr><td>Remarks</td><td><b>{_e(courier.remarks or 'N/A')}</b></td></tr>"
        "</table>"
        f'<p><a href="{_e(confirm_url)}">Click Here to Confirm Received</a></p>'
        "<p>For discrepancies, please update the record or contact the Courier Desk.</p>"
        f"<p>Thanks And Regards,<br>{_e(sender_name)}<br>{_e(department_name or '')}</p>"
    )
    return subject, body


def courier_reminder_email(courier, confirm_url: str) -> tuple[str, str]:
    subject = f"Reminder: please confirm courier POD {courier.pod_no or 'N/A'}"
    body = (
        f"<p>The courier sent on {_e(courier.courier_date)} to {_e(courier.to_branch)} "
        "has not been confirmed yet.</p>"
        f'<p><a href="{_e(confirm_url)}">Confirm receipt</a></p>'
    )
    return subject, body


def received_courier_arrival_email(rc) -> tuple[str, str]:
    subject = f"Courier received for you - POD {rc.pod_number}"
    body = (
        f"<p>Dear {_e(rc.to_user) or 'Sir/Madam'},</p>"
        f"<p>A courier from <b>{_e(rc.from_location)}</b> arrived on {_e(rc.received_date)} "
        f"(POD {_e(rc.pod_number)}, {_e(rc.custom_vendor or rc.courier_vendor)}).</p>"
        "<p>It will be handed over shortly.</p>"
    )
    return subject, body


def received_courier_dispatch_email(rc, confirm_url: str) -> tuple[str, str]:
    subject = f"Courier on its way to you - POD {rc.pod_number}"
    body = (
        f"<p>Dear {_e(rc.to_user) or 'Sir/Madam'},</p>"
        f"<p>The courier from <b>{_e(rc.from_location)}</b> (POD {_e(rc.pod_number)}) "
        "has been dispatched to you.</p>"
        f'<p>Once you have it, please confirm: <a href="{_e(confirm_url)}">I received it</a></p>'
    )
    return subject, body


def password_reset_email(user_name: str, reset_url: str, minutes: int) -> tuple[str, str]:
    subject = "Password reset request"
    body = (
        f"<p>Hello {_e(user_name)},</p>"
        f'<p><a href="{_e(reset_url)}">Reset your password</a>. '
        f"The link expires in {minutes} minutes and works once.</p>"
        "<p>If you did not ask for this, ignore this email.</p>"
    )
    return subject, body
