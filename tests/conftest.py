from __future__ import annotations

import os
import re
import tempfile

# settings are read at import time
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["AUTO_CREATE_TABLES"] = "false"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="courier-desk-uploads-")
os.environ["EMAIL_PROVIDER"] = "smtp"
os.environ["APP_BASE_URL"] = "http://testserver"

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import src.backend.models  # noqa: F401
from src.backend.app import app
from src.backend.models.app_settings import SmtpSettings
from src.backend.models.department import Department
from src.backend.models.user import User, UserDepartment
from src.backend.utils import email_notifier
from src.backend.utils.auth import issue_token
from src.backend.utils.database import Base, get_db
from src.backend.utils.security import hash_password

PASSWORD = "Passw0rd1"
TOKEN_RE = re.compile(r"token=([\w-]+)")


@pytest.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(engine, expire_on_commit=False)
    yield factory
    await engine.dispose()


@pytest.fixture
async def client(session_factory):
    async def _get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
async def department(session_factory):
    async with session_factory() as db:
        row = Department(name="Operations")
        db.add(row)
        await db.commit()
        await db.refresh(row)
        return row


@pytest.fixture
async def other_department(session_factory):
    async with session_factory() as db:
        row = Department(name="Legal")
        db.add(row)
        await db.commit()
        await db.refresh(row)
        return row


@pytest.fixture
def make_user(session_factory):
    async def _make(email: str, role: str = "user", department_id=None, extra_departments=()):
        async with session_factory() as db:
            user = User(
                email=email,
                name=email.split("@")[0].title(),
                password=hash_password(PASSWORD),
                role=role,
                department_id=department_id,
                is_active=True,
            )
            db.add(user)
            await db.commit()
            for dept_id in extra_departments:
                db.add(UserDepartment(user_id=user.id, department_id=dept_id))
            await db.commit()
            await db.refresh(user)
            return user

    return _make


def auth(user: User) -> dict:
    return {"Authorization": f"Bearer {issue_token(user)}"}


@pytest.fixture
async def admin(make_user, department):
    return await make_user("admin@example.com", role="admin", department_id=department.id)


@pytest.fixture
async def manager(make_user, department):
    return await make_user("manager@example.com", role="manager", department_id=department.id)


@pytest.fixture
async def staff(make_user, department):
    return await make_user("staff@example.com", role="user", department_id=department.id)


@pytest.fixture
async def smtp(session_factory):
    async with session_factory() as db:
        db.add(SmtpSettings(host="smtp.example.com", port=587, from_email="desk@example.com", from_name="Courier Desk"))
        await db.commit()


@pytest.fixture
def outbox(monkeypatch, smtp):
    """Captured emails instead of a real SMTP round trip."""
    sent = []

    def _fake_send(config, to, subject, body_html, cc=None, reply_to=None, attachments=()):
        sent.append({
            "to": to,
            "subject": subject,
            "body": body_html,
            "cc": list(cc or []),
            "reply_to": reply_to,
            "attachments": list(attachments),
        })

    monkeypatch.setattr(email_notifier, "send_email", _fake_send)
    return sent


def token_from(body: str) -> str:
    return TOKEN_RE.search(body).group(1)
