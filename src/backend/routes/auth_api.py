# src/backend/routes/auth_api.py
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.backend.config import settings
from src.backend.crud.users import (
    consume_reset_token,
    create_reset_token,
    create_user,
    find_conflicts,
    get_user_by_email,
    set_password,
    update_user,
)
from src.backend.models.user import User
from src.backend.schemas.common import to_json
from src.backend.schemas.user import (
    ForgotPasswordRequest,
    LoginRequest,
    PasswordChange,
    ProfileUpdate,
    ResetPasswordRequest,
    UserOut,
    UserRegister,
)
from src.backend.utils.audit import log_audit
from src.backend.utils.auth import (
    authenticate_user,
    get_client_ip,
    get_current_user,
    get_token_payload,
    issue_token,
    revoke_token,
)
from src.backend.utils.database import get_db
from src.backend.utils.email_notifier import app_base_url, deliver, password_reset_email
from src.backend.utils.exceptions import FieldConflict, field_error
from src.backend.utils.security import verify_password

logger = logging.getLogger(__name__)

auth_api = APIRouter(prefix="/api/auth", tags=["Auth"])
profile_api = APIRouter(prefix="/api/user", tags=["Auth"])

FORGOT_PASSWORD_MESSAGE = "If an account exists for that email, a password reset link has been sent."

# -----------------------------------------------------------------------------
# Register / Login / Logout
# -----------------------------------------------------------------------------

@auth_api.post("/login")
async def login(payload: LoginRequest, request: Request, db: AsyncSession = Depends(get_db)):
    user = await authenticate_user(db, str(payload.email), payload.password.get_secret_value())
    if not user:
        raise HTTPException(status_code=401, detail="Invalid email or password")
    await log_audit(db, user, "LOGIN", "user", user.id, details=f"Login from {get_client_ip(request)}")
    return {"token": issue_token(user), "user": to_json(UserOut, user)}


@auth_api.post("/register", status_code=201)
async def register(payload: UserRegister, db: AsyncSession = Depends(get_db)):
    conflicts = await find_conflicts(db, email=str(payload.email), employee_code=payload.employee_code)
    if conflicts:
        raise FieldConflict(conflicts, message=conflicts[0]["message"])
    try:
        # self-registration never grants more than `user`
        user = await create_user(db, payload, role="user")
    except IntegrityError:
        raise FieldConflict([field_error("email", "Email is already registered", str(payload.email))])
    await log_audit(db, user, "CREATE", "user", user.id, details=f"Self-registered {user.email}")
    return {"token": issue_token(user), "user": to_json(UserOut, user)}


@auth_api.post("/logout")
async def logout(
    payload: dict = Depends(get_token_payload),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await revoke_token(db, payload)
    await log_audit(db, current_user, "LOGOUT", "user", current_user.id)
    return {"message": "Logged out successfully"}


@auth_api.get("/user")
async def me(current_user: User = Depends(get_current_user)):
    return to_json(UserOut, current_user)

# -----------------------------------------------------------------------------
# Forgot / Reset / Change Password
# -----------------------------------------------------------------------------

@auth_api.post("/forgot-password")
async def forgot_password(payload: ForgotPasswordRequest, db: AsyncSession = Depends(get_db)):
    # same answer whether or not the address exists
    user = await get_user_by_email(db, str(payload.email))
    if not user or not user.is_active:
        return {"message": FORGOT_PASSWORD_MESSAGE}

    raw = await create_reset_token(db, user)
    reset_link = f"{await app_base_url(db)}/reset-password?token={raw}"
    subject, body = password_reset_email(user.display_name, reset_link, settings.PASSWORD_RESET_EXPIRE_MINUTES)
    result = await deliver(db, user.email, subject, body)
    logger.info("Password reset requested for %s (email %s)", user.id, result.status)
    return {"message": FORGOT_PASSWORD_MESSAGE}


@auth_api.post("/reset-password")
async def reset_password(payload: ResetPasswordRequest, db: AsyncSession = Depends(get_db)):
    user = await consume_reset_token(db, payload.token, payload.new_password.get_secret_value())
    if not user:
        raise HTTPException(status_code=400, detail="Invalid or expired reset token")
    await log_audit(db, user, "UPDATE", "user", user.id, details="Password reset via emailed link")
    return {"message": "Password has been reset successfully"}


@auth_api.post("/change-password")
async def change_password(
    payload: PasswordChange,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if not verify_password(payload.current_password.get_secret_value(), current_user.password):
        raise HTTPException(status_code=400, detail="Current password is incorrect")
    if payload.new_password.get_secret_value() != payload.confirm_password.get_secret_value():
        raise HTTPException(status_code=400, detail="New password and confirmation do not match")
    await set_password(db, current_user, payload.new_password.get_secret_value())
    await log_audit(db, current_user, "UPDATE", "user", current_user.id, details="Password changed")
    return {"message": "Password changed successfully"}

# -----------------------------------------------------------------------------
# Own profile
# -----------------------------------------------------------------------------

@profile_api.get("/profile")
async def get_profile(current_user: User = Depends(get_current_user)):
    return to_json(UserOut, current_user)


@profile_api.put("/profile")
async def update_profile(
    payload: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    conflicts = await find_conflicts(db, employee_code=payload.employee_code, exclude_id=current_user.id)
    if conflicts:
        raise FieldConflict(conflicts, message=conflicts[0]["message"])
    try:
        user = await update_user(db, current_user, payload)
    except IntegrityError:
        raise FieldConflict([field_error("employeeCode", "Employee code is already in use", payload.employee_code)])
    await log_audit(db, user, "UPDATE", "user", user.id, details="Profile updated")
    return to_json(UserOut, user)
