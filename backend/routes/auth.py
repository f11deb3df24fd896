"""
Auth endpoints — email/password accounts and JWT sessions.

Flow:
  1) POST /api/auth/signup (or /login) -> {token, user}
  2) Client sends Authorization: Bearer <token> on every protected request
  3) PATCH /api/auth/update-password returns a fresh token; older tokens die

Role-scoped aliases: /api/auth/{role}/login, /api/seller/{signup,login},
/api/admin/{signup,login}.
"""

import hmac
import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from db_models import User
from deps import get_current_user
from domain.enums import Role
from domain.errors import PermissionDeniedError
from domain.responses import success_response
from middleware.auth import issue_access_token
from middleware.rate_limit import auth_rate_limit
from models import (
    AdminSignupRequest,
    ForgotPasswordRequest,
    LoginRequest,
    ResetPasswordRequest,
    SignupRequest,
    UpdateMeRequest,
    UpdatePasswordRequest,
    UserOut,
)
from services import auth_service, notification_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/auth", tags=["auth"])
seller_auth_router = APIRouter(prefix="/api/seller", tags=["auth"])
admin_auth_router = APIRouter(prefix="/api/admin", tags=["auth"])

_auth_limit = Depends(auth_rate_limit())


def _session_payload(user: User) -> dict:
    token = issue_access_token(user_id=user.id, email=user.email, role=user.role)
    return {"token": token, "user": UserOut.serialize(user)}


async def _signup(db: AsyncSession, request: SignupRequest, role: str) -> dict:
    user = await auth_service.create_account(
        db,
        name=request.name,
        email=request.email,
        password=request.password,
        role=role,
        address=request.address.model_dump() if request.address else None,
        phone=request.phone,
    )
    await db.commit()
    await notification_service.notify_new_user(user)
    return success_response(_session_payload(user))


async def _login(db: AsyncSession, request: LoginRequest, role: str | None) -> dict:
    user = await auth_service.authenticate(
        db, email=request.email, password=request.password, role=role
    )
    await db.commit()
    logger.info(f"Login: id={user.id} role={user.role}")
    return success_response(_session_payload(user))


# ── Signup / login ──────────────────────────────────────────────────

@router.post("/signup", status_code=status.HTTP_201_CREATED)
async def signup(
    request: SignupRequest,
    db: AsyncSession = Depends(get_db),
    _rate=_auth_limit,
):
    role = auth_service.check_public_signup_role(request.role)
    return await _signup(db, request, role)


@router.post("/login")
async def login(
    request: LoginRequest,
    db: AsyncSession = Depends(get_db),
    _rate=_auth_limit,
):
    return await _login(db, request, request.role)


@router.post("/{role}/login")
async def role_login(
    role: Role,
    request: LoginRequest,
    db: AsyncSession = Depends(get_db),
    _rate=_auth_limit,
):
    return await _login(db, request, role.value)


@seller_auth_router.post("/signup", status_code=status.HTTP_201_CREATED)
async def seller_signup(
    request: SignupRequest,
    db: AsyncSession = Depends(get_db),
    _rate=_auth_limit,
):
    return await _signup(db, request, Role.SELLER.value)


@seller_auth_router.post("/login")
async def seller_login(
    request: LoginRequest,
    db: AsyncSession = Depends(get_db),
    _rate=_auth_limit,
):
    return await _login(db, request, Role.SELLER.value)


@admin_auth_router.post("/signup", status_code=status.HTTP_201_CREATED)
async def admin_signup(
    request: AdminSignupRequest,
    db: AsyncSession = Depends(get_db),
    _rate=_auth_limit,
):
    if settings.admin_signup_key and not hmac.compare_digest(
        (request.signup_key or "").encode(), settings.admin_signup_key.encode()
    ):
        logger.warning("Admin signup refused: bad signup key")
        raise PermissionDeniedError("Invalid admin signup key")
    return await _signup(db, request, Role.ADMIN.value)


@admin_auth_router.post("/login")
async def admin_login(
    request: LoginRequest,
    db: AsyncSession = Depends(get_db),
    _rate=_auth_limit,
):
    return await _login(db, request, Role.ADMIN.value)


# ── Session ─────────────────────────────────────────────────────────

@router.get("/verify")
async def verify(user: User = Depends(get_current_user)):
    return success_response({"valid": True, "user": UserOut.serialize(user)})


@router.get("/me")
async def me(user: User = Depends(get_current_user)):
    return success_response(UserOut.serialize(user))


@router.get("/logout")
async def logout():
    """Tokens are stateless; the client simply forgets its token."""
    return success_response({"message": "Logged out"})


# ── Profile / password ──────────────────────────────────────────────

@router.patch("/update-me")
async def update_me(
    request: UpdateMeRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    user = await auth_service.update_profile(
        db,
        user,
        changes=request.model_dump(exclude_unset=True),
        extra=request.model_extra,
    )
    await db.commit()
    return success_response(UserOut.serialize(user))


@router.patch("/update-password")
async def update_password(
    request: UpdatePasswordRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    user = await auth_service.change_password(
        db, user, current_password=request.current_password, new_password=request.password
    )
    await db.commit()
    return success_response(_session_payload(user))


@router.delete("/delete-me")
async def delete_me(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await auth_service.deactivate(db, user)
    await db.commit()
    return success_response({"message": "Account deactivated"})


@router.post("/forgot-password")
async def forgot_password(
    request: ForgotPasswordRequest,
    db: AsyncSession = Depends(get_db),
    _rate=_auth_limit,
):
    raw = await auth_service.create_reset_token(db, email=request.email)
    await db.commit()
    data = {
        "message": "Password reset token issued",
        "expiresInMinutes": settings.password_reset_ttl_minutes,
    }
    if settings.expose_reset_token:
        data["resetToken"] = raw
    return success_response(data)


@router.patch("/reset-password/{token}")
async def reset_password(
    token: str,
    request: ResetPasswordRequest,
    db: AsyncSession = Depends(get_db),
    _rate=_auth_limit,
):
    user = await auth_service.reset_password(db, raw_token=token, new_password=request.password)
    await db.commit()
    return success_response(_session_payload(user))
