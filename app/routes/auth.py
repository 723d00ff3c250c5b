# EquipTrack - Equipment Inventory and Calibration Tracking
# Copyright (C) 2025 EquipTrack contributors
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program.  If not, see <https://www.gnu.org/licenses/>.


"""Authentication routes."""

import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel, EmailStr
from sqlalchemy.orm import Session

from app.config import get_settings
from app.database import get_db
from app.middleware.auth import get_current_user, get_csrf_token, get_token_from_request
from app.models.auth import AuthToken, MagicLink
from app.models.user import User
from app.utils.helpers import generate_token, is_valid_email

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth")


class LoginRequest(BaseModel):
    """Magic link request."""

    email: EmailStr


class LoginResponse(BaseModel):
    """Magic link response."""

    success: bool
    message: str
    dev_mode: bool = False
    verify_link: Optional[str] = None


@router.post("/login", response_model=LoginResponse)
async def request_login_link(
    request: Request,
    data: LoginRequest,
    db: Session = Depends(get_db),
):
    """Send a passwordless login link to an existing user."""
    settings = get_settings()

    email = data.email.lower().strip()

    if not is_valid_email(email):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid email format",
        )

    # Accounts are provisioned by administrators
    user = db.query(User).filter(User.email == email).first()

    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No account exists for this email. Ask an administrator to add you.",
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is deactivated",
        )

    token = generate_token(32)
    magic_link = MagicLink(
        email=email,
        token=token,
        expires_at=datetime.utcnow() + timedelta(minutes=settings.security.magic_link_minutes),
        ip_address=request.client.host if request.client else None,
        user_id=user.id,
    )
    db.add(magic_link)
    db.commit()

    verify_url = f"{settings.app.base_url}/api/auth/verify?token={token}"

    if not settings.email.enabled:
        # Dev mode - return link directly
        return LoginResponse(
            success=True,
            message="Email disabled. Use the verification link below.",
            dev_mode=True,
            verify_link=verify_url,
        )

    from app.services.email import get_email_service

    try:
        await get_email_service().send_magic_link(email, token, user.name)
    except Exception:
        logger.exception("Failed to send login link to %s", email)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to send verification email",
        )

    return LoginResponse(
        success=True,
        message=f"Login link sent to {email}. Check your inbox.",
    )


def _issue_auth_token(db: Session, user: User, request: Request) -> AuthToken:
    """Create a session token, revoking the oldest ones past the per-user limit."""
    settings = get_settings()

    user_tokens = (
        db.query(AuthToken)
        .filter(AuthToken.user_id == user.id, AuthToken.is_revoked.is_(False))
        .order_by(AuthToken.created_at.desc())
        .all()
    )

    if len(user_tokens) >= settings.security.max_tokens_per_user:
        for old_token in user_tokens[settings.security.max_tokens_per_user - 1 :]:
            old_token.is_revoked = True

    auth_token = AuthToken(
        user_id=user.id,
        token=generate_token(32),
        expires_at=datetime.utcnow() + timedelta(days=settings.security.auth_token_days),
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
    db.add(auth_token)
    return auth_token


def _set_session_cookies(response: Response, token: str) -> None:
    settings = get_settings()
    max_age = settings.security.auth_token_days * 24 * 60 * 60

    response.set_cookie(
        key="auth_token",
        value=token,
        httponly=True,
        secure=not settings.app.debug,
        samesite="lax",
        max_age=max_age,
    )
    response.set_cookie(
        key="csrf_token",
        value=secrets.token_urlsafe(32),
        httponly=False,  # JavaScript needs to read this
        secure=not settings.app.debug,
        samesite="lax",
        max_age=max_age,
    )


@router.get("/verify")
async def verify_magic_link(
    token: str,
    request: Request,
    redirect: bool = True,
    db: Session = Depends(get_db),
):
    """Verify magic link and create a session.

    Browsers are redirected to the frontend with session cookies set. API
    clients pass ``redirect=false`` to receive the bearer token as JSON.
    """
    settings = get_settings()

    magic_link = db.query(MagicLink).filter(MagicLink.token == token).first()

    if not magic_link:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid or expired magic link",
        )

    if not magic_link.is_valid():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Magic link has expired or already been used",
        )

    user = db.query(User).filter(User.email == magic_link.email).first()
    if not user or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is deactivated",
        )

    magic_link.used = True
    magic_link.used_at = datetime.utcnow()
    user.last_login_at = datetime.utcnow()

    auth_token = _issue_auth_token(db, user, request)
    db.commit()
    db.refresh(user)

    logger.info("User %s logged in", user.email)

    if redirect:
        response = RedirectResponse(url=settings.app.frontend_url, status_code=status.HTTP_302_FOUND)
    else:
        response = JSONResponse(
            {
                "success": True,
                "token": auth_token.token,
                "expires_at": auth_token.expires_at.isoformat(),
                "user": user.to_dict(),
            }
        )

    _set_session_cookies(response, auth_token.token)
    return response


@router.get("/validate")
async def validate_session(
    request: Request,
    db: Session = Depends(get_db),
):
    """Check if current session is valid."""
    token = get_token_from_request(request)

    if not token:
        return {"valid": False}

    auth_token = db.query(AuthToken).filter(AuthToken.token == token).first()

    if not auth_token or not auth_token.is_valid():
        return {"valid": False}

    if not auth_token.user or not auth_token.user.is_active:
        return {"valid": False}

    return {"valid": True, "user_id": auth_token.user_id}


@router.get("/csrf")
async def csrf_token(request: Request):
    """Return the CSRF token the client must echo in X-CSRF-Token."""
    return {"csrf_token": get_csrf_token(request)}


@router.get("/me")
async def get_current_user_info(
    current_user: User = Depends(get_current_user),
):
    """Get current authenticated user info."""
    return {
        "success": True,
        "user": current_user.to_dict(),
    }


@router.post("/logout")
async def logout(
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Logout and revoke current session."""
    token = get_token_from_request(request)

    if token:
        auth_token = db.query(AuthToken).filter(AuthToken.token == token).first()
        if auth_token:
            auth_token.is_revoked = True
            db.commit()

    response.delete_cookie("auth_token")
    response.delete_cookie("csrf_token")

    return {"success": True, "message": "Logged out successfully"}
