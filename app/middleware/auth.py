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


"""Authentication middleware and dependencies."""

import secrets
from datetime import datetime
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from app.config import get_settings
from app.database import get_db
from app.models.auth import AuthToken
from app.models.user import User


def get_token_from_request(request: Request) -> Optional[str]:
    """Extract auth token from request cookies or header."""
    # Try Authorization header first
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header[7:]

    return request.cookies.get("auth_token")


def check_demo_mode() -> bool:
    """Check if demo mode is enabled."""
    return get_settings().app.demo_mode


def require_write_access():
    """Dependency that blocks write operations in demo mode."""
    if check_demo_mode():
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="This action is not available in demo mode. This is a read-only demonstration instance.",
        )


async def get_current_user(
    request: Request,
    db: Session = Depends(get_db),
) -> User:
    """Get the current authenticated user.

    Raises HTTPException if not authenticated.
    """
    token = get_token_from_request(request)

    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )

    auth_token = db.query(AuthToken).filter(AuthToken.token == token).first()

    if not auth_token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication token",
        )

    if not auth_token.is_valid():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication token expired or revoked",
        )

    user = auth_token.user

    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is deactivated",
        )

    auth_token.last_used_at = datetime.utcnow()
    db.commit()

    return user


async def require_admin(
    current_user: User = Depends(get_current_user),
) -> User:
    """Require admin role."""
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return current_user


def require_permission(permission: str):
    """Build a dependency that requires a role permission.

    Write permissions are refused outright in demo mode.
    """

    async def dependency(current_user: User = Depends(get_current_user)) -> User:
        if permission.endswith(":write") or permission.endswith(":manage"):
            require_write_access()
        if not current_user.has_permission(permission):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission required: {permission}",
            )
        return current_user

    return dependency


def get_csrf_token(request: Request) -> str:
    """Get or generate CSRF token for the request."""
    csrf_token = request.cookies.get("csrf_token")

    if not csrf_token:
        csrf_token = secrets.token_urlsafe(32)

    return csrf_token


async def verify_csrf_token(request: Request) -> None:
    """Verify CSRF token for cookie-authenticated mutation requests.

    Compares the token from cookie with the X-CSRF-Token header. Requests
    carrying a Bearer token are not exposed to CSRF and are not checked.
    """
    settings = get_settings()

    if not settings.security.csrf_enabled:
        return

    if request.method not in ("POST", "PUT", "PATCH", "DELETE"):
        return

    if request.headers.get("Authorization", "").startswith("Bearer "):
        return

    if not request.cookies.get("auth_token"):
        return

    cookie_token = request.cookies.get("csrf_token")
    if not cookie_token:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="CSRF token missing from cookie",
        )

    header_token = request.headers.get("X-CSRF-Token")
    if not header_token:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="CSRF token missing from header",
        )

    if not secrets.compare_digest(cookie_token, header_token):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="CSRF token mismatch",
        )
