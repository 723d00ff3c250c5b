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


"""User and role management routes."""

import json
import re
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.database import get_db
from app.middleware.auth import get_current_user, require_permission
from app.models.auth import AuthToken
from app.models.catalog import Personnel
from app.models.user import PERMISSIONS, ROLE_ADMIN, ROLE_TECHNICIAN, Role, User
from app.services.audit import log_audit
from app.utils.helpers import clean_optional, model_snapshot, sanitize_input

router = APIRouter(prefix="/api/users")


class UserCreate(BaseModel):
    """User creation request."""

    email: EmailStr
    name: str = Field(..., min_length=1, max_length=255)
    username: Optional[str] = Field(None, max_length=100)
    role_id: int = ROLE_TECHNICIAN
    personnel_id: Optional[int] = None
    phone: Optional[str] = None
    department: Optional[str] = None


class UserUpdate(BaseModel):
    """User profile update request."""

    email: Optional[EmailStr] = None
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    username: Optional[str] = Field(None, max_length=100)
    personnel_id: Optional[int] = None
    phone: Optional[str] = None
    department: Optional[str] = None
    email_notifications_enabled: Optional[bool] = None


class UserRoleUpdate(BaseModel):
    """User role update request."""

    role_id: int


class UserStatusUpdate(BaseModel):
    """User status update request."""

    is_active: bool


class BulkImportRequest(BaseModel):
    """Create users from personnel records."""

    personnel_ids: List[int] = Field(..., min_length=1)
    role_id: int = ROLE_TECHNICIAN


class RoleCreate(BaseModel):
    """Custom role creation request."""

    name: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = None
    permissions: List[str] = []


class RoleUpdate(BaseModel):
    """Custom role update request."""

    name: Optional[str] = Field(None, min_length=1, max_length=50)
    description: Optional[str] = None
    permissions: Optional[List[str]] = None
    is_active: Optional[bool] = None


def _get_user(db: Session, user_id: int) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


def _get_role(db: Session, role_id: int) -> Role:
    role = db.query(Role).filter(Role.id == role_id).first()
    if not role:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Role not found")
    return role


def _check_assignable_role(db: Session, role_id: int, current_user: User) -> Role:
    role = db.query(Role).filter(Role.id == role_id, Role.is_active == True).first()  # noqa: E712
    if not role:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid role")
    if role.id == ROLE_ADMIN and not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only administrators can grant the admin role",
        )
    return role


def _check_can_manage(target: User, current_user: User) -> None:
    if target.is_admin and not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only administrators can modify administrator accounts",
        )


def _check_permissions(permissions: List[str]) -> List[str]:
    unknown = [p for p in permissions if p not in PERMISSIONS]
    if unknown:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown permissions: {', '.join(unknown)}",
        )
    return sorted(set(permissions))


def _check_unique_user(db: Session, email: Optional[str], username: Optional[str], exclude_id: Optional[int] = None):
    if email:
        query = db.query(User.id).filter(User.email == email)
        if exclude_id:
            query = query.filter(User.id != exclude_id)
        if query.first():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already in use")
    if username:
        query = db.query(User.id).filter(User.username == username)
        if exclude_id:
            query = query.filter(User.id != exclude_id)
        if query.first():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Username already in use")


def _username_for(person: Personnel) -> str:
    if person.employee_id:
        return person.employee_id
    return re.sub(r"[^a-z.]", "", re.sub(r"\s+", ".", person.full_name.lower()))


# Role routes come first so /roles is not captured by /{user_id}
@router.get("/roles")
async def list_roles(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """List roles and the permission keys they may carry."""
    roles = db.query(Role).order_by(Role.id).all()
    return {
        "success": True,
        "roles": [r.to_dict() for r in roles],
        "available_permissions": PERMISSIONS,
    }


@router.post("/roles")
async def create_role(
    request: Request,
    data: RoleCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("roles:manage")),
):
    """Create a custom role."""
    name = sanitize_input(data.name, 50).lower()
    if db.query(Role.id).filter(Role.name == name).first():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Role name already exists")

    role = Role(
        name=name,
        description=clean_optional(data.description, 500),
        permissions=json.dumps(_check_permissions(data.permissions)),
        is_system_role=False,
    )
    db.add(role)
    db.commit()
    db.refresh(role)

    log_audit(db, "roles", role.id, "INSERT", current_user, None, model_snapshot(role), request)

    return {"success": True, "role": role.to_dict(), "message": "Role created"}


@router.put("/roles/{role_id}")
async def update_role(
    request: Request,
    role_id: int,
    data: RoleUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("roles:manage")),
):
    """Update a custom role. System roles are fixed."""
    role = _get_role(db, role_id)
    if role.is_system_role:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="System roles cannot be modified")

    old_values = model_snapshot(role)

    if data.name is not None:
        name = sanitize_input(data.name, 50).lower()
        if db.query(Role.id).filter(Role.name == name, Role.id != role.id).first():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Role name already exists")
        role.name = name
    if data.description is not None:
        role.description = clean_optional(data.description, 500)
    if data.permissions is not None:
        role.permissions = json.dumps(_check_permissions(data.permissions))
    if data.is_active is not None:
        role.is_active = data.is_active

    db.commit()
    db.refresh(role)

    log_audit(db, "roles", role.id, "UPDATE", current_user, old_values, model_snapshot(role), request)

    return {"success": True, "role": role.to_dict(), "message": "Role updated"}


@router.delete("/roles/{role_id}")
async def delete_role(
    request: Request,
    role_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("roles:manage")),
):
    """Delete a custom role that no user holds."""
    role = _get_role(db, role_id)
    if role.is_system_role:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="System roles cannot be deleted")

    assigned = db.query(User).filter(User.role_id == role.id).count()
    if assigned:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Role is assigned to {assigned} user(s)",
        )

    old_values = model_snapshot(role)
    db.delete(role)
    db.commit()

    log_audit(db, "roles", role_id, "DELETE", current_user, old_values, None, request)

    return {"success": True, "message": "Role deleted"}


@router.get("")
async def list_users(
    search: Optional[str] = None,
    role_id: Optional[int] = None,
    is_active: Optional[bool] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("users:manage")),
):
    """List users."""
    query = db.query(User)

    if search:
        term = f"%{sanitize_input(search, 100)}%"
        query = query.filter(
            or_(User.name.ilike(term), User.email.ilike(term), User.username.ilike(term))
        )
    if role_id:
        query = query.filter(User.role_id == role_id)
    if is_active is not None:
        query = query.filter(User.is_active == is_active)

    users = query.order_by(User.name).all()
    return {"success": True, "users": [u.to_dict() for u in users]}


@router.post("/bulk-import")
async def bulk_import_users(
    request: Request,
    data: BulkImportRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("users:manage")),
):
    """Create user accounts for personnel records."""
    _check_assignable_role(db, data.role_id, current_user)

    people = db.query(Personnel).filter(Personnel.id.in_(data.personnel_ids)).all()
    linked = {
        pid for (pid,) in db.query(User.personnel_id).filter(User.personnel_id.in_(data.personnel_ids))
    }

    created = []
    skipped = []
    for person in people:
        if person.id in linked:
            skipped.append({"id": person.id, "name": person.full_name, "reason": "Already linked to a user"})
            continue
        if not person.email:
            skipped.append({"id": person.id, "name": person.full_name, "reason": "No email address"})
            continue

        username = _username_for(person)
        if db.query(User.id).filter(User.username == username).first():
            skipped.append({"id": person.id, "name": person.full_name, "reason": "Username already exists"})
            continue
        if db.query(User.id).filter(User.email == person.email.lower()).first():
            skipped.append({"id": person.id, "name": person.full_name, "reason": "Email already in use"})
            continue

        user = User(
            email=person.email.lower(),
            username=username,
            name=person.full_name,
            role_id=data.role_id,
            personnel_id=person.id,
            phone=person.phone,
            department=person.department,
            is_active=True,
        )
        db.add(user)
        db.flush()
        created.append(user)

    db.commit()

    for user in created:
        log_audit(db, "users", user.id, "INSERT", current_user, None, model_snapshot(user), request)

    return {
        "success": True,
        "created": [u.to_dict() for u in created],
        "skipped": skipped,
        "message": f"Created {len(created)} users, skipped {len(skipped)}",
    }


@router.get("/{user_id}")
async def get_user(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("users:manage")),
):
    return {"success": True, "user": _get_user(db, user_id).to_dict()}


@router.get("/{user_id}/permissions")
async def get_user_permissions(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Effective permissions of a user. Anyone may look up their own."""
    if user_id != current_user.id and not current_user.has_permission("users:manage"):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Permission required: users:manage")

    user = _get_user(db, user_id)
    return {
        "success": True,
        "user_id": user.id,
        "role": user.role_name,
        "permissions": user.permissions,
    }


@router.post("")
async def create_user(
    request: Request,
    data: UserCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("users:manage")),
):
    """Create a user account."""
    email = data.email.lower()
    username = clean_optional(data.username, 100)

    _check_unique_user(db, email, username)
    _check_assignable_role(db, data.role_id, current_user)

    if data.personnel_id is not None:
        if not db.query(Personnel.id).filter(Personnel.id == data.personnel_id).first():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Personnel does not exist")

    user = User(
        email=email,
        username=username,
        name=sanitize_input(data.name, 255),
        role_id=data.role_id,
        personnel_id=data.personnel_id,
        phone=clean_optional(data.phone, 50),
        department=clean_optional(data.department, 100),
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    log_audit(db, "users", user.id, "INSERT", current_user, None, model_snapshot(user), request)

    return {"success": True, "user": user.to_dict(), "message": "User created"}


@router.put("/{user_id}")
async def update_user(
    request: Request,
    user_id: int,
    data: UserUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("users:manage")),
):
    """Update a user's profile."""
    user = _get_user(db, user_id)
    _check_can_manage(user, current_user)

    email = data.email.lower() if data.email else None
    username = clean_optional(data.username, 100)
    _check_unique_user(db, email, username, exclude_id=user.id)

    old_values = model_snapshot(user)

    if email:
        user.email = email
    if data.username is not None:
        user.username = username
    if data.name is not None:
        user.name = sanitize_input(data.name, 255)
    if data.personnel_id is not None:
        if not db.query(Personnel.id).filter(Personnel.id == data.personnel_id).first():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Personnel does not exist")
        user.personnel_id = data.personnel_id
    if data.phone is not None:
        user.phone = clean_optional(data.phone, 50)
    if data.department is not None:
        user.department = clean_optional(data.department, 100)
    if data.email_notifications_enabled is not None:
        user.email_notifications_enabled = data.email_notifications_enabled

    db.commit()
    db.refresh(user)

    log_audit(db, "users", user.id, "UPDATE", current_user, old_values, model_snapshot(user), request)

    return {"success": True, "user": user.to_dict(), "message": "User updated"}


@router.patch("/{user_id}/role")
async def update_user_role(
    request: Request,
    user_id: int,
    data: UserRoleUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("users:manage")),
):
    """Change a user's role."""
    if user_id == current_user.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot change your own role",
        )

    user = _get_user(db, user_id)
    _check_can_manage(user, current_user)
    role = _check_assignable_role(db, data.role_id, current_user)

    old_values = model_snapshot(user)
    user.role_id = role.id
    db.commit()
    db.refresh(user)

    log_audit(db, "users", user.id, "UPDATE", current_user, old_values, model_snapshot(user), request)

    return {
        "success": True,
        "user": user.to_dict(),
        "message": f"User role updated to {role.name}",
    }


@router.patch("/{user_id}/status")
async def update_user_status(
    request: Request,
    user_id: int,
    data: UserStatusUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("users:manage")),
):
    """Activate or deactivate a user. Deactivation revokes their tokens."""
    if user_id == current_user.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot change your own status",
        )

    user = _get_user(db, user_id)
    _check_can_manage(user, current_user)

    old_values = model_snapshot(user)
    user.is_active = data.is_active

    # Revoke all tokens if deactivating
    if not data.is_active:
        db.query(AuthToken).filter(AuthToken.user_id == user_id).update(
            {"is_revoked": True}, synchronize_session=False
        )

    db.commit()
    db.refresh(user)

    log_audit(db, "users", user.id, "UPDATE", current_user, old_values, model_snapshot(user), request)

    return {
        "success": True,
        "user": user.to_dict(),
        "message": f"User {'activated' if data.is_active else 'deactivated'}",
    }


@router.delete("/{user_id}")
async def delete_user(
    request: Request,
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("users:manage")),
):
    """Delete a user account."""
    if user_id == current_user.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot delete your own account",
        )

    user = _get_user(db, user_id)
    _check_can_manage(user, current_user)

    old_values = model_snapshot(user)
    db.delete(user)
    db.commit()

    log_audit(db, "users", user_id, "DELETE", current_user, old_values, None, request)

    return {"success": True, "message": "User deleted"}
