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

"""User and Role models."""

import json
from datetime import datetime
from typing import List

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from app.database import Base

ROLE_ADMIN = 1
ROLE_MANAGER = 2
ROLE_TECHNICIAN = 3
ROLE_VIEWER = 4

# Permission keys checked by the API. Reads only need an authenticated user.
PERMISSIONS = [
    "catalog:write",  # categories, subcategories, locations, personnel, customers
    "equipment:write",
    "movements:write",
    "calibration:write",
    "maintenance:write",
    "reservations:write",
    "reservations:approve",
    "notifications:generate",
    "audit:read",
    "exports:read",
    "users:manage",
    "roles:manage",
]

SYSTEM_ROLES = [
    (ROLE_ADMIN, "admin", "Full system access", ["*"]),
    (
        ROLE_MANAGER,
        "manager",
        "Can manage equipment and users",
        [p for p in PERMISSIONS if p != "roles:manage"],
    ),
    (
        ROLE_TECHNICIAN,
        "technician",
        "Can check in/out equipment",
        [
            "movements:write",
            "calibration:write",
            "maintenance:write",
            "reservations:write",
            "exports:read",
        ],
    ),
    (ROLE_VIEWER, "viewer", "Read-only access", []),
]


class Role(Base):
    """Role model for user permissions."""

    __tablename__ = "roles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(50), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    permissions = Column(Text, nullable=False, default="[]")  # JSON array
    is_system_role = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    users = relationship("User", back_populates="role")

    @property
    def permission_list(self) -> List[str]:
        """Decoded permission list."""
        if not self.permissions:
            return []
        try:
            value = json.loads(self.permissions)
        except ValueError:
            return []
        return value if isinstance(value, list) else []

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "permissions": self.permission_list,
            "is_system_role": self.is_system_role,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Role(id={self.id}, name='{self.name}')>"


class User(Base):
    """User model."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    username = Column(String(100), unique=True, nullable=True, index=True)
    name = Column(String(255), nullable=False)
    role_id = Column(Integer, ForeignKey("roles.id"), nullable=False, default=ROLE_TECHNICIAN)
    personnel_id = Column(Integer, ForeignKey("personnel.id", ondelete="SET NULL"), nullable=True)
    phone = Column(String(50), nullable=True)
    department = Column(String(100), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    email_notifications_enabled = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
    last_login_at = Column(DateTime, nullable=True)

    # Relationships
    role = relationship("Role", back_populates="users")
    personnel = relationship("Personnel")
    auth_tokens = relationship("AuthToken", back_populates="user", cascade="all, delete-orphan")
    magic_links = relationship("MagicLink", back_populates="user", cascade="all, delete-orphan")
    notification_settings = relationship(
        "NotificationSettings", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )

    @property
    def is_admin(self) -> bool:
        """Check if user is admin."""
        return self.role_id == ROLE_ADMIN

    @property
    def role_name(self) -> str:
        """Get role name."""
        return self.role.name if self.role else "technician"

    @property
    def permissions(self) -> List[str]:
        """Effective permissions granted by the user's role."""
        if self.is_admin:
            return ["*"]
        if not self.role or not self.role.is_active:
            return []
        return self.role.permission_list

    def has_permission(self, permission: str) -> bool:
        """Check whether the user's role grants a permission."""
        granted = self.permissions
        return "*" in granted or permission in granted

    def to_dict(self) -> dict:
        """Convert user to dictionary."""
        return {
            "id": self.id,
            "email": self.email,
            "username": self.username,
            "name": self.name,
            "role_id": self.role_id,
            "role_name": self.role_name,
            "permissions": self.permissions,
            "personnel_id": self.personnel_id,
            "employee_id": self.personnel.employee_id if self.personnel else None,
            "phone": self.phone,
            "department": self.department,
            "is_active": self.is_active,
            "email_notifications_enabled": self.email_notifications_enabled,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "last_login_at": self.last_login_at.isoformat() if self.last_login_at else None,
        }

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', role_id={self.role_id})>"
