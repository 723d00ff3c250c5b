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

"""Maintenance models."""

from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from app.database import Base

MAINTENANCE_STATUSES = ("scheduled", "in_progress", "completed", "cancelled")


class MaintenanceType(Base):
    """Kind of maintenance work."""

    __tablename__ = "maintenance_types"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
        }

    def __repr__(self):
        return f"<MaintenanceType(id={self.id}, name='{self.name}')>"


class MaintenanceLog(Base):
    """Maintenance work performed or scheduled on a piece of equipment."""

    __tablename__ = "maintenance_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    equipment_id = Column(Integer, ForeignKey("equipment.id", ondelete="CASCADE"), nullable=False, index=True)
    maintenance_type_id = Column(Integer, ForeignKey("maintenance_types.id"), nullable=False)
    maintenance_date = Column(Date, nullable=False, index=True)
    performed_by = Column(String(255), nullable=True)
    description = Column(Text, nullable=False)
    cost = Column(Numeric(12, 2), nullable=True)
    currency = Column(String(3), nullable=False, default="ZAR")
    downtime_days = Column(Integer, nullable=True)
    service_provider = Column(String(255), nullable=True)
    work_order_number = Column(String(100), nullable=True)
    next_maintenance_date = Column(Date, nullable=True)
    status = Column(String(20), nullable=False, default="completed", index=True)
    completed_date = Column(Date, nullable=True)
    notes = Column(Text, nullable=True)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint(
            "status IN ('scheduled', 'in_progress', 'completed', 'cancelled')",
            name="ck_maintenance_status",
        ),
    )

    # Relationships
    equipment = relationship("Equipment", back_populates="maintenance_records")
    maintenance_type = relationship("MaintenanceType")
    creator = relationship("User")

    def to_dict(self, include_equipment: bool = True) -> dict:
        """Convert to dictionary."""
        result = {
            "id": self.id,
            "equipment_id": self.equipment_id,
            "maintenance_type_id": self.maintenance_type_id,
            "maintenance_type": self.maintenance_type.name if self.maintenance_type else None,
            "maintenance_date": self.maintenance_date.isoformat() if self.maintenance_date else None,
            "performed_by": self.performed_by,
            "description": self.description,
            "cost": float(self.cost) if self.cost is not None else None,
            "currency": self.currency,
            "downtime_days": self.downtime_days,
            "service_provider": self.service_provider,
            "work_order_number": self.work_order_number,
            "next_maintenance_date": (
                self.next_maintenance_date.isoformat() if self.next_maintenance_date else None
            ),
            "status": self.status,
            "completed_date": self.completed_date.isoformat() if self.completed_date else None,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_by_name": self.creator.name if self.creator else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_equipment and self.equipment:
            result["equipment_code"] = self.equipment.equipment_id
            result["equipment_name"] = self.equipment.equipment_name
        return result

    def __repr__(self):
        return (
            f"<MaintenanceLog(id={self.id}, equipment_id={self.equipment_id}, "
            f"status='{self.status}')>"
        )
