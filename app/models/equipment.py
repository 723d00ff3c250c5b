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

"""Equipment and movement models."""

from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from app.database import Base

STATUS_AVAILABLE = "Available"
STATUS_CHECKED_OUT = "Checked Out"
STATUS_IN_MAINTENANCE = "In Maintenance"
STATUS_RETIRED = "Retired"

EQUIPMENT_STATUSES = (STATUS_AVAILABLE, STATUS_CHECKED_OUT, STATUS_IN_MAINTENANCE, STATUS_RETIRED)

ACTION_OUT = "OUT"
ACTION_IN = "IN"
ACTION_ISSUE = "ISSUE"
ACTION_RESTOCK = "RESTOCK"

MOVEMENT_ACTIONS = (ACTION_OUT, ACTION_IN, ACTION_ISSUE, ACTION_RESTOCK)


class Equipment(Base):
    """Equipment item, either serialised or quantity tracked."""

    __tablename__ = "equipment"

    id = Column(Integer, primary_key=True, autoincrement=True)
    equipment_id = Column(String(50), unique=True, nullable=False, index=True)
    equipment_name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=False)
    subcategory_id = Column(Integer, ForeignKey("subcategories.id", ondelete="SET NULL"), nullable=True)
    manufacturer = Column(String(100), nullable=True)
    model = Column(String(100), nullable=True)
    serial_number = Column(String(100), unique=True, nullable=True)
    is_serialized = Column(Boolean, nullable=False, default=True)

    # Quantity tracking
    is_quantity_tracked = Column(Boolean, nullable=False, default=False)
    total_quantity = Column(Integer, nullable=False, default=1)
    available_quantity = Column(Integer, nullable=False, default=1)
    unit = Column(String(20), nullable=False, default="ea")
    reorder_level = Column(Integer, nullable=False, default=0)

    # Current state
    status = Column(String(20), nullable=False, default=STATUS_AVAILABLE, index=True)
    current_location_id = Column(Integer, ForeignKey("locations.id", ondelete="SET NULL"), nullable=True)
    current_holder_id = Column(Integer, ForeignKey("personnel.id", ondelete="SET NULL"), nullable=True)
    current_customer_id = Column(Integer, ForeignKey("customers.id", ondelete="SET NULL"), nullable=True)
    last_action = Column(String(10), nullable=True)
    last_action_timestamp = Column(DateTime, nullable=True)

    # Calibration and maintenance
    requires_calibration = Column(Boolean, nullable=False, default=False)
    calibration_interval_months = Column(Integer, nullable=True)
    next_maintenance_date = Column(Date, nullable=True)

    purchase_date = Column(Date, nullable=True)
    purchase_cost = Column(String(50), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint(
            "status IN ('Available', 'Checked Out', 'In Maintenance', 'Retired')",
            name="ck_equipment_status",
        ),
        CheckConstraint("available_quantity >= 0", name="ck_equipment_available_quantity"),
        CheckConstraint("total_quantity >= 0", name="ck_equipment_total_quantity"),
    )

    # Relationships
    category = relationship("Category", back_populates="equipment")
    subcategory = relationship("Subcategory")
    current_location = relationship("Location")
    current_holder = relationship("Personnel")
    current_customer = relationship("Customer")
    movements = relationship(
        "EquipmentMovement",
        back_populates="equipment",
        cascade="all, delete-orphan",
        order_by="EquipmentMovement.created_at.desc()",
    )
    calibration_records = relationship(
        "CalibrationRecord",
        back_populates="equipment",
        cascade="all, delete-orphan",
        order_by="CalibrationRecord.calibration_date.desc()",
    )
    maintenance_records = relationship(
        "MaintenanceLog", back_populates="equipment", cascade="all, delete-orphan"
    )
    reservations = relationship(
        "Reservation", back_populates="equipment", cascade="all, delete-orphan"
    )

    @property
    def is_consumable(self) -> bool:
        return bool(self.category and self.category.is_consumable)

    @property
    def is_checkout_allowed(self) -> bool:
        return bool(self.category is None or self.category.is_checkout_allowed)

    @property
    def needs_calibration(self) -> bool:
        """Calibration is tracked if the item or its category asks for it."""
        return bool(self.requires_calibration or (self.category and self.category.requires_calibration))

    @property
    def is_low_stock(self) -> bool:
        return bool(self.is_quantity_tracked and self.available_quantity <= self.reorder_level)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "equipment_id": self.equipment_id,
            "equipment_name": self.equipment_name,
            "description": self.description,
            "category_id": self.category_id,
            "category_name": self.category.name if self.category else None,
            "subcategory_id": self.subcategory_id,
            "subcategory_name": self.subcategory.name if self.subcategory else None,
            "manufacturer": self.manufacturer,
            "model": self.model,
            "serial_number": self.serial_number,
            "is_serialized": self.is_serialized,
            "is_quantity_tracked": self.is_quantity_tracked,
            "total_quantity": self.total_quantity,
            "available_quantity": self.available_quantity,
            "unit": self.unit,
            "reorder_level": self.reorder_level,
            "is_consumable": self.is_consumable,
            "is_checkout_allowed": self.is_checkout_allowed,
            "status": self.status,
            "current_location_id": self.current_location_id,
            "current_location": self.current_location.name if self.current_location else None,
            "current_holder_id": self.current_holder_id,
            "current_holder": self.current_holder.full_name if self.current_holder else None,
            "holder_employee_id": self.current_holder.employee_id if self.current_holder else None,
            "current_customer_id": self.current_customer_id,
            "current_customer": (
                self.current_customer.display_name if self.current_customer else None
            ),
            "last_action": self.last_action,
            "last_action_timestamp": (
                self.last_action_timestamp.isoformat() if self.last_action_timestamp else None
            ),
            "requires_calibration": self.requires_calibration,
            "needs_calibration": self.needs_calibration,
            "calibration_interval_months": self.calibration_interval_months,
            "next_maintenance_date": (
                self.next_maintenance_date.isoformat() if self.next_maintenance_date else None
            ),
            "purchase_date": self.purchase_date.isoformat() if self.purchase_date else None,
            "purchase_cost": self.purchase_cost,
            "notes": self.notes,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Equipment(id={self.id}, equipment_id='{self.equipment_id}', status='{self.status}')>"


class EquipmentMovement(Base):
    """A single check-out, check-in, issue or restock event."""

    __tablename__ = "equipment_movements"

    id = Column(Integer, primary_key=True, autoincrement=True)
    equipment_id = Column(Integer, ForeignKey("equipment.id", ondelete="CASCADE"), nullable=False, index=True)
    action = Column(String(10), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    location_id = Column(Integer, ForeignKey("locations.id", ondelete="SET NULL"), nullable=True)
    customer_id = Column(Integer, ForeignKey("customers.id", ondelete="SET NULL"), nullable=True)
    personnel_id = Column(Integer, ForeignKey("personnel.id", ondelete="SET NULL"), nullable=True)
    notes = Column(Text, nullable=True)
    photo_path = Column(String(500), nullable=True)
    photo_name = Column(String(255), nullable=True)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    __table_args__ = (
        CheckConstraint("action IN ('OUT', 'IN', 'ISSUE', 'RESTOCK')", name="ck_movement_action"),
        CheckConstraint("quantity >= 1", name="ck_movement_quantity"),
    )

    # Relationships
    equipment = relationship("Equipment", back_populates="movements")
    location = relationship("Location")
    customer = relationship("Customer")
    personnel = relationship("Personnel")
    creator = relationship("User")

    def to_dict(self, include_equipment: bool = True) -> dict:
        """Convert to dictionary."""
        result = {
            "id": self.id,
            "equipment_id": self.equipment_id,
            "action": self.action,
            "quantity": self.quantity,
            "location_id": self.location_id,
            "location_name": self.location.name if self.location else None,
            "customer_id": self.customer_id,
            "customer_name": self.customer.display_name if self.customer else None,
            "personnel_id": self.personnel_id,
            "personnel_name": self.personnel.full_name if self.personnel else None,
            "employee_id": self.personnel.employee_id if self.personnel else None,
            "notes": self.notes,
            "has_photo": bool(self.photo_path),
            "photo_name": self.photo_name,
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
            f"<EquipmentMovement(id={self.id}, equipment_id={self.equipment_id}, "
            f"action='{self.action}', quantity={self.quantity})>"
        )
