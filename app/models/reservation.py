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

"""Reservation model."""

from datetime import datetime

from sqlalchemy import (
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

RESERVATION_STATUSES = ("pending", "approved", "rejected", "cancelled", "completed")

# Reservations in these states never block new bookings
INACTIVE_RESERVATION_STATUSES = ("cancelled", "completed", "rejected")

# Allowed status transitions
RESERVATION_TRANSITIONS = {
    "pending": ("approved", "rejected", "cancelled"),
    "approved": ("completed", "cancelled"),
}


class Reservation(Base):
    """Advance booking of equipment for a date range."""

    __tablename__ = "reservations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    equipment_id = Column(Integer, ForeignKey("equipment.id", ondelete="CASCADE"), nullable=False, index=True)
    personnel_id = Column(Integer, ForeignKey("personnel.id"), nullable=False)
    customer_id = Column(Integer, ForeignKey("customers.id", ondelete="SET NULL"), nullable=True)
    start_date = Column(Date, nullable=False, index=True)
    end_date = Column(Date, nullable=False, index=True)
    purpose = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="pending", index=True)
    approved_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    approved_at = Column(DateTime, nullable=True)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("end_date >= start_date", name="ck_reservation_dates"),
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'cancelled', 'completed')",
            name="ck_reservation_status",
        ),
    )

    # Relationships
    equipment = relationship("Equipment", back_populates="reservations")
    personnel = relationship("Personnel")
    customer = relationship("Customer")
    approver = relationship("User", foreign_keys=[approved_by])
    creator = relationship("User", foreign_keys=[created_by])

    @property
    def is_active(self) -> bool:
        return self.status not in INACTIVE_RESERVATION_STATUSES

    def can_transition_to(self, new_status: str) -> bool:
        return new_status in RESERVATION_TRANSITIONS.get(self.status, ())

    def to_dict(self, include_equipment: bool = True) -> dict:
        """Convert to dictionary."""
        result = {
            "id": self.id,
            "equipment_id": self.equipment_id,
            "personnel_id": self.personnel_id,
            "personnel_name": self.personnel.full_name if self.personnel else None,
            "customer_id": self.customer_id,
            "customer_name": self.customer.display_name if self.customer else None,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "purpose": self.purpose,
            "notes": self.notes,
            "status": self.status,
            "approved_by": self.approved_by,
            "approved_by_name": self.approver.name if self.approver else None,
            "approved_at": self.approved_at.isoformat() if self.approved_at else None,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_equipment and self.equipment:
            result["equipment_code"] = self.equipment.equipment_id
            result["equipment_name"] = self.equipment.equipment_name
        return result

    def __repr__(self):
        return (
            f"<Reservation(id={self.id}, equipment_id={self.equipment_id}, "
            f"status='{self.status}')>"
        )
