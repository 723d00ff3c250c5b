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

"""Calibration certificate model."""

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


class CalibrationRecord(Base):
    """Calibration certificate with a validity window."""

    __tablename__ = "calibration_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    equipment_id = Column(Integer, ForeignKey("equipment.id", ondelete="CASCADE"), nullable=False, index=True)
    calibration_date = Column(Date, nullable=False)
    expiry_date = Column(Date, nullable=False, index=True)
    certificate_number = Column(String(100), nullable=True)
    calibration_provider = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)

    # Certificate file
    certificate_file_path = Column(String(500), nullable=True)
    certificate_file_name = Column(String(255), nullable=True)
    certificate_file_size = Column(Integer, nullable=True)
    certificate_mime_type = Column(String(100), nullable=True)

    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("expiry_date > calibration_date", name="ck_calibration_dates"),
    )

    # Relationships
    equipment = relationship("Equipment", back_populates="calibration_records")
    creator = relationship("User")

    @property
    def validity_days(self) -> int:
        return (self.expiry_date - self.calibration_date).days

    def to_dict(self, include_equipment: bool = True) -> dict:
        """Convert to dictionary."""
        result = {
            "id": self.id,
            "equipment_id": self.equipment_id,
            "calibration_date": self.calibration_date.isoformat() if self.calibration_date else None,
            "expiry_date": self.expiry_date.isoformat() if self.expiry_date else None,
            "validity_days": self.validity_days,
            "certificate_number": self.certificate_number,
            "calibration_provider": self.calibration_provider,
            "notes": self.notes,
            "has_certificate": bool(self.certificate_file_path),
            "certificate_file_name": self.certificate_file_name,
            "certificate_file_size": self.certificate_file_size,
            "certificate_mime_type": self.certificate_mime_type,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_equipment and self.equipment:
            result["equipment_code"] = self.equipment.equipment_id
            result["equipment_name"] = self.equipment.equipment_name
        return result

    def __repr__(self):
        return (
            f"<CalibrationRecord(id={self.id}, equipment_id={self.equipment_id}, "
            f"expiry_date={self.expiry_date})>"
        )
