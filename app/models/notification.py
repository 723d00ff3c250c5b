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

"""In-app notification models."""

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from app.database import Base

NOTIFICATION_TYPES = (
    "calibration_expiry",
    "overdue_checkout",
    "low_stock",
    "maintenance_due",
    "reservation",
    "system",
)

SEVERITIES = ("info", "warning", "critical")


class Notification(Base):
    """Notification shown in the app. A null ``user_id`` is a broadcast."""

    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)
    notification_type = Column(String(50), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    severity = Column(String(20), nullable=False, default="info")
    reference_type = Column(String(50), nullable=True)
    reference_id = Column(Integer, nullable=True)
    is_read = Column(Boolean, nullable=False, default=False, index=True)
    read_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    # Relationships
    user = relationship("User")

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "notification_type": self.notification_type,
            "title": self.title,
            "message": self.message,
            "severity": self.severity,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "is_read": self.is_read,
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Notification(id={self.id}, type='{self.notification_type}', read={self.is_read})>"


class NotificationSettings(Base):
    """Per-user alert preferences."""

    __tablename__ = "notification_settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    calibration_alerts = Column(Boolean, nullable=False, default=True)
    calibration_alert_days = Column(Integer, nullable=False, default=30)
    overdue_alerts = Column(Boolean, nullable=False, default=True)
    low_stock_alerts = Column(Boolean, nullable=False, default=True)
    maintenance_alerts = Column(Boolean, nullable=False, default=True)
    maintenance_alert_days = Column(Integer, nullable=False, default=14)
    reservation_alerts = Column(Boolean, nullable=False, default=True)
    email_enabled = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user = relationship("User", back_populates="notification_settings")

    def wants(self, notification_type: str) -> bool:
        """Check whether the user subscribes to a notification type."""
        flags = {
            "calibration_expiry": self.calibration_alerts,
            "overdue_checkout": self.overdue_alerts,
            "low_stock": self.low_stock_alerts,
            "maintenance_due": self.maintenance_alerts,
            "reservation": self.reservation_alerts,
        }
        return flags.get(notification_type, True)

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "calibration_alerts": self.calibration_alerts,
            "calibration_alert_days": self.calibration_alert_days,
            "overdue_alerts": self.overdue_alerts,
            "low_stock_alerts": self.low_stock_alerts,
            "maintenance_alerts": self.maintenance_alerts,
            "maintenance_alert_days": self.maintenance_alert_days,
            "reservation_alerts": self.reservation_alerts,
            "email_enabled": self.email_enabled,
        }

    def __repr__(self):
        return f"<NotificationSettings(user_id={self.user_id})>"
