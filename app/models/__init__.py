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


"""Database models for EquipTrack."""

from app.models.user import Role, User
from app.models.auth import AuthToken, MagicLink, CronJob
from app.models.catalog import Category, Subcategory, Location, Personnel, Customer
from app.models.equipment import Equipment, EquipmentMovement
from app.models.calibration import CalibrationRecord
from app.models.maintenance import MaintenanceType, MaintenanceLog
from app.models.reservation import Reservation
from app.models.audit import AuditLog
from app.models.notification import Notification, NotificationSettings

__all__ = [
    "Role",
    "User",
    "AuthToken",
    "MagicLink",
    "CronJob",
    "Category",
    "Subcategory",
    "Location",
    "Personnel",
    "Customer",
    "Equipment",
    "EquipmentMovement",
    "CalibrationRecord",
    "MaintenanceType",
    "MaintenanceLog",
    "Reservation",
    "AuditLog",
    "Notification",
    "NotificationSettings",
]
