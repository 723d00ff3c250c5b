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


"""Calibration status queries shared by routes, reports and alerts."""

from datetime import date
from typing import Dict, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session, joinedload

from app.config import get_settings
from app.models.calibration import CalibrationRecord
from app.models.catalog import Category
from app.models.equipment import STATUS_RETIRED, Equipment
from app.services.status import (
    CALIBRATION_DUE_SOON,
    CALIBRATION_EXPIRED,
    calibration_sort_key,
    calibration_status,
    days_until,
)


def latest_calibrations(db: Session, equipment_ids: Optional[List[int]] = None) -> Dict[int, CalibrationRecord]:
    """Most recent calibration record (by calibration date) per equipment."""
    latest = (
        db.query(
            CalibrationRecord.equipment_id.label("equipment_id"),
            func.max(CalibrationRecord.calibration_date).label("calibration_date"),
        )
        .group_by(CalibrationRecord.equipment_id)
    )
    if equipment_ids is not None:
        latest = latest.filter(CalibrationRecord.equipment_id.in_(equipment_ids))
    latest = latest.subquery()

    records = (
        db.query(CalibrationRecord)
        .join(
            latest,
            (CalibrationRecord.equipment_id == latest.c.equipment_id)
            & (CalibrationRecord.calibration_date == latest.c.calibration_date),
        )
        .order_by(CalibrationRecord.id)
        .all()
    )

    # Same-day duplicates resolve to the newest row
    return {record.equipment_id: record for record in records}


def calibration_row(equipment: Equipment, record: Optional[CalibrationRecord], today: date) -> dict:
    """Equipment summary with its derived calibration status."""
    due_soon_days = get_settings().inventory.calibration_due_soon_days
    expiry = record.expiry_date if record else None
    return {
        "id": equipment.id,
        "equipment_id": equipment.equipment_id,
        "equipment_name": equipment.equipment_name,
        "serial_number": equipment.serial_number,
        "category_id": equipment.category_id,
        "category_name": equipment.category.name if equipment.category else None,
        "status": equipment.status,
        "current_location": equipment.current_location.name if equipment.current_location else None,
        "current_holder": equipment.current_holder.full_name if equipment.current_holder else None,
        "calibration_record_id": record.id if record else None,
        "last_calibration_date": record.calibration_date.isoformat() if record else None,
        "expiry_date": expiry.isoformat() if expiry else None,
        "certificate_number": record.certificate_number if record else None,
        "calibration_provider": record.calibration_provider if record else None,
        "has_certificate": bool(record and record.certificate_file_path),
        "days_until_expiry": days_until(expiry, today),
        "calibration_status": calibration_status(expiry, today, due_soon_days),
    }


def calibration_status_rows(
    db: Session,
    today: date,
    status_filter: Optional[str] = None,
    category_id: Optional[int] = None,
    search: Optional[str] = None,
) -> List[dict]:
    """Calibration status of every active item that needs calibration.

    Sorted Expired, Due Soon, Valid, Not Calibrated, then by expiry date with
    missing dates last.
    """
    query = (
        db.query(Equipment)
        .outerjoin(Category, Equipment.category_id == Category.id)
        .options(
            joinedload(Equipment.category),
            joinedload(Equipment.current_location),
            joinedload(Equipment.current_holder),
        )
        .filter(
            or_(Equipment.requires_calibration.is_(True), Category.requires_calibration.is_(True)),
            Equipment.status != STATUS_RETIRED,
        )
    )

    if category_id:
        query = query.filter(Equipment.category_id == category_id)

    if search:
        pattern = f"%{search}%"
        query = query.filter(
            or_(
                Equipment.equipment_id.ilike(pattern),
                Equipment.equipment_name.ilike(pattern),
                Equipment.serial_number.ilike(pattern),
            )
        )

    equipment_list = query.all()
    records = latest_calibrations(db, [e.id for e in equipment_list])

    rows = [calibration_row(e, records.get(e.id), today) for e in equipment_list]

    if status_filter:
        rows = [r for r in rows if r["calibration_status"] == status_filter]

    rows.sort(
        key=lambda r: calibration_sort_key(
            r["calibration_status"],
            date.fromisoformat(r["expiry_date"]) if r["expiry_date"] else None,
        )
    )
    return rows


def calibration_due_rows(db: Session, today: date) -> List[dict]:
    """Equipment whose calibration is expired or due soon."""
    return [
        row
        for row in calibration_status_rows(db, today)
        if row["calibration_status"] in (CALIBRATION_EXPIRED, CALIBRATION_DUE_SOON)
    ]
