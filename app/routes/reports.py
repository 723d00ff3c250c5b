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


"""Reporting and analytics routes."""

from datetime import date, datetime, time, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import case, func
from sqlalchemy.orm import Session

from app.config import get_settings
from app.database import get_db
from app.middleware.auth import get_current_user
from app.models.catalog import Category, Location, Personnel
from app.models.equipment import (
    ACTION_IN,
    ACTION_OUT,
    STATUS_AVAILABLE,
    STATUS_CHECKED_OUT,
    STATUS_RETIRED,
    Equipment,
    EquipmentMovement,
)
from app.models.user import User
from app.services.calibration import latest_calibrations
from app.services.status import calibration_status, checkout_days_out, is_checkout_overdue
from app.utils.helpers import generate_csv

router = APIRouter(prefix="/api/reports")


def _non_consumables(db: Session):
    return (
        db.query(Equipment)
        .join(Category, Equipment.category_id == Category.id)
        .filter(Category.is_consumable == False)  # noqa: E712
    )


def _consumables(db: Session):
    return (
        db.query(Equipment)
        .join(Category, Equipment.category_id == Category.id)
        .filter(Category.is_consumable == True)  # noqa: E712
    )


def _checked_out_rows(db: Session, now: datetime, threshold: int) -> list:
    equipment = (
        _non_consumables(db)
        .filter(Equipment.status == STATUS_CHECKED_OUT)
        .order_by(Equipment.last_action_timestamp)
        .all()
    )

    rows = []
    for item in equipment:
        row = item.to_dict()
        row["days_out"] = checkout_days_out(item.last_action_timestamp, now)
        row["is_overdue"] = is_checkout_overdue(item.status, item.last_action_timestamp, now, threshold)
        rows.append(row)
    return rows


def _day_bounds(from_date: Optional[date], to_date: Optional[date]):
    start = datetime.combine(from_date, time.min) if from_date else None
    end = datetime.combine(to_date, time.max) if to_date else None
    return start, end


@router.get("/dashboard")
async def get_dashboard(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Headline counts and the latest movements."""
    settings = get_settings()
    threshold = settings.inventory.overdue_threshold_days
    now = datetime.utcnow()

    equipment = _non_consumables(db).filter(Equipment.status != STATUS_RETIRED)
    consumables = _consumables(db).filter(Equipment.status != STATUS_RETIRED)

    overdue = (
        equipment.filter(
            Equipment.status == STATUS_CHECKED_OUT,
            Equipment.last_action_timestamp < now - timedelta(days=threshold),
        ).count()
    )

    recent = (
        db.query(EquipmentMovement)
        .order_by(EquipmentMovement.created_at.desc(), EquipmentMovement.id.desc())
        .limit(settings.inventory.recent_movements_limit)
        .all()
    )

    return {
        "success": True,
        "summary": {
            "total_equipment": equipment.count(),
            "available_equipment": equipment.filter(Equipment.status == STATUS_AVAILABLE).count(),
            "checked_out_equipment": equipment.filter(Equipment.status == STATUS_CHECKED_OUT).count(),
            "overdue_equipment": overdue,
            "total_consumables": consumables.count(),
            "low_stock_consumables": consumables.filter(
                Equipment.available_quantity <= Equipment.reorder_level
            ).count(),
            "overdue_threshold_days": threshold,
        },
        "recent_movements": [m.to_dict() for m in recent],
    }


@router.get("/checked-out")
async def get_checked_out(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Equipment currently checked out, longest out first."""
    threshold = get_settings().inventory.overdue_threshold_days
    rows = _checked_out_rows(db, datetime.utcnow(), threshold)
    return {"success": True, "equipment": rows, "overdue_threshold_days": threshold}


@router.get("/overdue")
async def get_overdue(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Checked-out equipment past the overdue threshold."""
    threshold = get_settings().inventory.overdue_threshold_days
    rows = [r for r in _checked_out_rows(db, datetime.utcnow(), threshold) if r["is_overdue"]]
    return {"success": True, "equipment": rows, "overdue_threshold_days": threshold}


@router.get("/available")
async def get_available(
    category_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Available equipment with its calibration status."""
    today = date.today()
    due_soon_days = get_settings().inventory.calibration_due_soon_days

    query = _non_consumables(db).filter(Equipment.status == STATUS_AVAILABLE)
    if category_id:
        query = query.filter(Equipment.category_id == category_id)
    equipment = query.order_by(Equipment.equipment_name).all()

    latest = latest_calibrations(db, [e.id for e in equipment])

    rows = []
    for item in equipment:
        record = latest.get(item.id)
        row = item.to_dict()
        row["calibration_expiry_date"] = record.expiry_date.isoformat() if record else None
        row["calibration_status"] = (
            calibration_status(record.expiry_date if record else None, today, due_soon_days)
            if item.needs_calibration
            else None
        )
        rows.append(row)

    return {"success": True, "equipment": rows}


@router.get("/low-stock")
async def get_low_stock(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Consumables at or below their reorder level, scarcest first."""
    items = (
        _consumables(db)
        .filter(
            Equipment.status != STATUS_RETIRED,
            Equipment.available_quantity <= Equipment.reorder_level,
        )
        .all()
    )
    items.sort(key=lambda e: (e.available_quantity / e.reorder_level) if e.reorder_level else float("inf"))

    return {"success": True, "items": [e.to_dict() for e in items]}


@router.get("/consumables")
async def get_consumables(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Consumable stock levels."""
    items = (
        _consumables(db)
        .filter(Equipment.status != STATUS_RETIRED)
        .order_by(Equipment.equipment_name)
        .all()
    )

    result = []
    for item in items:
        row = item.to_dict()
        row["is_low_stock"] = item.is_low_stock
        result.append(row)

    return {"success": True, "items": result}


@router.get("/by-category")
async def get_by_category(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Item counts per category."""
    results = (
        db.query(
            Category.id,
            Category.name,
            Category.is_checkout_allowed,
            Category.is_consumable,
            func.count(Equipment.id).label("total_items"),
            func.sum(case((Equipment.status == STATUS_AVAILABLE, 1), else_=0)).label("available"),
            func.sum(case((Equipment.status == STATUS_CHECKED_OUT, 1), else_=0)).label("checked_out"),
        )
        .outerjoin(
            Equipment,
            (Equipment.category_id == Category.id) & (Equipment.status != STATUS_RETIRED),
        )
        .group_by(Category.id)
        .order_by(Category.name)
        .all()
    )

    return {
        "success": True,
        "categories": [
            {
                "category_id": row.id,
                "category": row.name,
                "is_checkout_allowed": row.is_checkout_allowed,
                "is_consumable": row.is_consumable,
                "total_items": row.total_items,
                "available": row.available or 0,
                "checked_out": row.checked_out or 0,
            }
            for row in results
        ],
    }


@router.get("/by-location")
async def get_by_location(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Item counts per active location."""
    results = (
        db.query(
            Location.id,
            Location.name,
            func.count(Equipment.id).label("total_items"),
            func.sum(case((Equipment.status == STATUS_AVAILABLE, 1), else_=0)).label("available"),
            func.sum(case((Equipment.status == STATUS_CHECKED_OUT, 1), else_=0)).label("checked_out"),
        )
        .outerjoin(
            Equipment,
            (Equipment.current_location_id == Location.id) & (Equipment.status != STATUS_RETIRED),
        )
        .filter(Location.is_active == True)  # noqa: E712
        .group_by(Location.id)
        .order_by(Location.name)
        .all()
    )

    return {
        "success": True,
        "locations": [
            {
                "location_id": row.id,
                "location": row.name,
                "total_items": row.total_items,
                "available": row.available or 0,
                "checked_out": row.checked_out or 0,
            }
            for row in results
        ],
    }


@router.get("/movement-history")
async def get_movement_history(
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
    action: Optional[str] = None,
    personnel_id: Optional[int] = None,
    limit: int = Query(500, ge=1, le=5000),
    format: Optional[str] = None,  # 'csv' for CSV export
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Movements in a date range. Add ?format=csv for CSV export."""
    start, end = _day_bounds(from_date, to_date)

    query = db.query(EquipmentMovement)
    if start:
        query = query.filter(EquipmentMovement.created_at >= start)
    if end:
        query = query.filter(EquipmentMovement.created_at <= end)
    if action:
        query = query.filter(EquipmentMovement.action == action.upper())
    if personnel_id:
        query = query.filter(EquipmentMovement.personnel_id == personnel_id)

    movements = (
        query.order_by(EquipmentMovement.created_at.desc(), EquipmentMovement.id.desc())
        .limit(limit)
        .all()
    )

    # CSV export
    if format and format.lower() == "csv":
        headers = ["Date", "Equipment ID", "Equipment", "Action", "Quantity", "Location", "Personnel", "Notes"]
        rows = [
            [
                m.created_at.strftime("%Y-%m-%d %H:%M") if m.created_at else "",
                m.equipment.equipment_id,
                m.equipment.equipment_name,
                m.action,
                m.quantity,
                m.location.name if m.location else "",
                m.personnel.full_name if m.personnel else "",
                m.notes or "",
            ]
            for m in movements
        ]
        return generate_csv(headers, rows, f"movement_history_{date.today()}.csv")

    return {"success": True, "movements": [m.to_dict() for m in movements]}


@router.get("/usage-stats")
async def get_usage_stats(
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Most used equipment, most active personnel and movements by action."""
    start, end = _day_bounds(from_date, to_date)

    def in_period(query):
        if start:
            query = query.filter(EquipmentMovement.created_at >= start)
        if end:
            query = query.filter(EquipmentMovement.created_at <= end)
        return query

    checkout_count = func.count(EquipmentMovement.id).label("checkout_count")
    most_checked_out = (
        in_period(
            db.query(Equipment.id, Equipment.equipment_id, Equipment.equipment_name, checkout_count)
            .join(EquipmentMovement, EquipmentMovement.equipment_id == Equipment.id)
            .filter(EquipmentMovement.action == ACTION_OUT)
        )
        .group_by(Equipment.id)
        .order_by(checkout_count.desc())
        .limit(10)
        .all()
    )

    movement_count = func.count(EquipmentMovement.id).label("movement_count")
    most_active = (
        in_period(
            db.query(
                Personnel.id,
                Personnel.employee_id,
                Personnel.first_name,
                Personnel.last_name,
                movement_count,
                func.sum(case((EquipmentMovement.action == ACTION_OUT, 1), else_=0)).label("checkouts"),
                func.sum(case((EquipmentMovement.action == ACTION_IN, 1), else_=0)).label("checkins"),
            )
            .join(EquipmentMovement, EquipmentMovement.personnel_id == Personnel.id)
            .filter(EquipmentMovement.action.in_((ACTION_OUT, ACTION_IN)))
        )
        .group_by(Personnel.id)
        .order_by(movement_count.desc())
        .limit(10)
        .all()
    )

    action_count = func.count(EquipmentMovement.id).label("count")
    by_action = (
        in_period(db.query(EquipmentMovement.action, action_count))
        .group_by(EquipmentMovement.action)
        .order_by(action_count.desc())
        .all()
    )

    return {
        "success": True,
        "most_checked_out": [
            {
                "equipment_id": row.equipment_id,
                "equipment_name": row.equipment_name,
                "checkout_count": row.checkout_count,
            }
            for row in most_checked_out
        ],
        "most_active_personnel": [
            {
                "employee_id": row.employee_id,
                "full_name": f"{row.first_name} {row.last_name}".strip(),
                "movement_count": row.movement_count,
                "checkouts": row.checkouts or 0,
                "checkins": row.checkins or 0,
            }
            for row in most_active
        ],
        "movements_by_action": [{"action": row.action, "count": row.count} for row in by_action],
    }
