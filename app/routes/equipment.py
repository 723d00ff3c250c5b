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


"""Equipment management routes."""

from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, Field
from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload

from app.config import get_settings
from app.database import get_db
from app.middleware.auth import get_current_user, require_permission
from app.models.catalog import Category, Subcategory
from app.models.equipment import (
    EQUIPMENT_STATUSES,
    STATUS_AVAILABLE,
    STATUS_CHECKED_OUT,
    STATUS_IN_MAINTENANCE,
    STATUS_RETIRED,
    Equipment,
    EquipmentMovement,
)
from app.models.reservation import INACTIVE_RESERVATION_STATUSES, Reservation
from app.models.user import User
from app.services.audit import log_audit
from app.services.calibration import calibration_row, latest_calibrations
from app.services.status import is_checkout_overdue, maintenance_status
from app.utils.helpers import clean_optional, model_snapshot, sanitize_input

router = APIRouter(prefix="/api/equipment")

# Statuses that can be set directly; Checked Out only comes from movements
EDITABLE_STATUSES = (STATUS_AVAILABLE, STATUS_IN_MAINTENANCE, STATUS_RETIRED)


class EquipmentCreate(BaseModel):
    """Equipment creation request."""

    equipment_id: str = Field(..., min_length=1, max_length=50)
    equipment_name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    category_id: int
    subcategory_id: Optional[int] = None
    manufacturer: Optional[str] = None
    model: Optional[str] = None
    is_serialized: bool = True
    serial_number: Optional[str] = None
    is_quantity_tracked: bool = False
    total_quantity: int = Field(1, ge=0)
    unit: str = "ea"
    reorder_level: int = Field(0, ge=0)
    current_location_id: Optional[int] = None
    requires_calibration: bool = False
    calibration_interval_months: Optional[int] = Field(None, ge=1)
    next_maintenance_date: Optional[date] = None
    purchase_date: Optional[date] = None
    purchase_cost: Optional[str] = None
    notes: Optional[str] = None


class EquipmentUpdate(BaseModel):
    """Equipment update request. Movement state is not editable here."""

    equipment_id: Optional[str] = Field(None, min_length=1, max_length=50)
    equipment_name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    category_id: Optional[int] = None
    subcategory_id: Optional[int] = None
    manufacturer: Optional[str] = None
    model: Optional[str] = None
    serial_number: Optional[str] = None
    unit: Optional[str] = None
    reorder_level: Optional[int] = Field(None, ge=0)
    status: Optional[str] = None
    current_location_id: Optional[int] = None
    requires_calibration: Optional[bool] = None
    calibration_interval_months: Optional[int] = Field(None, ge=1)
    next_maintenance_date: Optional[date] = None
    purchase_date: Optional[date] = None
    purchase_cost: Optional[str] = None
    notes: Optional[str] = None


def get_equipment_or_404(db: Session, equipment_pk: int) -> Equipment:
    """Load equipment by primary key or raise 404."""
    equipment = db.query(Equipment).filter(Equipment.id == equipment_pk).first()
    if not equipment:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Equipment not found",
        )
    return equipment


def _check_category(db: Session, category_id: int, subcategory_id: Optional[int]) -> Category:
    category = db.query(Category).filter(Category.id == category_id).first()
    if not category:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Category does not exist",
        )

    if subcategory_id is not None:
        subcategory = (
            db.query(Subcategory)
            .filter(Subcategory.id == subcategory_id, Subcategory.category_id == category_id)
            .first()
        )
        if not subcategory:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Subcategory does not belong to the selected category",
            )
    return category


def _check_unique(db: Session, equipment_code: Optional[str], serial: Optional[str], exclude_id: Optional[int] = None):
    if equipment_code:
        query = db.query(Equipment.id).filter(Equipment.equipment_id == equipment_code)
        if exclude_id:
            query = query.filter(Equipment.id != exclude_id)
        if query.first():
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Equipment ID already exists",
            )
    if serial:
        query = db.query(Equipment.id).filter(Equipment.serial_number == serial)
        if exclude_id:
            query = query.filter(Equipment.id != exclude_id)
        if query.first():
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Serial number already exists",
            )


def equipment_detail(db: Session, equipment: Equipment) -> dict:
    """Equipment dict enriched with derived statuses."""
    settings = get_settings()
    today = date.today()
    now = datetime.utcnow()

    result = equipment.to_dict()
    result["is_overdue"] = is_checkout_overdue(
        equipment.status,
        equipment.last_action_timestamp,
        now,
        settings.inventory.overdue_threshold_days,
    )
    result["maintenance_status"] = maintenance_status(
        equipment.next_maintenance_date, today, settings.inventory.maintenance_due_days
    )

    if equipment.needs_calibration:
        record = latest_calibrations(db, [equipment.id]).get(equipment.id)
        cal = calibration_row(equipment, record, today)
        result["calibration_status"] = cal["calibration_status"]
        result["calibration_expiry_date"] = cal["expiry_date"]
        result["days_until_calibration_expiry"] = cal["days_until_expiry"]
    else:
        result["calibration_status"] = None

    return result


@router.get("")
async def list_equipment(
    status_filter: Optional[str] = Query(None, alias="status"),
    category_id: Optional[int] = None,
    subcategory_id: Optional[int] = None,
    is_consumable: Optional[bool] = None,
    location_id: Optional[int] = None,
    search: Optional[str] = None,
    include_retired: bool = False,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """List equipment with filters."""
    query = (
        db.query(Equipment)
        .join(Category, Equipment.category_id == Category.id)
        .options(
            joinedload(Equipment.category),
            joinedload(Equipment.subcategory),
            joinedload(Equipment.current_location),
            joinedload(Equipment.current_holder),
            joinedload(Equipment.current_customer),
        )
    )

    if status_filter:
        query = query.filter(Equipment.status == status_filter)
    elif not include_retired:
        query = query.filter(Equipment.status != STATUS_RETIRED)

    if category_id:
        query = query.filter(Equipment.category_id == category_id)

    if subcategory_id:
        query = query.filter(Equipment.subcategory_id == subcategory_id)

    if is_consumable is not None:
        query = query.filter(Category.is_consumable.is_(is_consumable))

    if location_id:
        query = query.filter(Equipment.current_location_id == location_id)

    if search:
        pattern = f"%{search}%"
        query = query.filter(
            or_(
                Equipment.equipment_id.ilike(pattern),
                Equipment.equipment_name.ilike(pattern),
                Equipment.serial_number.ilike(pattern),
                Equipment.description.ilike(pattern),
            )
        )

    equipment_list = query.order_by(Equipment.equipment_name).all()

    return {
        "success": True,
        "equipment": [e.to_dict() for e in equipment_list],
        "total": len(equipment_list),
    }


@router.get("/by-code/{equipment_code}")
async def get_equipment_by_code(
    equipment_code: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Look up equipment by its equipment ID (asset code)."""
    equipment = db.query(Equipment).filter(Equipment.equipment_id == equipment_code).first()
    if not equipment:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Equipment not found",
        )
    return {"success": True, "equipment": equipment_detail(db, equipment)}


@router.get("/{equipment_pk}")
async def get_equipment(
    equipment_pk: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Get equipment with recent movements and upcoming reservations."""
    equipment = get_equipment_or_404(db, equipment_pk)
    settings = get_settings()

    movements = (
        db.query(EquipmentMovement)
        .filter(EquipmentMovement.equipment_id == equipment_pk)
        .order_by(EquipmentMovement.created_at.desc(), EquipmentMovement.id.desc())
        .limit(settings.inventory.recent_movements_limit)
        .all()
    )

    reservations = (
        db.query(Reservation)
        .filter(
            Reservation.equipment_id == equipment_pk,
            Reservation.status.notin_(INACTIVE_RESERVATION_STATUSES),
            Reservation.end_date >= date.today(),
        )
        .order_by(Reservation.start_date)
        .all()
    )

    return {
        "success": True,
        "equipment": equipment_detail(db, equipment),
        "recent_movements": [m.to_dict(include_equipment=False) for m in movements],
        "reservations": [r.to_dict(include_equipment=False) for r in reservations],
    }


@router.get("/{equipment_pk}/history")
async def get_equipment_history(
    equipment_pk: int,
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Full movement history of a piece of equipment."""
    equipment = get_equipment_or_404(db, equipment_pk)

    movements = (
        db.query(EquipmentMovement)
        .filter(EquipmentMovement.equipment_id == equipment_pk)
        .order_by(EquipmentMovement.created_at.desc(), EquipmentMovement.id.desc())
        .limit(limit)
        .all()
    )

    return {
        "success": True,
        "equipment": equipment.to_dict(),
        "movements": [m.to_dict(include_equipment=False) for m in movements],
    }


@router.post("")
async def create_equipment(
    request: Request,
    data: EquipmentCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("equipment:write")),
):
    """Create equipment."""
    category = _check_category(db, data.category_id, data.subcategory_id)

    equipment_code = sanitize_input(data.equipment_id, 50)
    serial = clean_optional(data.serial_number, 100)

    # Consumables are always stock items without serials
    is_quantity_tracked = data.is_quantity_tracked or category.is_consumable
    is_serialized = data.is_serialized and not category.is_consumable

    if is_serialized and not serial:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Serial number is required for serialised equipment",
        )

    _check_unique(db, equipment_code, serial)

    total = data.total_quantity if is_quantity_tracked else 1

    equipment = Equipment(
        equipment_id=equipment_code,
        equipment_name=sanitize_input(data.equipment_name, 255),
        description=clean_optional(data.description, 2000),
        category_id=data.category_id,
        subcategory_id=data.subcategory_id,
        manufacturer=clean_optional(data.manufacturer, 100),
        model=clean_optional(data.model, 100),
        is_serialized=is_serialized,
        serial_number=serial,
        is_quantity_tracked=is_quantity_tracked,
        total_quantity=total,
        available_quantity=total,
        unit=sanitize_input(data.unit, 20) or "ea",
        reorder_level=data.reorder_level,
        status=STATUS_AVAILABLE,
        current_location_id=data.current_location_id,
        requires_calibration=data.requires_calibration,
        calibration_interval_months=(
            data.calibration_interval_months or category.default_calibration_interval_months
        ),
        next_maintenance_date=data.next_maintenance_date,
        purchase_date=data.purchase_date,
        purchase_cost=clean_optional(data.purchase_cost, 50),
        notes=clean_optional(data.notes, 2000),
    )
    db.add(equipment)
    db.commit()
    db.refresh(equipment)

    log_audit(db, "equipment", equipment.id, "INSERT", current_user, None, model_snapshot(equipment), request)

    return {
        "success": True,
        "equipment": equipment.to_dict(),
        "message": f"Equipment '{equipment.equipment_id}' created",
    }


@router.put("/{equipment_pk}")
async def update_equipment(
    request: Request,
    equipment_pk: int,
    data: EquipmentUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("equipment:write")),
):
    """Update equipment metadata."""
    equipment = get_equipment_or_404(db, equipment_pk)
    old_values = model_snapshot(equipment)

    category_id = data.category_id or equipment.category_id
    subcategory_id = data.subcategory_id if data.subcategory_id is not None else equipment.subcategory_id
    if data.category_id is not None or data.subcategory_id is not None:
        _check_category(db, category_id, subcategory_id)
        equipment.category_id = category_id
        equipment.subcategory_id = subcategory_id

    if data.equipment_id and data.equipment_id != equipment.equipment_id:
        code = sanitize_input(data.equipment_id, 50)
        _check_unique(db, code, None, exclude_id=equipment.id)
        equipment.equipment_id = code

    if data.serial_number is not None:
        serial = clean_optional(data.serial_number, 100)
        if equipment.is_serialized and not serial:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Serial number is required for serialised equipment",
            )
        if serial != equipment.serial_number:
            _check_unique(db, None, serial, exclude_id=equipment.id)
        equipment.serial_number = serial

    if data.status is not None and data.status != equipment.status:
        if data.status not in EQUIPMENT_STATUSES:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Invalid status. Must be one of: {', '.join(EQUIPMENT_STATUSES)}",
            )
        if data.status not in EDITABLE_STATUSES or equipment.status == STATUS_CHECKED_OUT:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Check-out state can only be changed through movements",
            )
        equipment.status = data.status

    if data.equipment_name:
        equipment.equipment_name = sanitize_input(data.equipment_name, 255)

    for field, limit in (
        ("description", 2000),
        ("manufacturer", 100),
        ("model", 100),
        ("purchase_cost", 50),
        ("notes", 2000),
    ):
        value = getattr(data, field)
        if value is not None:
            setattr(equipment, field, clean_optional(value, limit))

    if data.unit:
        equipment.unit = sanitize_input(data.unit, 20)

    for field in (
        "reorder_level",
        "current_location_id",
        "requires_calibration",
        "calibration_interval_months",
        "next_maintenance_date",
        "purchase_date",
    ):
        value = getattr(data, field)
        if value is not None:
            setattr(equipment, field, value)

    db.commit()
    db.refresh(equipment)

    log_audit(db, "equipment", equipment.id, "UPDATE", current_user, old_values, model_snapshot(equipment), request)

    return {
        "success": True,
        "equipment": equipment.to_dict(),
        "message": f"Equipment '{equipment.equipment_id}' updated",
    }


@router.delete("/{equipment_pk}")
async def retire_equipment(
    request: Request,
    equipment_pk: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("equipment:write")),
):
    """Retire equipment. History is kept."""
    equipment = get_equipment_or_404(db, equipment_pk)

    if equipment.status == STATUS_CHECKED_OUT:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Checked out equipment must be checked in before it is retired",
        )

    old_values = model_snapshot(equipment)
    equipment.status = STATUS_RETIRED
    db.commit()

    log_audit(db, "equipment", equipment.id, "UPDATE", current_user, old_values, model_snapshot(equipment), request)

    return {"success": True, "message": f"Equipment '{equipment.equipment_id}' retired"}
