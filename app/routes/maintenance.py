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


"""Maintenance log routes."""

from datetime import date
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, Field
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app.config import get_settings
from app.database import get_db
from app.middleware.auth import get_current_user, require_permission
from app.models.equipment import STATUS_RETIRED, Equipment
from app.models.maintenance import MAINTENANCE_STATUSES, MaintenanceLog, MaintenanceType
from app.models.user import User
from app.services.audit import log_audit
from app.services.status import (
    MAINTENANCE_DUE_SOON,
    MAINTENANCE_OVERDUE,
    days_until,
    maintenance_status,
)
from app.utils.helpers import clean_optional, model_snapshot, sanitize_input

router = APIRouter(prefix="/api/maintenance")


class MaintenanceCreate(BaseModel):
    """Maintenance record creation request."""

    equipment_id: int
    maintenance_type_id: int
    maintenance_date: date
    description: str = Field(..., min_length=1)
    completed_date: Optional[date] = None
    performed_by: Optional[str] = None
    service_provider: Optional[str] = None
    cost: Optional[Decimal] = Field(None, ge=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    downtime_days: Optional[int] = Field(None, ge=0)
    next_maintenance_date: Optional[date] = None
    status: str = "scheduled"
    work_order_number: Optional[str] = None
    notes: Optional[str] = None


class MaintenanceUpdate(BaseModel):
    """Maintenance record update request."""

    maintenance_type_id: Optional[int] = None
    maintenance_date: Optional[date] = None
    description: Optional[str] = Field(None, min_length=1)
    completed_date: Optional[date] = None
    performed_by: Optional[str] = None
    service_provider: Optional[str] = None
    cost: Optional[Decimal] = Field(None, ge=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    downtime_days: Optional[int] = Field(None, ge=0)
    next_maintenance_date: Optional[date] = None
    status: Optional[str] = None
    work_order_number: Optional[str] = None
    notes: Optional[str] = None


class MaintenanceComplete(BaseModel):
    """Completion of a maintenance record."""

    completed_date: Optional[date] = None
    next_maintenance_date: Optional[date] = None
    notes: Optional[str] = None


def _get_record(db: Session, record_id: int) -> MaintenanceLog:
    record = db.query(MaintenanceLog).filter(MaintenanceLog.id == record_id).first()
    if not record:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Maintenance record not found",
        )
    return record


def _check_status(value: str) -> None:
    if value not in MAINTENANCE_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid status. Must be one of: {', '.join(MAINTENANCE_STATUSES)}",
        )


def _check_type(db: Session, type_id: int) -> None:
    if not db.query(MaintenanceType.id).filter(MaintenanceType.id == type_id).first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Maintenance type does not exist",
        )


@router.get("/types")
async def list_maintenance_types(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """List active maintenance types."""
    types = (
        db.query(MaintenanceType)
        .filter(MaintenanceType.is_active == True)  # noqa: E712
        .order_by(MaintenanceType.name)
        .all()
    )
    return {"success": True, "types": [t.to_dict() for t in types]}


@router.get("")
async def list_maintenance(
    equipment_id: Optional[int] = None,
    status_filter: Optional[str] = Query(None, alias="status"),
    type_id: Optional[int] = None,
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """List maintenance records with optional filters."""
    query = db.query(MaintenanceLog).join(Equipment, MaintenanceLog.equipment_id == Equipment.id)

    if equipment_id:
        query = query.filter(MaintenanceLog.equipment_id == equipment_id)
    if status_filter:
        query = query.filter(MaintenanceLog.status == status_filter)
    if type_id:
        query = query.filter(MaintenanceLog.maintenance_type_id == type_id)
    if from_date:
        query = query.filter(MaintenanceLog.maintenance_date >= from_date)
    if to_date:
        query = query.filter(MaintenanceLog.maintenance_date <= to_date)
    if search:
        term = f"%{sanitize_input(search, 100)}%"
        query = query.filter(
            or_(
                Equipment.equipment_id.ilike(term),
                Equipment.equipment_name.ilike(term),
                MaintenanceLog.description.ilike(term),
                MaintenanceLog.work_order_number.ilike(term),
            )
        )

    records = query.order_by(MaintenanceLog.maintenance_date.desc(), MaintenanceLog.id.desc()).all()

    return {"success": True, "records": [r.to_dict() for r in records], "total": len(records)}


@router.get("/equipment/{equipment_pk}")
async def get_equipment_maintenance(
    equipment_pk: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Maintenance history of a piece of equipment."""
    equipment = db.query(Equipment).filter(Equipment.id == equipment_pk).first()
    if not equipment:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Equipment not found")

    records = (
        db.query(MaintenanceLog)
        .filter(MaintenanceLog.equipment_id == equipment_pk)
        .order_by(MaintenanceLog.maintenance_date.desc(), MaintenanceLog.id.desc())
        .all()
    )

    return {
        "success": True,
        "equipment": equipment.to_dict(),
        "records": [r.to_dict(include_equipment=False) for r in records],
    }


@router.get("/due")
async def get_maintenance_due(
    days: int = Query(30, ge=0, le=365),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Equipment whose next maintenance is overdue or due within ``days``."""
    today = date.today()

    equipment = (
        db.query(Equipment)
        .filter(
            Equipment.next_maintenance_date.isnot(None),
            Equipment.status != STATUS_RETIRED,
        )
        .order_by(Equipment.next_maintenance_date)
        .all()
    )

    rows = []
    for item in equipment:
        state = maintenance_status(item.next_maintenance_date, today, days)
        if state not in (MAINTENANCE_OVERDUE, MAINTENANCE_DUE_SOON):
            continue
        rows.append({
            "id": item.id,
            "equipment_id": item.equipment_id,
            "equipment_name": item.equipment_name,
            "serial_number": item.serial_number,
            "category": item.category.name if item.category else None,
            "next_maintenance_date": item.next_maintenance_date.isoformat(),
            "maintenance_status": state,
            "days_until_due": days_until(item.next_maintenance_date, today),
        })

    return {"success": True, "equipment": rows, "total": len(rows)}


@router.get("/summary")
async def get_maintenance_summary(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Counts by status, overdue/due-soon equipment and costs."""
    today = date.today()
    window = get_settings().inventory.maintenance_due_days

    by_status = (
        db.query(MaintenanceLog.status, func.count(MaintenanceLog.id))
        .group_by(MaintenanceLog.status)
        .all()
    )

    overdue = 0
    due_soon = 0
    next_dates = (
        db.query(Equipment.next_maintenance_date)
        .filter(Equipment.next_maintenance_date.isnot(None), Equipment.status != STATUS_RETIRED)
        .all()
    )
    for (next_date,) in next_dates:
        state = maintenance_status(next_date, today, window)
        if state == MAINTENANCE_OVERDUE:
            overdue += 1
        elif state == MAINTENANCE_DUE_SOON:
            due_soon += 1

    def cost_since(start: date) -> float:
        total = (
            db.query(func.coalesce(func.sum(MaintenanceLog.cost), 0))
            .filter(MaintenanceLog.maintenance_date >= start, MaintenanceLog.cost.isnot(None))
            .scalar()
        )
        return float(total or 0)

    return {
        "success": True,
        "by_status": [{"status": s, "count": c} for s, c in by_status],
        "overdue": overdue,
        "due_soon": due_soon,
        "cost_this_month": cost_since(today.replace(day=1)),
        "cost_this_year": cost_since(today.replace(month=1, day=1)),
    }


@router.get("/{record_id}")
async def get_maintenance_record(
    record_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Get a maintenance record."""
    return {"success": True, "record": _get_record(db, record_id).to_dict()}


@router.post("")
async def create_maintenance_record(
    request: Request,
    data: MaintenanceCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("maintenance:write")),
):
    """Add a maintenance record, moving the equipment's next maintenance date."""
    equipment = db.query(Equipment).filter(Equipment.id == data.equipment_id).first()
    if not equipment:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Equipment not found")

    _check_type(db, data.maintenance_type_id)
    _check_status(data.status)

    record = MaintenanceLog(
        equipment_id=equipment.id,
        maintenance_type_id=data.maintenance_type_id,
        maintenance_date=data.maintenance_date,
        completed_date=data.completed_date,
        description=sanitize_input(data.description, 5000),
        performed_by=clean_optional(data.performed_by, 255),
        service_provider=clean_optional(data.service_provider, 255),
        cost=data.cost,
        currency=(data.currency or get_settings().organization.default_currency).upper(),
        downtime_days=data.downtime_days,
        next_maintenance_date=data.next_maintenance_date,
        status=data.status,
        work_order_number=clean_optional(data.work_order_number, 100),
        notes=clean_optional(data.notes, 2000),
        created_by=current_user.id,
    )
    db.add(record)

    if data.next_maintenance_date:
        equipment.next_maintenance_date = data.next_maintenance_date

    db.commit()
    db.refresh(record)

    log_audit(db, "maintenance_log", record.id, "INSERT", current_user, None, model_snapshot(record), request)

    return {"success": True, "record": record.to_dict(), "message": "Maintenance record added"}


@router.put("/{record_id}")
async def update_maintenance_record(
    request: Request,
    record_id: int,
    data: MaintenanceUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("maintenance:write")),
):
    """Update a maintenance record."""
    record = _get_record(db, record_id)
    old_values = model_snapshot(record)

    if data.maintenance_type_id is not None:
        _check_type(db, data.maintenance_type_id)
        record.maintenance_type_id = data.maintenance_type_id
    if data.status is not None:
        _check_status(data.status)
        record.status = data.status
    if data.maintenance_date is not None:
        record.maintenance_date = data.maintenance_date
    if data.completed_date is not None:
        record.completed_date = data.completed_date
    if data.description is not None:
        record.description = sanitize_input(data.description, 5000)
    if data.performed_by is not None:
        record.performed_by = clean_optional(data.performed_by, 255)
    if data.service_provider is not None:
        record.service_provider = clean_optional(data.service_provider, 255)
    if data.cost is not None:
        record.cost = data.cost
    if data.currency is not None:
        record.currency = data.currency.upper()
    if data.downtime_days is not None:
        record.downtime_days = data.downtime_days
    if data.work_order_number is not None:
        record.work_order_number = clean_optional(data.work_order_number, 100)
    if data.notes is not None:
        record.notes = clean_optional(data.notes, 2000)
    if data.next_maintenance_date is not None:
        record.next_maintenance_date = data.next_maintenance_date
        record.equipment.next_maintenance_date = data.next_maintenance_date

    db.commit()
    db.refresh(record)

    log_audit(db, "maintenance_log", record.id, "UPDATE", current_user, old_values, model_snapshot(record), request)

    return {"success": True, "record": record.to_dict(), "message": "Maintenance record updated"}


@router.patch("/{record_id}/complete")
async def complete_maintenance(
    request: Request,
    record_id: int,
    data: MaintenanceComplete,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("maintenance:write")),
):
    """Mark a maintenance record completed."""
    record = _get_record(db, record_id)
    if record.status == "cancelled":
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cancelled maintenance cannot be completed",
        )

    old_values = model_snapshot(record)

    record.status = "completed"
    record.completed_date = data.completed_date or date.today()
    note = clean_optional(data.notes, 2000)
    if note:
        record.notes = f"{record.notes}\n{note}" if record.notes else note
    if data.next_maintenance_date is not None:
        record.next_maintenance_date = data.next_maintenance_date
        record.equipment.next_maintenance_date = data.next_maintenance_date

    db.commit()
    db.refresh(record)

    log_audit(db, "maintenance_log", record.id, "UPDATE", current_user, old_values, model_snapshot(record), request)

    return {"success": True, "record": record.to_dict(), "message": "Maintenance completed"}


@router.delete("/{record_id}")
async def delete_maintenance_record(
    request: Request,
    record_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("maintenance:write")),
):
    """Delete a maintenance record."""
    record = _get_record(db, record_id)
    old_values = model_snapshot(record)

    db.delete(record)
    db.commit()

    log_audit(db, "maintenance_log", record_id, "DELETE", current_user, old_values, None, request)

    return {"success": True, "message": "Maintenance record deleted"}
