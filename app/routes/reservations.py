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


"""Reservation routes."""

from datetime import date, datetime, timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, ValidationInfo, field_validator
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.database import get_db
from app.middleware.auth import get_current_user, require_permission
from app.models.catalog import Customer, Personnel
from app.models.equipment import STATUS_RETIRED, Equipment
from app.models.reservation import (
    INACTIVE_RESERVATION_STATUSES,
    RESERVATION_STATUSES,
    Reservation,
)
from app.models.user import User
from app.services.audit import log_audit
from app.utils.helpers import clean_optional, model_snapshot

router = APIRouter(prefix="/api/reservations")

# Transitions that need approval rights rather than plain write access
APPROVAL_STATUSES = ("approved", "rejected")


class ReservationCreate(BaseModel):
    """Reservation creation request."""

    equipment_id: int
    personnel_id: int
    customer_id: Optional[int] = None
    start_date: date
    end_date: date
    purpose: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("end_date")
    @classmethod
    def validate_dates(cls, v, info: ValidationInfo):
        if "start_date" in info.data and v < info.data["start_date"]:
            raise ValueError("End date must be on or after start date")
        return v


class ReservationUpdate(BaseModel):
    """Reservation update request."""

    personnel_id: Optional[int] = None
    customer_id: Optional[int] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    purpose: Optional[str] = None
    notes: Optional[str] = None


class ReservationStatusUpdate(BaseModel):
    """Reservation status change."""

    status: str


def check_reservation_conflicts(
    db: Session,
    equipment_id: int,
    start_date: date,
    end_date: date,
    exclude_reservation_id: Optional[int] = None,
) -> List[Reservation]:
    """Active reservations of the equipment overlapping the inclusive range."""
    query = db.query(Reservation).filter(
        Reservation.equipment_id == equipment_id,
        Reservation.status.notin_(INACTIVE_RESERVATION_STATUSES),
        Reservation.start_date <= end_date,
        Reservation.end_date >= start_date,
    )

    if exclude_reservation_id:
        query = query.filter(Reservation.id != exclude_reservation_id)

    return query.order_by(Reservation.start_date).all()


def _conflict_info(conflicts: List[Reservation]) -> list:
    return [
        {
            "id": c.id,
            "start_date": c.start_date.isoformat(),
            "end_date": c.end_date.isoformat(),
            "status": c.status,
            "personnel_name": c.personnel.full_name if c.personnel else None,
        }
        for c in conflicts
    ]


def _raise_on_conflicts(conflicts: List[Reservation]) -> None:
    if conflicts:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "message": "Equipment is already reserved for these dates",
                "conflicts": _conflict_info(conflicts),
            },
        )


def _get_reservation(db: Session, reservation_id: int) -> Reservation:
    reservation = db.query(Reservation).filter(Reservation.id == reservation_id).first()
    if not reservation:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Reservation not found")
    return reservation


def _check_people(db: Session, personnel_id: Optional[int], customer_id: Optional[int]) -> None:
    if personnel_id is not None:
        if not db.query(Personnel.id).filter(Personnel.id == personnel_id).first():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Personnel does not exist")
    if customer_id is not None:
        if not db.query(Customer.id).filter(Customer.id == customer_id).first():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Customer does not exist")


@router.get("")
async def list_reservations(
    status_filter: Optional[str] = Query(None, alias="status"),
    equipment_id: Optional[int] = None,
    personnel_id: Optional[int] = None,
    customer_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """List reservations with optional filters."""
    query = db.query(Reservation)

    if status_filter:
        query = query.filter(Reservation.status == status_filter)
    if equipment_id:
        query = query.filter(Reservation.equipment_id == equipment_id)
    if personnel_id:
        query = query.filter(Reservation.personnel_id == personnel_id)
    if customer_id:
        query = query.filter(Reservation.customer_id == customer_id)
    if start_date:
        query = query.filter(Reservation.end_date >= start_date)
    if end_date:
        query = query.filter(Reservation.start_date <= end_date)

    reservations = query.order_by(Reservation.start_date.desc(), Reservation.id.desc()).all()

    return {"success": True, "reservations": [r.to_dict() for r in reservations]}


@router.get("/calendar")
async def get_calendar(
    start: date,
    end: date,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Reservations touching a date window, excluding cancelled ones."""
    if end < start:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="End must be on or after start")

    reservations = (
        db.query(Reservation)
        .filter(
            Reservation.status != "cancelled",
            Reservation.start_date <= end,
            Reservation.end_date >= start,
        )
        .order_by(Reservation.start_date)
        .all()
    )

    return {"success": True, "reservations": [r.to_dict() for r in reservations]}


@router.get("/check-availability")
async def check_availability(
    equipment_id: int,
    start_date: date,
    end_date: date,
    exclude_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Check whether equipment is free for a date range."""
    if end_date < start_date:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="End date must be on or after start date",
        )

    conflicts = check_reservation_conflicts(db, equipment_id, start_date, end_date, exclude_id)

    return {
        "success": True,
        "available": not conflicts,
        "conflicts": _conflict_info(conflicts),
    }


@router.get("/summary")
async def get_reservation_summary(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Recent reservations by status and the count starting within a week."""
    today = date.today()

    by_status = (
        db.query(Reservation.status, func.count(Reservation.id))
        .filter(Reservation.start_date >= today - timedelta(days=7))
        .group_by(Reservation.status)
        .all()
    )

    upcoming_week = (
        db.query(func.count(Reservation.id))
        .filter(
            Reservation.status.in_(("pending", "approved")),
            Reservation.start_date >= today,
            Reservation.start_date <= today + timedelta(days=7),
        )
        .scalar()
    )

    return {
        "success": True,
        "by_status": [{"status": s, "count": c} for s, c in by_status],
        "upcoming_week": upcoming_week or 0,
    }


@router.get("/{reservation_id}")
async def get_reservation(
    reservation_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Get a reservation."""
    return {"success": True, "reservation": _get_reservation(db, reservation_id).to_dict()}


@router.post("")
async def create_reservation(
    request: Request,
    data: ReservationCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("reservations:write")),
):
    """Reserve equipment for a date range."""
    equipment = db.query(Equipment).filter(Equipment.id == data.equipment_id).first()
    if not equipment:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Equipment not found")
    if equipment.status == STATUS_RETIRED:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Retired equipment cannot be reserved")

    _check_people(db, data.personnel_id, data.customer_id)

    _raise_on_conflicts(
        check_reservation_conflicts(db, data.equipment_id, data.start_date, data.end_date)
    )

    reservation = Reservation(
        equipment_id=data.equipment_id,
        personnel_id=data.personnel_id,
        customer_id=data.customer_id,
        start_date=data.start_date,
        end_date=data.end_date,
        purpose=clean_optional(data.purpose, 1000),
        notes=clean_optional(data.notes, 2000),
        status="pending",
        created_by=current_user.id,
    )
    db.add(reservation)
    db.commit()
    db.refresh(reservation)

    log_audit(db, "reservations", reservation.id, "INSERT", current_user, None, model_snapshot(reservation), request)

    return {"success": True, "reservation": reservation.to_dict(), "message": "Reservation created"}


@router.put("/{reservation_id}")
async def update_reservation(
    request: Request,
    reservation_id: int,
    data: ReservationUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("reservations:write")),
):
    """Edit a reservation that is still active."""
    reservation = _get_reservation(db, reservation_id)

    if not reservation.is_active:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Cannot edit a {reservation.status} reservation",
        )

    start_date = data.start_date or reservation.start_date
    end_date = data.end_date or reservation.end_date
    if end_date < start_date:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="End date must be on or after start date",
        )

    _check_people(db, data.personnel_id, data.customer_id)

    if start_date != reservation.start_date or end_date != reservation.end_date:
        _raise_on_conflicts(
            check_reservation_conflicts(db, reservation.equipment_id, start_date, end_date, reservation.id)
        )

    old_values = model_snapshot(reservation)

    reservation.start_date = start_date
    reservation.end_date = end_date
    if data.personnel_id is not None:
        reservation.personnel_id = data.personnel_id
    if data.customer_id is not None:
        reservation.customer_id = data.customer_id
    if data.purpose is not None:
        reservation.purpose = clean_optional(data.purpose, 1000)
    if data.notes is not None:
        reservation.notes = clean_optional(data.notes, 2000)

    db.commit()
    db.refresh(reservation)

    log_audit(db, "reservations", reservation.id, "UPDATE", current_user, old_values, model_snapshot(reservation), request)

    return {"success": True, "reservation": reservation.to_dict(), "message": "Reservation updated"}


@router.patch("/{reservation_id}/status")
async def update_reservation_status(
    request: Request,
    reservation_id: int,
    data: ReservationStatusUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("reservations:write")),
):
    """Move a reservation through its lifecycle."""
    if data.status not in RESERVATION_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid status. Must be one of: {', '.join(RESERVATION_STATUSES)}",
        )

    reservation = _get_reservation(db, reservation_id)

    if not reservation.can_transition_to(data.status):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Cannot change a {reservation.status} reservation to {data.status}",
        )

    if data.status in APPROVAL_STATUSES and not current_user.has_permission("reservations:approve"):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Permission required: reservations:approve",
        )

    if data.status == "approved":
        _raise_on_conflicts(
            check_reservation_conflicts(
                db, reservation.equipment_id, reservation.start_date, reservation.end_date, reservation.id
            )
        )

    old_values = model_snapshot(reservation)

    reservation.status = data.status
    if data.status == "approved":
        reservation.approved_by = current_user.id
        reservation.approved_at = datetime.utcnow()

    db.commit()
    db.refresh(reservation)

    log_audit(db, "reservations", reservation.id, "UPDATE", current_user, old_values, model_snapshot(reservation), request)

    return {"success": True, "reservation": reservation.to_dict(), "message": f"Reservation {data.status}"}


@router.delete("/{reservation_id}")
async def delete_reservation(
    request: Request,
    reservation_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("reservations:write")),
):
    """Delete a reservation."""
    reservation = _get_reservation(db, reservation_id)
    old_values = model_snapshot(reservation)

    db.delete(reservation)
    db.commit()

    log_audit(db, "reservations", reservation_id, "DELETE", current_user, old_values, None, request)

    return {"success": True, "message": "Reservation deleted"}
