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


"""Check-out, check-in, issue and restock routes."""

from datetime import date, datetime, time, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, Request, UploadFile, status
from fastapi.responses import FileResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.database import get_db
from app.middleware.auth import get_current_user, require_permission
from app.models.catalog import Customer, Location, Personnel
from app.models.equipment import MOVEMENT_ACTIONS, Equipment, EquipmentMovement
from app.models.user import User
from app.services.audit import log_audit
from app.services.files import UploadError, delete_file, resolve_file, save_photo
from app.services.inventory import InventoryError, apply_movement, handover
from app.utils.helpers import clean_optional, model_snapshot

router = APIRouter(prefix="/api/movements")


class MovementCreate(BaseModel):
    """Movement request."""

    equipment_id: int  # primary key of the equipment row
    action: str
    quantity: int = Field(1, ge=1)
    location_id: Optional[int] = None
    customer_id: Optional[int] = None
    personnel_id: Optional[int] = None
    notes: Optional[str] = None


class HandoverRequest(BaseModel):
    """Handover request: return and re-issue in one step."""

    equipment_id: int
    return_location_id: int
    new_personnel_id: int
    new_location_id: Optional[int] = None
    new_customer_id: Optional[int] = None
    notes: Optional[str] = None


def _lock_equipment(db: Session, equipment_pk: int) -> Equipment:
    equipment = (
        db.query(Equipment)
        .filter(Equipment.id == equipment_pk)
        .with_for_update()
        .first()
    )
    if not equipment:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Equipment not found",
        )
    return equipment


def _check_references(
    db: Session,
    location_id: Optional[int] = None,
    customer_id: Optional[int] = None,
    personnel_id: Optional[int] = None,
) -> None:
    if location_id and not db.query(Location.id).filter(Location.id == location_id).first():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Location not found")
    if customer_id and not db.query(Customer.id).filter(Customer.id == customer_id).first():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Customer not found")
    if personnel_id:
        person = db.query(Personnel).filter(Personnel.id == personnel_id).first()
        if not person:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Personnel not found")
        if not person.is_active:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Personnel is inactive")


@router.get("")
async def list_movements(
    equipment_id: Optional[int] = None,
    action: Optional[str] = None,
    personnel_id: Optional[int] = None,
    location_id: Optional[int] = None,
    customer_id: Optional[int] = None,
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """List movements, newest first."""
    query = db.query(EquipmentMovement)

    if equipment_id:
        query = query.filter(EquipmentMovement.equipment_id == equipment_id)
    if action:
        query = query.filter(EquipmentMovement.action == action.upper())
    if personnel_id:
        query = query.filter(EquipmentMovement.personnel_id == personnel_id)
    if location_id:
        query = query.filter(EquipmentMovement.location_id == location_id)
    if customer_id:
        query = query.filter(EquipmentMovement.customer_id == customer_id)
    if from_date:
        query = query.filter(EquipmentMovement.created_at >= datetime.combine(from_date, time.min))
    if to_date:
        query = query.filter(
            EquipmentMovement.created_at < datetime.combine(to_date + timedelta(days=1), time.min)
        )

    movements = (
        query.order_by(EquipmentMovement.created_at.desc(), EquipmentMovement.id.desc())
        .limit(limit)
        .all()
    )

    return {"success": True, "movements": [m.to_dict() for m in movements]}


@router.post("")
async def create_movement(
    request: Request,
    data: MovementCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("movements:write")),
):
    """Record a check-out, check-in, issue or restock."""
    if data.action.upper() not in MOVEMENT_ACTIONS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid action. Must be one of: {', '.join(MOVEMENT_ACTIONS)}",
        )

    _check_references(db, data.location_id, data.customer_id, data.personnel_id)
    equipment = _lock_equipment(db, data.equipment_id)
    old_values = model_snapshot(equipment)

    try:
        movement = apply_movement(
            db,
            equipment,
            data.action,
            quantity=data.quantity,
            location_id=data.location_id,
            customer_id=data.customer_id,
            personnel_id=data.personnel_id,
            notes=clean_optional(data.notes, 2000),
            created_by=current_user.id,
        )
        db.commit()
    except InventoryError as e:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    db.refresh(movement)
    db.refresh(equipment)

    log_audit(db, "equipment_movements", movement.id, "INSERT", current_user, None, model_snapshot(movement), request)
    log_audit(db, "equipment", equipment.id, "UPDATE", current_user, old_values, model_snapshot(equipment), request)

    return {
        "success": True,
        "movement": movement.to_dict(),
        "equipment": equipment.to_dict(),
    }


@router.post("/handover")
async def create_handover(
    request: Request,
    data: HandoverRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("movements:write")),
):
    """Check equipment in and out to a new holder as one transaction."""
    _check_references(db, data.return_location_id, data.new_customer_id, data.new_personnel_id)
    _check_references(db, data.new_location_id)
    equipment = _lock_equipment(db, data.equipment_id)
    old_values = model_snapshot(equipment)

    try:
        returned, issued = handover(
            db,
            equipment,
            return_location_id=data.return_location_id,
            new_personnel_id=data.new_personnel_id,
            new_location_id=data.new_location_id,
            new_customer_id=data.new_customer_id,
            notes=clean_optional(data.notes, 2000),
            created_by=current_user.id,
        )
        db.commit()
    except InventoryError as e:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    db.refresh(equipment)

    for movement in (returned, issued):
        log_audit(db, "equipment_movements", movement.id, "INSERT", current_user, None, model_snapshot(movement), request)
    log_audit(db, "equipment", equipment.id, "UPDATE", current_user, old_values, model_snapshot(equipment), request)

    return {
        "success": True,
        "message": "Handover completed successfully",
        "movements": [returned.to_dict(), issued.to_dict()],
        "equipment": equipment.to_dict(),
    }


@router.get("/{movement_id}")
async def get_movement(
    movement_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Get a single movement."""
    movement = db.query(EquipmentMovement).filter(EquipmentMovement.id == movement_id).first()
    if not movement:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Movement not found")
    return {"success": True, "movement": movement.to_dict()}


@router.post("/{movement_id}/photo")
async def upload_movement_photo(
    request: Request,
    movement_id: int,
    photo: UploadFile = File(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("movements:write")),
):
    """Attach a condition photo to a movement."""
    movement = db.query(EquipmentMovement).filter(EquipmentMovement.id == movement_id).first()
    if not movement:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Movement not found")

    try:
        stored = save_photo(photo, movement.action)
    except UploadError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    old_values = model_snapshot(movement)
    previous = movement.photo_path
    movement.photo_path = stored["path"]
    movement.photo_name = stored["original_name"]
    db.commit()
    db.refresh(movement)

    delete_file(previous)

    log_audit(db, "equipment_movements", movement.id, "UPDATE", current_user, old_values, model_snapshot(movement), request)

    return {"success": True, "movement": movement.to_dict()}


@router.get("/{movement_id}/photo")
async def get_movement_photo(
    movement_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Serve the photo attached to a movement."""
    movement = db.query(EquipmentMovement).filter(EquipmentMovement.id == movement_id).first()
    if not movement:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Movement not found")

    if not movement.photo_path:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No photo for this movement")

    path = resolve_file(movement.photo_path)
    if path is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Photo file not found on disk")

    return FileResponse(
        path,
        filename=movement.photo_name or path.name,
        content_disposition_type="inline",
    )
