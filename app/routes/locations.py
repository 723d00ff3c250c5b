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


"""Location and personnel routes."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.database import get_db
from app.middleware.auth import get_current_user, require_permission
from app.models.catalog import Location, Personnel
from app.models.equipment import Equipment
from app.models.user import User
from app.services.audit import log_audit
from app.utils.helpers import clean_optional, model_snapshot, sanitize_input

router = APIRouter()


class LocationCreate(BaseModel):
    """Location creation request."""

    name: str = Field(..., min_length=1, max_length=255)
    type: Optional[str] = None
    description: Optional[str] = None


class LocationUpdate(BaseModel):
    """Location update request."""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    type: Optional[str] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None


class PersonnelCreate(BaseModel):
    """Personnel creation request."""

    employee_id: str = Field(..., min_length=1, max_length=50)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    job_title: Optional[str] = None
    department: Optional[str] = None
    site: Optional[str] = None
    phone: Optional[str] = None


class PersonnelUpdate(BaseModel):
    """Personnel update request."""

    employee_id: Optional[str] = Field(None, min_length=1, max_length=50)
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    job_title: Optional[str] = None
    department: Optional[str] = None
    site: Optional[str] = None
    phone: Optional[str] = None
    is_active: Optional[bool] = None


# Location Routes
@router.get("/api/locations")
async def list_locations(
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """List locations."""
    query = db.query(Location)
    if not include_inactive:
        query = query.filter(Location.is_active.is_(True))
    locations = query.order_by(Location.name).all()
    return {"success": True, "locations": [loc.to_dict() for loc in locations]}


@router.get("/api/locations/{location_id}")
async def get_location(
    location_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Get a location and the equipment currently held there."""
    location = db.query(Location).filter(Location.id == location_id).first()
    if not location:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Location not found")

    equipment = (
        db.query(Equipment)
        .filter(Equipment.current_location_id == location_id)
        .order_by(Equipment.equipment_name)
        .all()
    )
    return {
        "success": True,
        "location": location.to_dict(),
        "equipment": [e.to_dict() for e in equipment],
    }


@router.post("/api/locations")
async def create_location(
    request: Request,
    data: LocationCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("catalog:write")),
):
    """Create a location."""
    name = sanitize_input(data.name, 255)
    if db.query(Location).filter(Location.name == name).first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Location with this name already exists",
        )

    location = Location(
        name=name,
        type=clean_optional(data.type, 50),
        description=clean_optional(data.description, 1000),
    )
    db.add(location)
    db.commit()
    db.refresh(location)

    log_audit(db, "locations", location.id, "INSERT", current_user, None, model_snapshot(location), request)

    return {"success": True, "location": location.to_dict(), "message": f"Location '{location.name}' created"}


@router.put("/api/locations/{location_id}")
async def update_location(
    request: Request,
    location_id: int,
    data: LocationUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("catalog:write")),
):
    """Update a location."""
    location = db.query(Location).filter(Location.id == location_id).first()
    if not location:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Location not found")

    old_values = model_snapshot(location)

    if data.name and data.name != location.name:
        name = sanitize_input(data.name, 255)
        if db.query(Location).filter(Location.name == name, Location.id != location_id).first():
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Location with this name already exists",
            )
        location.name = name

    if data.type is not None:
        location.type = clean_optional(data.type, 50)
    if data.description is not None:
        location.description = clean_optional(data.description, 1000)
    if data.is_active is not None:
        location.is_active = data.is_active

    db.commit()
    db.refresh(location)

    log_audit(db, "locations", location.id, "UPDATE", current_user, old_values, model_snapshot(location), request)

    return {"success": True, "location": location.to_dict(), "message": f"Location '{location.name}' updated"}


@router.delete("/api/locations/{location_id}")
async def deactivate_location(
    request: Request,
    location_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("catalog:write")),
):
    """Soft delete a location."""
    location = db.query(Location).filter(Location.id == location_id).first()
    if not location:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Location not found")

    old_values = model_snapshot(location)
    location.is_active = False
    db.commit()

    log_audit(db, "locations", location.id, "UPDATE", current_user, old_values, model_snapshot(location), request)

    return {"success": True, "message": f"Location '{location.name}' deactivated"}


# Personnel Routes
@router.get("/api/personnel")
async def list_personnel(
    search: Optional[str] = None,
    department: Optional[str] = None,
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """List personnel with optional search."""
    query = db.query(Personnel)

    if not include_inactive:
        query = query.filter(Personnel.is_active.is_(True))

    if department:
        query = query.filter(Personnel.department == department)

    if search:
        pattern = f"%{search}%"
        query = query.filter(
            or_(
                Personnel.employee_id.ilike(pattern),
                Personnel.first_name.ilike(pattern),
                Personnel.last_name.ilike(pattern),
                Personnel.email.ilike(pattern),
            )
        )

    personnel = query.order_by(Personnel.first_name, Personnel.last_name).all()
    return {"success": True, "personnel": [p.to_dict() for p in personnel]}


@router.get("/api/personnel/{personnel_id}")
async def get_personnel(
    personnel_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Get a person and the equipment they currently hold."""
    person = db.query(Personnel).filter(Personnel.id == personnel_id).first()
    if not person:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Personnel not found")

    held = (
        db.query(Equipment)
        .filter(Equipment.current_holder_id == personnel_id)
        .order_by(Equipment.equipment_name)
        .all()
    )
    return {
        "success": True,
        "personnel": person.to_dict(),
        "equipment": [e.to_dict() for e in held],
    }


@router.post("/api/personnel")
async def create_personnel(
    request: Request,
    data: PersonnelCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("catalog:write")),
):
    """Create a personnel record."""
    employee_id = sanitize_input(data.employee_id, 50)
    if db.query(Personnel).filter(Personnel.employee_id == employee_id).first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Employee ID already exists",
        )

    person = Personnel(
        employee_id=employee_id,
        first_name=sanitize_input(data.first_name, 100),
        last_name=sanitize_input(data.last_name, 100),
        email=data.email.lower() if data.email else None,
        job_title=clean_optional(data.job_title, 100),
        department=clean_optional(data.department, 100),
        site=clean_optional(data.site, 100),
        phone=clean_optional(data.phone, 50),
    )
    db.add(person)
    db.commit()
    db.refresh(person)

    log_audit(db, "personnel", person.id, "INSERT", current_user, None, model_snapshot(person), request)

    return {"success": True, "personnel": person.to_dict(), "message": f"{person.full_name} added"}


@router.put("/api/personnel/{personnel_id}")
async def update_personnel(
    request: Request,
    personnel_id: int,
    data: PersonnelUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("catalog:write")),
):
    """Update a personnel record."""
    person = db.query(Personnel).filter(Personnel.id == personnel_id).first()
    if not person:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Personnel not found")

    old_values = model_snapshot(person)

    if data.employee_id and data.employee_id != person.employee_id:
        employee_id = sanitize_input(data.employee_id, 50)
        existing = (
            db.query(Personnel)
            .filter(Personnel.employee_id == employee_id, Personnel.id != personnel_id)
            .first()
        )
        if existing:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Employee ID already exists",
            )
        person.employee_id = employee_id

    if data.first_name:
        person.first_name = sanitize_input(data.first_name, 100)
    if data.last_name:
        person.last_name = sanitize_input(data.last_name, 100)
    if data.email is not None:
        person.email = data.email.lower()
    for field, limit in (("job_title", 100), ("department", 100), ("site", 100), ("phone", 50)):
        value = getattr(data, field)
        if value is not None:
            setattr(person, field, clean_optional(value, limit))
    if data.is_active is not None:
        person.is_active = data.is_active

    db.commit()
    db.refresh(person)

    log_audit(db, "personnel", person.id, "UPDATE", current_user, old_values, model_snapshot(person), request)

    return {"success": True, "personnel": person.to_dict(), "message": f"{person.full_name} updated"}
