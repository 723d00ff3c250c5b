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


"""Calibration certificate routes."""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, Request, UploadFile, status
from fastapi.responses import FileResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.database import get_db
from app.middleware.auth import get_current_user, require_permission
from app.models.calibration import CalibrationRecord
from app.models.equipment import Equipment
from app.models.user import User
from app.services.audit import log_audit
from app.services.calibration import calibration_due_rows, calibration_status_rows
from app.services.files import UploadError, delete_file, resolve_file, save_certificate
from app.services.status import CALIBRATION_STATUS_ORDER, validate_calibration_dates
from app.utils.helpers import clean_optional, model_snapshot

router = APIRouter(prefix="/api/calibration")


class CalibrationCreate(BaseModel):
    """Calibration record creation request."""

    equipment_id: int
    calibration_date: date
    expiry_date: date
    certificate_number: Optional[str] = None
    calibration_provider: Optional[str] = None
    notes: Optional[str] = None


class CalibrationUpdate(BaseModel):
    """Calibration record update request."""

    calibration_date: Optional[date] = None
    expiry_date: Optional[date] = None
    certificate_number: Optional[str] = None
    calibration_provider: Optional[str] = None
    notes: Optional[str] = None


def _get_record(db: Session, record_id: int) -> CalibrationRecord:
    record = db.query(CalibrationRecord).filter(CalibrationRecord.id == record_id).first()
    if not record:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Calibration record not found",
        )
    return record


def _check_dates(calibration_date: date, expiry_date: date) -> None:
    try:
        validate_calibration_dates(calibration_date, expiry_date)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("/status")
async def get_calibration_status(
    status_filter: Optional[str] = Query(None, alias="status"),
    category_id: Optional[int] = None,
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Calibration status of all equipment that requires calibration."""
    if status_filter and status_filter not in CALIBRATION_STATUS_ORDER:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid status. Must be one of: {', '.join(CALIBRATION_STATUS_ORDER)}",
        )

    rows = calibration_status_rows(db, date.today(), status_filter, category_id, search)
    return {"success": True, "equipment": rows, "total": len(rows)}


@router.get("/due")
async def get_calibration_due(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Equipment with expired or soon-to-expire calibration."""
    rows = calibration_due_rows(db, date.today())
    return {"success": True, "equipment": rows, "total": len(rows)}


@router.get("/summary")
async def get_calibration_summary(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Count of equipment per calibration status."""
    rows = calibration_status_rows(db, date.today())

    counts = {name: 0 for name in CALIBRATION_STATUS_ORDER}
    for row in rows:
        counts[row["calibration_status"]] += 1

    return {
        "success": True,
        "summary": [
            {"calibration_status": name, "count": count}
            for name, count in counts.items()
            if count
        ],
        "counts": counts,
        "total": len(rows),
    }


@router.get("/history/{equipment_pk}")
async def get_calibration_history(
    equipment_pk: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """All calibration records of a piece of equipment, newest first."""
    equipment = db.query(Equipment).filter(Equipment.id == equipment_pk).first()
    if not equipment:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Equipment not found")

    records = (
        db.query(CalibrationRecord)
        .filter(CalibrationRecord.equipment_id == equipment_pk)
        .order_by(CalibrationRecord.calibration_date.desc(), CalibrationRecord.id.desc())
        .all()
    )

    return {
        "success": True,
        "equipment": equipment.to_dict(),
        "records": [r.to_dict(include_equipment=False) for r in records],
    }


@router.get("/{record_id}")
async def get_calibration_record(
    record_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Get a calibration record."""
    return {"success": True, "record": _get_record(db, record_id).to_dict()}


@router.post("")
async def create_calibration_record(
    request: Request,
    data: CalibrationCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("calibration:write")),
):
    """Add a calibration record."""
    equipment = db.query(Equipment).filter(Equipment.id == data.equipment_id).first()
    if not equipment:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Equipment not found")

    _check_dates(data.calibration_date, data.expiry_date)

    record = CalibrationRecord(
        equipment_id=equipment.id,
        calibration_date=data.calibration_date,
        expiry_date=data.expiry_date,
        certificate_number=clean_optional(data.certificate_number, 100),
        calibration_provider=clean_optional(data.calibration_provider, 255),
        notes=clean_optional(data.notes, 2000),
        created_by=current_user.id,
    )
    db.add(record)
    db.commit()
    db.refresh(record)

    log_audit(db, "calibration_records", record.id, "INSERT", current_user, None, model_snapshot(record), request)

    return {"success": True, "record": record.to_dict(), "message": "Calibration record added"}


@router.put("/{record_id}")
async def update_calibration_record(
    request: Request,
    record_id: int,
    data: CalibrationUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("calibration:write")),
):
    """Update a calibration record."""
    record = _get_record(db, record_id)
    old_values = model_snapshot(record)

    calibration_date = data.calibration_date or record.calibration_date
    expiry_date = data.expiry_date or record.expiry_date
    _check_dates(calibration_date, expiry_date)

    record.calibration_date = calibration_date
    record.expiry_date = expiry_date
    if data.certificate_number is not None:
        record.certificate_number = clean_optional(data.certificate_number, 100)
    if data.calibration_provider is not None:
        record.calibration_provider = clean_optional(data.calibration_provider, 255)
    if data.notes is not None:
        record.notes = clean_optional(data.notes, 2000)

    db.commit()
    db.refresh(record)

    log_audit(db, "calibration_records", record.id, "UPDATE", current_user, old_values, model_snapshot(record), request)

    return {"success": True, "record": record.to_dict(), "message": "Calibration record updated"}


@router.delete("/{record_id}")
async def delete_calibration_record(
    request: Request,
    record_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("calibration:write")),
):
    """Delete a calibration record and its certificate file."""
    record = _get_record(db, record_id)
    old_values = model_snapshot(record)
    file_path = record.certificate_file_path

    db.delete(record)
    db.commit()

    delete_file(file_path)

    log_audit(db, "calibration_records", record_id, "DELETE", current_user, old_values, None, request)

    return {"success": True, "message": "Calibration record deleted"}


@router.post("/{record_id}/certificate")
async def upload_certificate(
    request: Request,
    record_id: int,
    certificate: UploadFile = File(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("calibration:write")),
):
    """Attach or replace the certificate file of a record."""
    record = _get_record(db, record_id)

    try:
        stored = save_certificate(certificate, record.equipment.equipment_id)
    except UploadError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    old_values = model_snapshot(record)
    previous = record.certificate_file_path

    record.certificate_file_path = stored["path"]
    record.certificate_file_name = stored["original_name"]
    record.certificate_file_size = stored["size"]
    record.certificate_mime_type = stored["mime_type"]
    db.commit()
    db.refresh(record)

    delete_file(previous)

    log_audit(db, "calibration_records", record.id, "UPDATE", current_user, old_values, model_snapshot(record), request)

    return {"success": True, "record": record.to_dict(), "message": "Certificate uploaded"}


def _certificate_response(db: Session, record_id: int, disposition: str) -> FileResponse:
    record = _get_record(db, record_id)

    if not record.certificate_file_path:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No certificate file for this record")

    path = resolve_file(record.certificate_file_path)
    if path is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Certificate file not found on disk")

    return FileResponse(
        path,
        media_type=record.certificate_mime_type,
        filename=record.certificate_file_name or path.name,
        content_disposition_type=disposition,
    )


@router.get("/certificate/{record_id}")
async def view_certificate(
    record_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Show the certificate inline."""
    return _certificate_response(db, record_id, "inline")


@router.get("/certificate/{record_id}/download")
async def download_certificate(
    record_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Download the certificate file."""
    return _certificate_response(db, record_id, "attachment")
