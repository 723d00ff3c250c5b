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


"""Spreadsheet and CSV export routes."""

from datetime import date, datetime, time
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.config import get_settings
from app.database import get_db
from app.middleware.auth import require_permission
from app.models.audit import AuditLog
from app.models.catalog import Category
from app.models.equipment import STATUS_CHECKED_OUT, Equipment, EquipmentMovement
from app.models.maintenance import MaintenanceLog
from app.models.user import User
from app.services.calibration import calibration_status_rows
from app.services.status import (
    CALIBRATION_DUE_SOON,
    CALIBRATION_EXPIRED,
    CALIBRATION_VALID,
    checkout_days_out,
    is_checkout_overdue,
)
from app.utils.helpers import generate_csv, generate_xlsx

router = APIRouter(prefix="/api/exports")

AUDIT_EXPORT_LIMIT = 10000

CALIBRATION_STATUS_FILLS = {
    "Status": {
        CALIBRATION_EXPIRED: "FF6B6B",
        CALIBRATION_DUE_SOON: "FFEB3B",
        CALIBRATION_VALID: "4CAF50",
    },
}
OVERDUE_FILLS = {"Overdue": {"Yes": "FF6B6B"}}

SHEET_TITLES = {
    "equipment": "Equipment",
    "movements": "Movements",
    "calibration": "Calibration Status",
    "checked_out": "Checked Out",
    "maintenance": "Maintenance",
    "audit_log": "Audit Log",
    "customer_equipment": "Customer Equipment",
}


def _fmt_datetime(value: Optional[datetime]) -> str:
    return value.strftime("%Y-%m-%d %H:%M") if value else ""


def _fmt_date(value: Optional[date]) -> str:
    return value.isoformat() if value else ""


def _export(export_format: str, headers: list, rows: list, prefix: str, cell_fills: Optional[dict] = None):
    filename = f"{prefix}_{date.today().isoformat()}.{export_format}"
    if export_format == "csv":
        return generate_csv(headers, rows, filename)
    return generate_xlsx(headers, rows, filename, SHEET_TITLES[prefix], cell_fills)


@router.get("/equipment")
async def export_equipment(
    category: Optional[str] = None,
    status_filter: Optional[str] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("exports:read")),
    export_format: str = Query("xlsx", alias="format", pattern="^(xlsx|csv)$"),
):
    """Equipment register."""
    query = db.query(Equipment).outerjoin(Category, Equipment.category_id == Category.id)
    if category:
        query = query.filter(Category.name == category)
    if status_filter:
        query = query.filter(Equipment.status == status_filter)

    headers = [
        "Equipment ID", "Equipment Name", "Serial Number", "Category", "Subcategory",
        "Status", "Current Location", "Current Holder", "Quantity Tracked",
        "Available Qty", "Total Qty", "Unit", "Notes", "Created At",
    ]
    rows = [
        [
            e.equipment_id,
            e.equipment_name,
            e.serial_number or "",
            e.category.name if e.category else "",
            e.subcategory.name if e.subcategory else "",
            e.status,
            e.current_location.name if e.current_location else "",
            e.current_holder.full_name if e.current_holder else "",
            "Yes" if e.is_quantity_tracked else "No",
            e.available_quantity,
            e.total_quantity,
            e.unit or "",
            e.notes or "",
            _fmt_datetime(e.created_at),
        ]
        for e in query.order_by(Equipment.equipment_id).all()
    ]
    return _export(export_format, headers, rows, "equipment")


@router.get("/movements")
async def export_movements(
    equipment_id: Optional[int] = None,
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
    action: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("exports:read")),
    export_format: str = Query("xlsx", alias="format", pattern="^(xlsx|csv)$"),
):
    """Movement history."""
    query = db.query(EquipmentMovement)
    if equipment_id:
        query = query.filter(EquipmentMovement.equipment_id == equipment_id)
    if from_date:
        query = query.filter(EquipmentMovement.created_at >= datetime.combine(from_date, time.min))
    if to_date:
        query = query.filter(EquipmentMovement.created_at <= datetime.combine(to_date, time.max))
    if action:
        query = query.filter(EquipmentMovement.action == action.upper())

    headers = [
        "Equipment ID", "Equipment Name", "Action", "Quantity", "Location",
        "Personnel", "Customer", "Notes", "Date/Time", "Recorded By",
    ]
    rows = [
        [
            m.equipment.equipment_id,
            m.equipment.equipment_name,
            m.action,
            m.quantity,
            m.location.name if m.location else "",
            m.personnel.full_name if m.personnel else "",
            m.customer.display_name if m.customer else "",
            m.notes or "",
            _fmt_datetime(m.created_at),
            m.creator.name if m.creator else "",
        ]
        for m in query.order_by(EquipmentMovement.created_at.desc(), EquipmentMovement.id.desc()).all()
    ]
    return _export(export_format, headers, rows, "movements")


@router.get("/calibration")
async def export_calibration(
    status_filter: Optional[str] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("exports:read")),
    export_format: str = Query("xlsx", alias="format", pattern="^(xlsx|csv)$"),
):
    """Calibration status of all equipment that requires it."""
    headers = [
        "Equipment ID", "Equipment Name", "Serial Number", "Category", "Last Calibration",
        "Expiry Date", "Certificate No.", "Provider", "Status", "Days Until Expiry",
    ]
    rows = [
        [
            r["equipment_id"],
            r["equipment_name"],
            r["serial_number"] or "",
            r["category_name"] or "",
            r["last_calibration_date"] or "",
            r["expiry_date"] or "",
            r["certificate_number"] or "",
            r["calibration_provider"] or "",
            r["calibration_status"],
            "" if r["days_until_expiry"] is None else r["days_until_expiry"],
        ]
        for r in calibration_status_rows(db, date.today(), status_filter)
    ]
    return _export(export_format, headers, rows, "calibration", CALIBRATION_STATUS_FILLS)


@router.get("/checked-out")
async def export_checked_out(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("exports:read")),
    export_format: str = Query("xlsx", alias="format", pattern="^(xlsx|csv)$"),
):
    """Equipment currently out, with days out and overdue flag."""
    now = datetime.utcnow()
    threshold = get_settings().inventory.overdue_threshold_days

    equipment = (
        db.query(Equipment)
        .filter(Equipment.status == STATUS_CHECKED_OUT)
        .order_by(Equipment.last_action_timestamp)
        .all()
    )

    headers = [
        "Equipment ID", "Equipment Name", "Serial Number", "Category", "Holder",
        "Employee ID", "Location", "Customer", "Checked Out", "Days Out", "Overdue",
    ]
    rows = [
        [
            e.equipment_id,
            e.equipment_name,
            e.serial_number or "",
            e.category.name if e.category else "",
            e.current_holder.full_name if e.current_holder else "",
            e.current_holder.employee_id if e.current_holder else "",
            e.current_location.name if e.current_location else "",
            e.current_customer.display_name if e.current_customer else "",
            _fmt_datetime(e.last_action_timestamp),
            checkout_days_out(e.last_action_timestamp, now),
            "Yes" if is_checkout_overdue(e.status, e.last_action_timestamp, now, threshold) else "No",
        ]
        for e in equipment
    ]
    return _export(export_format, headers, rows, "checked_out", OVERDUE_FILLS)


@router.get("/maintenance")
async def export_maintenance(
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
    status_filter: Optional[str] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("exports:read")),
    export_format: str = Query("xlsx", alias="format", pattern="^(xlsx|csv)$"),
):
    """Maintenance log."""
    query = db.query(MaintenanceLog)
    if from_date:
        query = query.filter(MaintenanceLog.maintenance_date >= from_date)
    if to_date:
        query = query.filter(MaintenanceLog.maintenance_date <= to_date)
    if status_filter:
        query = query.filter(MaintenanceLog.status == status_filter)

    headers = [
        "Equipment ID", "Equipment Name", "Maintenance Type", "Maintenance Date",
        "Completed Date", "Description", "Performed By", "Service Provider", "Cost",
        "Currency", "Downtime (Days)", "Status", "Work Order", "Next Maintenance",
    ]
    rows = [
        [
            m.equipment.equipment_id,
            m.equipment.equipment_name,
            m.maintenance_type.name if m.maintenance_type else "",
            _fmt_date(m.maintenance_date),
            _fmt_date(m.completed_date),
            m.description,
            m.performed_by or "",
            m.service_provider or "",
            "" if m.cost is None else float(m.cost),
            m.currency,
            "" if m.downtime_days is None else m.downtime_days,
            m.status,
            m.work_order_number or "",
            _fmt_date(m.next_maintenance_date),
        ]
        for m in query.order_by(MaintenanceLog.maintenance_date.desc()).all()
    ]
    return _export(export_format, headers, rows, "maintenance")


@router.get("/audit")
async def export_audit(
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
    table_name: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("audit:read")),
    export_format: str = Query("xlsx", alias="format", pattern="^(xlsx|csv)$"),
):
    """Audit log, newest first."""
    query = db.query(AuditLog)
    if from_date:
        query = query.filter(AuditLog.created_at >= datetime.combine(from_date, time.min))
    if to_date:
        query = query.filter(AuditLog.created_at <= datetime.combine(to_date, time.max))
    if table_name:
        query = query.filter(AuditLog.table_name == table_name)

    entries = query.order_by(AuditLog.created_at.desc()).limit(AUDIT_EXPORT_LIMIT).all()

    headers = ["Date/Time", "Table", "Record ID", "Action", "User", "Changed Fields", "IP Address"]
    rows = []
    for entry in entries:
        data = entry.to_dict()
        rows.append([
            _fmt_datetime(entry.created_at),
            entry.table_name,
            entry.record_id,
            entry.action,
            entry.user_name or "System",
            ", ".join(data["changed_fields"]),
            entry.ip_address or "",
        ])
    return _export(export_format, headers, rows, "audit_log")


@router.get("/customer-equipment")
async def export_customer_equipment(
    customer_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("exports:read")),
    export_format: str = Query("xlsx", alias="format", pattern="^(xlsx|csv)$"),
):
    """Equipment currently checked out to customer sites."""
    today = date.today()

    query = db.query(Equipment).filter(
        Equipment.status == STATUS_CHECKED_OUT,
        Equipment.current_customer_id.isnot(None),
    )
    if customer_id:
        query = query.filter(Equipment.current_customer_id == customer_id)

    equipment = sorted(
        query.all(),
        key=lambda e: (e.current_customer.display_name, e.equipment_name),
    )

    headers = [
        "Customer", "City", "Equipment ID", "Equipment Name", "Serial Number",
        "Category", "Checked Out By", "Since", "Days",
    ]
    rows = [
        [
            e.current_customer.display_name,
            e.current_customer.shipping_city or "",
            e.equipment_id,
            e.equipment_name,
            e.serial_number or "",
            e.category.name if e.category else "",
            e.current_holder.full_name if e.current_holder else "",
            _fmt_datetime(e.last_action_timestamp),
            (today - e.last_action_timestamp.date()).days if e.last_action_timestamp else "",
        ]
        for e in equipment
    ]
    return _export(export_format, headers, rows, "customer_equipment")
