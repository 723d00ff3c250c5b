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


"""Audit log routes."""

from datetime import date, datetime, time, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.database import get_db
from app.middleware.auth import require_permission
from app.models.audit import AuditLog
from app.models.user import User

router = APIRouter(prefix="/api/audit")


def _filtered(
    db: Session,
    table_name: Optional[str] = None,
    record_id: Optional[int] = None,
    action: Optional[str] = None,
    user_id: Optional[int] = None,
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
):
    query = db.query(AuditLog)
    if table_name:
        query = query.filter(AuditLog.table_name == table_name)
    if record_id:
        query = query.filter(AuditLog.record_id == record_id)
    if action:
        query = query.filter(AuditLog.action == action.upper())
    if user_id:
        query = query.filter(AuditLog.user_id == user_id)
    if from_date:
        query = query.filter(AuditLog.created_at >= datetime.combine(from_date, time.min))
    if to_date:
        query = query.filter(AuditLog.created_at <= datetime.combine(to_date, time.max))
    return query


@router.get("")
async def list_audit_log(
    table_name: Optional[str] = None,
    record_id: Optional[int] = None,
    action: Optional[str] = None,
    user_id: Optional[int] = None,
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("audit:read")),
):
    """Paginated audit entries, newest first."""
    query = _filtered(db, table_name, record_id, action, user_id, from_date, to_date)

    total = query.count()
    entries = (
        query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )

    return {
        "success": True,
        "items": [e.to_dict() for e in entries],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


@router.get("/summary/stats")
async def get_audit_stats(
    days: int = Query(30, ge=1, le=365),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("audit:read")),
):
    """Activity breakdown over the last ``days`` days."""
    since = datetime.combine(date.today() - timedelta(days=days), time.min)
    count = func.count(AuditLog.id).label("count")

    by_action = (
        db.query(AuditLog.action, count)
        .filter(AuditLog.created_at >= since)
        .group_by(AuditLog.action)
        .order_by(count.desc())
        .all()
    )

    by_table = (
        db.query(AuditLog.table_name, count)
        .filter(AuditLog.created_at >= since)
        .group_by(AuditLog.table_name)
        .order_by(count.desc())
        .limit(10)
        .all()
    )

    by_user = (
        db.query(AuditLog.user_id, AuditLog.user_name, count)
        .filter(AuditLog.created_at >= since)
        .group_by(AuditLog.user_id, AuditLog.user_name)
        .order_by(count.desc())
        .limit(10)
        .all()
    )

    day = func.date(AuditLog.created_at).label("date")
    daily = (
        db.query(day, count)
        .filter(AuditLog.created_at >= since)
        .group_by(day)
        .order_by(day)
        .all()
    )

    return {
        "success": True,
        "days": days,
        "by_action": [{"action": row.action, "count": row.count} for row in by_action],
        "by_table": [{"table_name": row.table_name, "count": row.count} for row in by_table],
        "by_user": [
            {"user_id": row.user_id, "user_name": row.user_name or "System", "count": row.count}
            for row in by_user
        ],
        "daily_activity": [{"date": str(row.date), "count": row.count} for row in daily],
    }


@router.get("/{table_name}/{record_id}")
async def get_record_history(
    table_name: str,
    record_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("audit:read")),
):
    """Full change history of one record, oldest first."""
    entries = (
        _filtered(db, table_name=table_name, record_id=record_id)
        .order_by(AuditLog.created_at, AuditLog.id)
        .all()
    )
    return {"success": True, "history": [e.to_dict() for e in entries]}
