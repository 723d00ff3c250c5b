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


"""In-app notification routes."""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.database import get_db
from app.middleware.auth import get_current_user, require_permission
from app.models.notification import Notification
from app.models.user import User
from app.services.notifications import (
    generate_system_notifications,
    get_or_create_settings,
    send_alert_digests,
)

router = APIRouter(prefix="/api/notifications")


class NotificationSettingsUpdate(BaseModel):
    """Notification preferences update request."""

    calibration_alerts: Optional[bool] = None
    calibration_alert_days: Optional[int] = Field(None, ge=1, le=365)
    overdue_alerts: Optional[bool] = None
    low_stock_alerts: Optional[bool] = None
    maintenance_alerts: Optional[bool] = None
    maintenance_alert_days: Optional[int] = Field(None, ge=1, le=365)
    reservation_alerts: Optional[bool] = None
    email_enabled: Optional[bool] = None


def _visible_to(user: User):
    return or_(Notification.user_id == user.id, Notification.user_id.is_(None))


def _get_notification(db: Session, notification_id: int, user: User) -> Notification:
    notification = (
        db.query(Notification)
        .filter(Notification.id == notification_id, _visible_to(user))
        .first()
    )
    if not notification:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    return notification


@router.get("")
async def list_notifications(
    is_read: Optional[bool] = None,
    notification_type: Optional[str] = Query(None, alias="type"),
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """The user's own notifications plus broadcasts, newest first."""
    query = db.query(Notification).filter(_visible_to(current_user))

    if is_read is not None:
        query = query.filter(Notification.is_read == is_read)
    if notification_type:
        query = query.filter(Notification.notification_type == notification_type)

    notifications = (
        query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()
    )

    return {"success": True, "notifications": [n.to_dict() for n in notifications]}


@router.get("/unread-count")
async def get_unread_count(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    count = (
        db.query(Notification)
        .filter(_visible_to(current_user), Notification.is_read == False)  # noqa: E712
        .count()
    )
    return {"success": True, "count": count}


@router.patch("/mark-all-read")
async def mark_all_read(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Mark every visible unread notification as read."""
    updated = (
        db.query(Notification)
        .filter(_visible_to(current_user), Notification.is_read == False)  # noqa: E712
        .update({"is_read": True, "read_at": datetime.utcnow()}, synchronize_session=False)
    )
    db.commit()

    return {"success": True, "updated": updated}


@router.patch("/{notification_id}/read")
async def mark_read(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    notification = _get_notification(db, notification_id, current_user)

    if not notification.is_read:
        notification.is_read = True
        notification.read_at = datetime.utcnow()
        db.commit()
        db.refresh(notification)

    return {"success": True, "notification": notification.to_dict()}


@router.delete("/{notification_id}")
async def delete_notification(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Delete a notification. Broadcasts need the generate permission."""
    notification = _get_notification(db, notification_id, current_user)

    if notification.user_id is None and not current_user.has_permission("notifications:generate"):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Cannot delete a broadcast notification",
        )

    db.delete(notification)
    db.commit()

    return {"success": True, "message": "Notification deleted"}


@router.post("/generate")
async def generate_notifications(
    send_email: bool = False,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("notifications:generate")),
):
    """Run the system alert checks now."""
    created = generate_system_notifications(db)

    email_stats = None
    if send_email:
        email_stats = await send_alert_digests(db, created)

    return {
        "success": True,
        "created": len(created),
        "notifications": created,
        "email": email_stats,
    }


@router.get("/settings")
async def get_notification_settings(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    settings = get_or_create_settings(db, current_user)
    return {"success": True, "settings": settings.to_dict()}


@router.put("/settings")
async def update_notification_settings(
    data: NotificationSettingsUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Update the current user's notification preferences."""
    settings = get_or_create_settings(db, current_user)

    for field, value in data.model_dump(exclude_none=True).items():
        setattr(settings, field, value)

    if data.email_enabled is not None:
        current_user.email_notifications_enabled = data.email_enabled

    db.commit()
    db.refresh(settings)

    return {"success": True, "settings": settings.to_dict(), "message": "Settings saved"}
