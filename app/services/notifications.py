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


"""System alert generation and email digests."""

import logging
from datetime import date, datetime, time, timedelta
from typing import Dict, List, Optional

from sqlalchemy.orm import Session, joinedload

from app.config import get_settings
from app.models.equipment import STATUS_CHECKED_OUT, STATUS_RETIRED, Equipment
from app.models.notification import Notification, NotificationSettings
from app.models.user import User
from app.services.calibration import latest_calibrations
from app.services.email import get_email_service
from app.services.status import checkout_days_out, days_until, is_checkout_overdue

logger = logging.getLogger(__name__)


def _already_notified(db: Session, notification_type: str, equipment_id: int, today: date) -> bool:
    """True when this alert has already been raised for the equipment today."""
    day_start = datetime.combine(today, time.min)
    day_end = day_start + timedelta(days=1)
    return (
        db.query(Notification.id)
        .filter(
            Notification.notification_type == notification_type,
            Notification.reference_type == "equipment",
            Notification.reference_id == equipment_id,
            Notification.created_at >= day_start,
            Notification.created_at < day_end,
        )
        .first()
        is not None
    )


def _add(
    db: Session,
    created: List[dict],
    notification_type: str,
    equipment: Equipment,
    title: str,
    message: str,
    severity: str,
    today: date,
    now: datetime,
) -> None:
    if _already_notified(db, notification_type, equipment.id, today):
        return

    db.add(
        Notification(
            notification_type=notification_type,
            title=title,
            message=message,
            severity=severity,
            reference_type="equipment",
            reference_id=equipment.id,
            created_at=now,
        )
    )
    created.append(
        {
            "type": notification_type,
            "equipment_id": equipment.equipment_id,
            "title": title,
            "message": message,
            "severity": severity,
        }
    )


def _calibration_alerts(db, created, today, now):
    config = get_settings().notification
    horizon = today + timedelta(days=config.calibration_alert_days)
    lookback = today - timedelta(days=config.calibration_expired_lookback_days)

    records = latest_calibrations(db)
    if not records:
        return

    equipment_by_id = {
        e.id: e
        for e in db.query(Equipment)
        .filter(Equipment.id.in_(list(records.keys())), Equipment.status != STATUS_RETIRED)
        .all()
    }

    for equipment_id, record in records.items():
        equipment = equipment_by_id.get(equipment_id)
        if equipment is None or not (lookback <= record.expiry_date <= horizon):
            continue

        days_left = days_until(record.expiry_date, today)
        if days_left < 0:
            title = f"Calibration EXPIRED: {equipment.equipment_id}"
            message = f"{equipment.equipment_name} calibration expired {abs(days_left)} days ago."
            severity = "critical"
        elif days_left == 0:
            title = f"Calibration expires TODAY: {equipment.equipment_id}"
            message = f"{equipment.equipment_name} calibration expires today!"
            severity = "critical"
        else:
            title = f"Calibration due soon: {equipment.equipment_id}"
            message = f"{equipment.equipment_name} calibration expires in {days_left} days."
            severity = "warning"

        _add(db, created, "calibration_expiry", equipment, title, message, severity, today, now)


def _overdue_alerts(db, created, today, now):
    threshold = get_settings().inventory.overdue_threshold_days
    checked_out = (
        db.query(Equipment)
        .options(joinedload(Equipment.current_holder))
        .filter(Equipment.status == STATUS_CHECKED_OUT)
        .all()
    )

    for equipment in checked_out:
        if not is_checkout_overdue(equipment.status, equipment.last_action_timestamp, now, threshold):
            continue
        days_out = checkout_days_out(equipment.last_action_timestamp, now)
        holder = equipment.current_holder.full_name if equipment.current_holder else "Unknown"
        _add(
            db,
            created,
            "overdue_checkout",
            equipment,
            f"Overdue: {equipment.equipment_id}",
            f"{equipment.equipment_name} has been checked out for {days_out} days by {holder}.",
            "warning",
            today,
            now,
        )


def _low_stock_alerts(db, created, today, now):
    low_stock = (
        db.query(Equipment)
        .filter(
            Equipment.is_quantity_tracked.is_(True),
            Equipment.reorder_level > 0,
            Equipment.available_quantity <= Equipment.reorder_level,
            Equipment.status != STATUS_RETIRED,
        )
        .all()
    )

    for equipment in low_stock:
        _add(
            db,
            created,
            "low_stock",
            equipment,
            f"Low Stock: {equipment.equipment_id}",
            (
                f"{equipment.equipment_name} has only {equipment.available_quantity} "
                f"{equipment.unit} remaining (reorder level: {equipment.reorder_level})."
            ),
            "warning",
            today,
            now,
        )


def _maintenance_alerts(db, created, today, now):
    horizon = today + timedelta(days=get_settings().notification.maintenance_alert_days)
    due = (
        db.query(Equipment)
        .filter(
            Equipment.next_maintenance_date.isnot(None),
            Equipment.next_maintenance_date <= horizon,
            Equipment.status != STATUS_RETIRED,
        )
        .all()
    )

    for equipment in due:
        days_left = days_until(equipment.next_maintenance_date, today)
        if days_left < 0:
            title = f"Maintenance OVERDUE: {equipment.equipment_id}"
            message = f"{equipment.equipment_name} maintenance is overdue by {abs(days_left)} days."
            severity = "critical"
        else:
            title = f"Maintenance due: {equipment.equipment_id}"
            message = f"{equipment.equipment_name} maintenance is due in {days_left} days."
            severity = "info"
        _add(db, created, "maintenance_due", equipment, title, message, severity, today, now)


def generate_system_notifications(
    db: Session,
    today: Optional[date] = None,
    now: Optional[datetime] = None,
) -> List[dict]:
    """Raise calibration, overdue, low stock and maintenance alerts.

    Each alert is created at most once per type and equipment per day.

    Returns:
        Summaries of the notifications created by this run.
    """
    if today is None:
        today = now.date() if now else date.today()
    if now is None:
        # created_at must fall on `today` for the per-day duplicate check
        now = datetime.combine(today, datetime.now().time())
    created: List[dict] = []

    _calibration_alerts(db, created, today, now)
    _overdue_alerts(db, created, today, now)
    _low_stock_alerts(db, created, today, now)
    _maintenance_alerts(db, created, today, now)

    db.commit()

    logger.info("Generated %d system notifications", len(created))
    return created


def get_or_create_settings(db: Session, user: User) -> NotificationSettings:
    """Notification settings for a user, created with defaults on first use."""
    settings = (
        db.query(NotificationSettings).filter(NotificationSettings.user_id == user.id).first()
    )
    if settings is None:
        config = get_settings().notification
        settings = NotificationSettings(
            user_id=user.id,
            calibration_alert_days=config.calibration_alert_days,
            maintenance_alert_days=config.maintenance_alert_days,
            email_enabled=user.email_notifications_enabled,
        )
        db.add(settings)
        db.commit()
        db.refresh(settings)
    return settings


async def send_alert_digests(db: Session, alerts: List[dict]) -> Dict[str, int]:
    """Email newly generated alerts to users who opted in.

    Returns:
        Statistics about sent digests.
    """
    settings = get_settings()
    stats = {"sent": 0, "failed": 0, "skipped": 0}

    if not alerts:
        return stats

    if not settings.email.enabled or not settings.notification.email_digest_enabled:
        stats["skipped"] = len(alerts)
        return stats

    email_service = get_email_service()
    users = (
        db.query(User)
        .filter(User.is_active.is_(True), User.email_notifications_enabled.is_(True))
        .all()
    )

    for user in users:
        preferences = user.notification_settings
        if preferences is not None and not preferences.email_enabled:
            stats["skipped"] += 1
            continue

        wanted = [a for a in alerts if preferences is None or preferences.wants(a["type"])]
        if not wanted:
            stats["skipped"] += 1
            continue

        try:
            await email_service.send_alert_digest(user.email, user.name, wanted)
            stats["sent"] += 1
        except Exception:
            logger.exception("Failed to send alert digest to %s", user.email)
            stats["failed"] += 1

    return stats
