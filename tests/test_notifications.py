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

"""Tests for system alerts and the notification inbox."""

import asyncio
from datetime import datetime, timedelta

import pytest

from app.models.calibration import CalibrationRecord
from app.models.notification import Notification
from app.services.notifications import generate_system_notifications, send_alert_digests

NOW = datetime(2025, 6, 15, 9, 0, 0)
TODAY = NOW.date()


@pytest.fixture
def alerting_inventory(db_session, make_equipment, calibrated_category, consumable, personnel):
    """One item per alert type."""
    expired = make_equipment(equipment_id="GD-EXP", category_id=calibrated_category.id)
    db_session.add(
        CalibrationRecord(
            equipment_id=expired.id,
            calibration_date=TODAY - timedelta(days=370),
            expiry_date=TODAY - timedelta(days=3),
        )
    )

    make_equipment(
        equipment_id="OUT-LONG",
        status="Checked Out",
        current_holder_id=personnel.id,
        last_action="OUT",
        last_action_timestamp=NOW - timedelta(days=20),
    )

    consumable.available_quantity = 5
    make_equipment(equipment_id="SVC", next_maintenance_date=TODAY + timedelta(days=3))
    db_session.commit()


class TestAlertGeneration:
    def test_generates_one_alert_per_condition(self, db_session, alerting_inventory):
        created = generate_system_notifications(db_session, TODAY, NOW)

        by_type = {alert["type"]: alert for alert in created}
        assert set(by_type) == {"calibration_expiry", "overdue_checkout", "low_stock", "maintenance_due"}
        assert by_type["calibration_expiry"]["severity"] == "critical"
        assert by_type["calibration_expiry"]["equipment_id"] == "GD-EXP"
        assert "20 days by Sipho Dlamini" in by_type["overdue_checkout"]["message"]
        assert by_type["low_stock"]["equipment_id"] == "CON-001"
        assert by_type["maintenance_due"]["severity"] == "info"

        # Generated alerts are broadcasts
        assert db_session.query(Notification).filter(Notification.user_id.isnot(None)).count() == 0

    def test_same_day_rerun_creates_nothing(self, db_session, alerting_inventory):
        generate_system_notifications(db_session, TODAY, NOW)
        assert generate_system_notifications(db_session, TODAY, NOW + timedelta(hours=2)) == []
        assert db_session.query(Notification).count() == 4

    def test_rerun_with_only_date_creates_nothing(self, db_session, alerting_inventory):
        first = generate_system_notifications(db_session, TODAY)
        assert len(first) == 4
        assert generate_system_notifications(db_session, TODAY) == []

        stamps = [n.created_at.date() for n in db_session.query(Notification).all()]
        assert stamps == [TODAY] * 4

    def test_next_day_alerts_again(self, db_session, alerting_inventory):
        generate_system_notifications(db_session, TODAY, NOW)
        tomorrow = NOW + timedelta(days=1)
        assert len(generate_system_notifications(db_session, tomorrow.date(), tomorrow)) == 4

    def test_old_expiry_outside_lookback_is_ignored(self, db_session, make_equipment, calibrated_category):
        stale = make_equipment(equipment_id="GD-OLD", category_id=calibrated_category.id)
        db_session.add(
            CalibrationRecord(
                equipment_id=stale.id,
                calibration_date=TODAY - timedelta(days=500),
                expiry_date=TODAY - timedelta(days=30),
            )
        )
        db_session.commit()
        assert generate_system_notifications(db_session, TODAY, NOW) == []

    def test_recent_checkout_is_not_overdue(self, db_session, make_equipment, personnel):
        make_equipment(
            status="Checked Out",
            current_holder_id=personnel.id,
            last_action_timestamp=NOW - timedelta(days=2),
        )
        assert generate_system_notifications(db_session, TODAY, NOW) == []

    def test_digest_skipped_when_email_disabled(self, db_session, alerting_inventory):
        created = generate_system_notifications(db_session, TODAY, NOW)
        stats = asyncio.run(send_alert_digests(db_session, created))
        assert stats == {"sent": 0, "failed": 0, "skipped": 4}


class TestNotificationInbox:
    @pytest.fixture
    def inbox(self, db_session, tech_user, manager_user):
        rows = [
            Notification(notification_type="system", title="Broadcast", message="All users"),
            Notification(user_id=tech_user.id, notification_type="reservation", title="Mine", message="For tech"),
            Notification(user_id=manager_user.id, notification_type="reservation", title="Theirs", message="For manager"),
        ]
        db_session.add_all(rows)
        db_session.commit()
        return rows

    def test_lists_own_and_broadcast(self, client, tech_headers, inbox):
        titles = {n["title"] for n in client.get("/api/notifications", headers=tech_headers).json()["notifications"]}
        assert titles == {"Broadcast", "Mine"}

        assert client.get("/api/notifications/unread-count", headers=tech_headers).json()["count"] == 2

    def test_filter_by_type(self, client, tech_headers, inbox):
        response = client.get("/api/notifications", params={"type": "reservation"}, headers=tech_headers)
        assert [n["title"] for n in response.json()["notifications"]] == ["Mine"]

    def test_mark_read(self, client, tech_headers, inbox):
        response = client.patch(f"/api/notifications/{inbox[1].id}/read", headers=tech_headers)
        assert response.json()["notification"]["is_read"] is True
        assert client.get("/api/notifications/unread-count", headers=tech_headers).json()["count"] == 1

    def test_cannot_touch_other_users_notification(self, client, tech_headers, inbox):
        assert client.patch(f"/api/notifications/{inbox[2].id}/read", headers=tech_headers).status_code == 404

    def test_mark_all_read(self, client, tech_headers, inbox):
        assert client.patch("/api/notifications/mark-all-read", headers=tech_headers).json()["updated"] == 2
        assert client.get("/api/notifications/unread-count", headers=tech_headers).json()["count"] == 0

    def test_broadcast_delete_needs_permission(self, client, tech_headers, manager_headers, inbox):
        assert client.delete(f"/api/notifications/{inbox[0].id}", headers=tech_headers).status_code == 403
        assert client.delete(f"/api/notifications/{inbox[1].id}", headers=tech_headers).status_code == 200
        assert client.delete(f"/api/notifications/{inbox[0].id}", headers=manager_headers).status_code == 200

    def test_generate_endpoint(self, client, manager_headers, tech_headers, consumable, db_session):
        consumable.available_quantity = 1
        db_session.commit()

        assert client.post("/api/notifications/generate", headers=tech_headers).status_code == 403

        response = client.post("/api/notifications/generate", headers=manager_headers)
        assert response.status_code == 200
        assert response.json()["created"] == 1
        assert response.json()["email"] is None


class TestNotificationSettings:
    def test_defaults_created_on_first_read(self, client, tech_headers):
        settings = client.get("/api/notifications/settings", headers=tech_headers).json()["settings"]
        assert settings["calibration_alert_days"] == 30
        assert settings["overdue_alerts"] is True

    def test_update(self, client, db_session, tech_headers, tech_user):
        response = client.put(
            "/api/notifications/settings",
            json={"low_stock_alerts": False, "email_enabled": False},
            headers=tech_headers,
        )
        assert response.status_code == 200
        assert response.json()["settings"]["low_stock_alerts"] is False

        db_session.refresh(tech_user)
        assert tech_user.email_notifications_enabled is False

    def test_days_validated(self, client, tech_headers):
        response = client.put(
            "/api/notifications/settings",
            json={"calibration_alert_days": 0},
            headers=tech_headers,
        )
        assert response.status_code == 422
