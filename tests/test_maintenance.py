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

"""Tests for maintenance records and due dates."""

from datetime import date, timedelta

import pytest

from app.models.maintenance import MaintenanceType


@pytest.fixture
def service_type(db_session):
    return db_session.query(MaintenanceType).filter(MaintenanceType.name == "Service").one()


@pytest.fixture
def add_record(client, tech_headers, equipment, service_type):
    def _add(**overrides):
        payload = {
            "equipment_id": equipment.id,
            "maintenance_type_id": service_type.id,
            "maintenance_date": date.today().isoformat(),
            "description": "Annual service",
        }
        payload.update(overrides)
        return client.post("/api/maintenance", json=payload, headers=tech_headers)

    return _add


class TestMaintenanceRecords:
    def test_seeded_types(self, client, viewer_headers):
        names = [t["name"] for t in client.get("/api/maintenance/types", headers=viewer_headers).json()["types"]]
        assert "Repair" in names
        assert "Inspection" in names

    def test_create_defaults(self, add_record):
        response = add_record(cost=250.5)
        assert response.status_code == 200
        record = response.json()["record"]
        assert record["status"] == "scheduled"
        assert record["currency"] == "ZAR"
        assert record["cost"] == 250.5
        assert record["maintenance_type"] == "Service"

    def test_create_moves_next_maintenance_date(self, client, db_session, add_record, equipment, tech_headers):
        next_date = date.today() + timedelta(days=180)
        add_record(next_maintenance_date=next_date.isoformat())

        db_session.refresh(equipment)
        assert equipment.next_maintenance_date == next_date

    def test_invalid_status(self, add_record):
        assert add_record(status="paused").status_code == 400

    def test_unknown_type(self, add_record):
        assert add_record(maintenance_type_id=999).status_code == 400

    def test_negative_cost_rejected(self, add_record):
        assert add_record(cost=-1).status_code == 422

    def test_complete(self, client, tech_headers, add_record):
        record_id = add_record(notes="Booked with vendor").json()["record"]["id"]
        response = client.patch(
            f"/api/maintenance/{record_id}/complete",
            json={"notes": "Replaced seals"},
            headers=tech_headers,
        )
        assert response.status_code == 200
        record = response.json()["record"]
        assert record["status"] == "completed"
        assert record["completed_date"] == date.today().isoformat()
        assert record["notes"] == "Booked with vendor\nReplaced seals"

    def test_cancelled_cannot_complete(self, client, tech_headers, add_record):
        record_id = add_record(status="cancelled").json()["record"]["id"]
        response = client.patch(f"/api/maintenance/{record_id}/complete", json={}, headers=tech_headers)
        assert response.status_code == 400

    def test_list_filters(self, client, tech_headers, add_record):
        add_record(status="completed", description="Fixed display")
        add_record(description="Battery swap")

        response = client.get("/api/maintenance", params={"status": "completed"}, headers=tech_headers)
        assert [r["description"] for r in response.json()["records"]] == ["Fixed display"]

        response = client.get("/api/maintenance", params={"search": "battery"}, headers=tech_headers)
        assert response.json()["total"] == 1

    def test_delete(self, client, tech_headers, add_record):
        record_id = add_record().json()["record"]["id"]
        assert client.delete(f"/api/maintenance/{record_id}", headers=tech_headers).status_code == 200
        assert client.get(f"/api/maintenance/{record_id}", headers=tech_headers).status_code == 404


class TestMaintenanceDue:
    def test_due_window(self, client, viewer_headers, make_equipment):
        today = date.today()
        make_equipment(equipment_id="LATE", next_maintenance_date=today - timedelta(days=2))
        make_equipment(equipment_id="SOON", next_maintenance_date=today + timedelta(days=5))
        make_equipment(equipment_id="LATER", next_maintenance_date=today + timedelta(days=60))
        make_equipment(equipment_id="GONE", next_maintenance_date=today - timedelta(days=9), status="Retired")

        rows = client.get("/api/maintenance/due", params={"days": 30}, headers=viewer_headers).json()["equipment"]
        assert [(r["equipment_id"], r["maintenance_status"]) for r in rows] == [
            ("LATE", "overdue"),
            ("SOON", "due_soon"),
        ]
        assert rows[0]["days_until_due"] == -2

    def test_summary(self, client, viewer_headers, make_equipment, add_record):
        today = date.today()
        make_equipment(equipment_id="LATE", next_maintenance_date=today - timedelta(days=2))
        add_record(cost=100, status="completed")
        add_record(cost=50)

        data = client.get("/api/maintenance/summary", headers=viewer_headers).json()
        assert data["overdue"] == 1
        assert data["cost_this_month"] == 150.0
        assert {row["status"]: row["count"] for row in data["by_status"]} == {"completed": 1, "scheduled": 1}
