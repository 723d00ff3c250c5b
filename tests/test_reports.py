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

"""Tests for reports, exports and admin job control."""

import csv
import io
from datetime import date, datetime, timedelta

import pytest
from openpyxl import load_workbook

from app.models.auth import CronJob
from app.models.calibration import CalibrationRecord
from app.utils.helpers import XLSX_MEDIA_TYPE


@pytest.fixture
def stock(db_session, make_equipment, consumable, personnel, site):
    """Mixed inventory: available, recently out, long out, retired, low stock."""
    now = datetime.utcnow()
    make_equipment(equipment_id="AV-1", equipment_name="Drill")
    make_equipment(
        equipment_id="OUT-NEW",
        equipment_name="Grinder",
        status="Checked Out",
        current_holder_id=personnel.id,
        current_location_id=site.id,
        last_action="OUT",
        last_action_timestamp=now - timedelta(days=1),
    )
    make_equipment(
        equipment_id="OUT-OLD",
        equipment_name="Laser Level",
        status="Checked Out",
        current_holder_id=personnel.id,
        current_location_id=site.id,
        last_action="OUT",
        last_action_timestamp=now - timedelta(days=30),
    )
    make_equipment(equipment_id="RET-1", equipment_name="Old Saw", status="Retired")
    consumable.available_quantity = 10
    db_session.commit()


def _sheet(response):
    return load_workbook(io.BytesIO(response.content)).active


def _csv_rows(response):
    return list(csv.reader(io.StringIO(response.text)))


class TestReports:
    def test_dashboard(self, client, viewer_headers, stock):
        summary = client.get("/api/reports/dashboard", headers=viewer_headers).json()["summary"]
        assert summary["total_equipment"] == 3
        assert summary["available_equipment"] == 1
        assert summary["checked_out_equipment"] == 2
        assert summary["overdue_equipment"] == 1
        assert summary["total_consumables"] == 1
        assert summary["low_stock_consumables"] == 1
        assert summary["overdue_threshold_days"] == 14

    def test_checked_out_longest_first(self, client, viewer_headers, stock):
        rows = client.get("/api/reports/checked-out", headers=viewer_headers).json()["equipment"]
        assert [(r["equipment_id"], r["is_overdue"]) for r in rows] == [("OUT-OLD", True), ("OUT-NEW", False)]
        assert rows[0]["days_out"] == 30

    def test_overdue(self, client, viewer_headers, stock):
        rows = client.get("/api/reports/overdue", headers=viewer_headers).json()["equipment"]
        assert [r["equipment_id"] for r in rows] == ["OUT-OLD"]

    def test_overdue_threshold_from_settings(self, client, viewer_headers, stock, settings):
        settings.inventory.overdue_threshold_days = 60
        assert client.get("/api/reports/overdue", headers=viewer_headers).json()["equipment"] == []

    def test_available(self, client, viewer_headers, stock, equipment):
        rows = client.get("/api/reports/available", headers=viewer_headers).json()["equipment"]
        assert {r["equipment_id"] for r in rows} == {"AV-1", "MM-001"}
        assert all(r["calibration_status"] is None for r in rows)

    def test_low_stock_and_consumables(self, client, viewer_headers, stock):
        low = client.get("/api/reports/low-stock", headers=viewer_headers).json()["items"]
        assert [i["equipment_id"] for i in low] == ["CON-001"]

        items = client.get("/api/reports/consumables", headers=viewer_headers).json()["items"]
        assert items[0]["is_low_stock"] is True

    def test_low_stock_without_reorder_level_sorts_last(
        self, client, viewer_headers, stock, make_equipment, consumable_category
    ):
        make_equipment(
            equipment_id="CON-000",
            equipment_name="Gloves",
            category_id=consumable_category.id,
            is_serialized=False,
            serial_number=None,
            is_quantity_tracked=True,
            total_quantity=5,
            available_quantity=0,
            reorder_level=0,
        )
        low = client.get("/api/reports/low-stock", headers=viewer_headers).json()["items"]
        assert [i["equipment_id"] for i in low] == ["CON-001", "CON-000"]

    def test_by_category(self, client, viewer_headers, stock, category):
        rows = client.get("/api/reports/by-category", headers=viewer_headers).json()["categories"]
        tools = next(r for r in rows if r["category_id"] == category.id)
        assert tools["checked_out"] == 2
        assert tools["available"] == 1

    def test_movement_history_and_usage(self, client, tech_headers, equipment, site, location, personnel):
        for action, location_id in (("OUT", site.id), ("IN", location.id), ("OUT", site.id)):
            client.post(
                "/api/movements",
                json={
                    "equipment_id": equipment.id,
                    "action": action,
                    "location_id": location_id,
                    "personnel_id": personnel.id,
                },
                headers=tech_headers,
            )

        movements = client.get("/api/reports/movement-history", params={"action": "out"}, headers=tech_headers)
        assert len(movements.json()["movements"]) == 2

        exported = client.get("/api/reports/movement-history", params={"format": "csv"}, headers=tech_headers)
        assert exported.headers["content-type"].startswith("text/csv")
        assert len(_csv_rows(exported)) == 4

        usage = client.get("/api/reports/usage-stats", headers=tech_headers).json()
        assert usage["most_checked_out"][0]["checkout_count"] == 2
        assert usage["most_active_personnel"][0]["employee_id"] == "E001"


class TestExports:
    def test_equipment_workbook_by_default(self, client, tech_headers, stock):
        response = client.get("/api/exports/equipment", headers=tech_headers)
        assert response.status_code == 200
        assert response.headers["content-type"] == XLSX_MEDIA_TYPE
        assert "attachment; filename=equipment_" in response.headers["content-disposition"]
        assert response.headers["content-disposition"].endswith(".xlsx")

        sheet = _sheet(response)
        assert sheet.title == "Equipment"
        assert sheet["A1"].value == "Equipment ID"
        assert sheet["A1"].font.bold is True
        assert {row[0] for row in sheet.iter_rows(min_row=2, values_only=True)} == {
            "AV-1", "OUT-NEW", "OUT-OLD", "RET-1", "CON-001",
        }

    def test_equipment_csv(self, client, tech_headers, stock):
        response = client.get("/api/exports/equipment", params={"format": "csv"}, headers=tech_headers)
        assert response.headers["content-type"].startswith("text/csv")

        rows = _csv_rows(response)
        assert rows[0][0] == "Equipment ID"
        assert {r[0] for r in rows[1:]} == {"AV-1", "OUT-NEW", "OUT-OLD", "RET-1", "CON-001"}

    def test_unknown_format(self, client, tech_headers):
        response = client.get("/api/exports/equipment", params={"format": "pdf"}, headers=tech_headers)
        assert response.status_code == 422

    def test_equipment_export_status_filter(self, client, tech_headers, stock):
        response = client.get(
            "/api/exports/equipment", params={"status": "Retired", "format": "csv"}, headers=tech_headers
        )
        assert [r[0] for r in _csv_rows(response)[1:]] == ["RET-1"]

    def test_checked_out_export(self, client, tech_headers, stock):
        rows = list(_sheet(client.get("/api/exports/checked-out", headers=tech_headers)).iter_rows(values_only=True))
        assert len(rows) == 3
        assert rows[1][0] == "OUT-OLD"
        assert rows[1][-1] == "Yes"

    def test_calibration_status_colours(self, client, db_session, tech_headers, make_equipment, calibrated_category):
        today = date.today()
        expired = make_equipment(equipment_id="GD-EXP", category_id=calibrated_category.id)
        valid = make_equipment(equipment_id="GD-OK", category_id=calibrated_category.id)
        db_session.add_all([
            CalibrationRecord(
                equipment_id=expired.id,
                calibration_date=today - timedelta(days=370),
                expiry_date=today - timedelta(days=5),
            ),
            CalibrationRecord(
                equipment_id=valid.id,
                calibration_date=today - timedelta(days=10),
                expiry_date=today + timedelta(days=355),
            ),
        ])
        db_session.commit()

        sheet = _sheet(client.get("/api/exports/calibration", headers=tech_headers))
        status_column = [cell.value for cell in sheet[1]].index("Status") + 1
        fills = {
            sheet.cell(row=row, column=1).value: sheet.cell(row=row, column=status_column).fill.start_color.rgb
            for row in range(2, sheet.max_row + 1)
        }
        assert fills["GD-EXP"].endswith("FF6B6B")
        assert fills["GD-OK"].endswith("4CAF50")

    def test_viewer_cannot_export(self, client, viewer_headers):
        assert client.get("/api/exports/equipment", headers=viewer_headers).status_code == 403

    def test_audit_export_needs_audit_permission(self, client, tech_headers, manager_headers):
        assert client.get("/api/exports/audit", headers=tech_headers).status_code == 403
        assert client.get("/api/exports/audit", headers=manager_headers).status_code == 200


class TestAdmin:
    def test_requires_admin(self, client, manager_headers):
        assert client.get("/api/admin/cron-jobs", headers=manager_headers).status_code == 403

    def test_list_seeded_jobs(self, client, admin_headers):
        jobs = client.get("/api/admin/cron-jobs", headers=admin_headers).json()["jobs"]
        assert [j["job_key"] for j in jobs] == ["daily_cleanup", "daily_notifications"]

    def test_reschedule_validates_expression(self, client, db_session, admin_headers):
        job = db_session.query(CronJob).filter(CronJob.job_key == "daily_cleanup").one()

        bad = client.put(f"/api/admin/cron-jobs/{job.id}", json={"cron_schedule": "every day"}, headers=admin_headers)
        assert bad.status_code == 400

        good = client.put(f"/api/admin/cron-jobs/{job.id}", json={"cron_schedule": "0 3 * * *"}, headers=admin_headers)
        assert good.json()["job"]["cron_schedule"] == "0 3 * * *"

    def test_trigger_records_run(self, client, db_session, admin_headers):
        job = db_session.query(CronJob).filter(CronJob.job_key == "daily_notifications").one()
        response = client.post(f"/api/admin/cron-jobs/{job.id}/trigger", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["result"]["created"] == 0

        db_session.refresh(job)
        assert job.last_run_status == "success"
        assert job.total_runs == 1

    def test_disabled_job_cannot_be_triggered(self, client, db_session, admin_headers):
        job = db_session.query(CronJob).filter(CronJob.job_key == "daily_cleanup").one()
        client.put(f"/api/admin/cron-jobs/{job.id}", json={"is_enabled": False}, headers=admin_headers)
        assert client.post(f"/api/admin/cron-jobs/{job.id}/trigger", headers=admin_headers).status_code == 400

    def test_delete_old_tokens(self, client, admin_headers):
        response = client.post("/api/admin/tokens/delete-old", json={"days": 500}, headers=admin_headers)
        assert response.status_code == 400
