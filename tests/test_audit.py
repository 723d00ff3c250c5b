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

"""Tests for the audit trail."""

from app.models.audit import AuditLog
from app.services.audit import changed_fields, log_audit


class TestChangedFields:
    def test_only_differing_keys(self):
        old = {"name": "A", "status": "Available", "qty": 1}
        new = {"name": "A", "status": "Retired", "qty": 2}
        assert changed_fields(old, new) == ["status", "qty"]

    def test_insert_and_delete_have_no_diff(self):
        assert changed_fields(None, {"a": 1}) is None
        assert changed_fields({"a": 1}, None) is None

    def test_log_audit_without_user(self, db_session):
        entry = log_audit(db_session, "equipment", 7, "UPDATE", None, {"a": 1}, {"a": 2})
        assert entry is not None
        data = entry.to_dict()
        assert data["user_id"] is None
        assert data["changed_fields"] == ["a"]
        assert data["old_values"] == {"a": 1}


class TestAuditApi:
    def _create_category(self, client, headers, name):
        return client.post("/api/categories", json={"name": name}, headers=headers).json()["category"]

    def test_list_requires_permission(self, client, tech_headers):
        assert client.get("/api/audit", headers=tech_headers).status_code == 403

    def test_list_and_filter(self, client, manager_headers, manager_user):
        self._create_category(client, manager_headers, "Ladders")
        self._create_category(client, manager_headers, "Harnesses")

        data = client.get("/api/audit", params={"table_name": "categories"}, headers=manager_headers).json()
        assert data["total"] == 2
        assert data["items"][0]["new_values"]["name"] == "Harnesses"
        assert data["items"][0]["user_name"] == manager_user.name

        page = client.get("/api/audit", params={"limit": 1, "offset": 1}, headers=manager_headers).json()
        assert len(page["items"]) == 1
        assert page["items"][0]["new_values"]["name"] == "Ladders"

        inserts = client.get("/api/audit", params={"action": "insert"}, headers=manager_headers).json()
        assert inserts["total"] == 2

    def test_record_history(self, client, manager_headers):
        category = self._create_category(client, manager_headers, "Scaffolding")
        client.put(f"/api/categories/{category['id']}", json={"description": "Tube and clamp"}, headers=manager_headers)
        client.delete(f"/api/categories/{category['id']}", headers=manager_headers)

        history = client.get(f"/api/audit/categories/{category['id']}", headers=manager_headers).json()["history"]
        assert [h["action"] for h in history] == ["INSERT", "UPDATE", "DELETE"]
        assert "description" in history[1]["changed_fields"]
        assert history[2]["new_values"] is None

    def test_stats(self, client, db_session, manager_headers):
        self._create_category(client, manager_headers, "Cones")
        log_audit(db_session, "equipment", 1, "UPDATE", None, {"a": 1}, {"a": 2})

        stats = client.get("/api/audit/summary/stats", params={"days": 7}, headers=manager_headers).json()
        assert {row["action"] for row in stats["by_action"]} == {"INSERT", "UPDATE"}
        assert "System" in {row["user_name"] for row in stats["by_user"]}
        assert sum(row["count"] for row in stats["daily_activity"]) == db_session.query(AuditLog).count()
