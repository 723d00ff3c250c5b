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

"""Tests for the equipment register and catalogue endpoints."""

from app.models.audit import AuditLog
from app.models.catalog import Location
from app.models.equipment import STATUS_RETIRED


class TestEquipmentApi:
    def test_create_equipment(self, client, db_session, manager_headers, category, subcategory, location):
        response = client.post(
            "/api/equipment",
            json={
                "equipment_id": "OSC-001",
                "equipment_name": "Oscilloscope",
                "category_id": category.id,
                "subcategory_id": subcategory.id,
                "serial_number": "TEK-1234",
                "current_location_id": location.id,
            },
            headers=manager_headers,
        )
        assert response.status_code == 200
        equipment = response.json()["equipment"]
        assert equipment["equipment_id"] == "OSC-001"
        assert equipment["status"] == "Available"
        assert equipment["subcategory_name"] == "Multimeters"

        audit = db_session.query(AuditLog).filter(AuditLog.table_name == "equipment").one()
        assert audit.action == "INSERT"
        assert audit.record_id == equipment["id"]

    def test_serial_required_for_serialised_items(self, client, manager_headers, category):
        response = client.post(
            "/api/equipment",
            json={"equipment_id": "X-1", "equipment_name": "No Serial", "category_id": category.id},
            headers=manager_headers,
        )
        assert response.status_code == 400
        assert "Serial number is required" in response.json()["detail"]

    def test_consumable_category_forces_stock_tracking(self, client, manager_headers, consumable_category):
        response = client.post(
            "/api/equipment",
            json={
                "equipment_id": "GLV-01",
                "equipment_name": "Gloves",
                "category_id": consumable_category.id,
                "total_quantity": 40,
                "reorder_level": 10,
            },
            headers=manager_headers,
        )
        assert response.status_code == 200
        equipment = response.json()["equipment"]
        assert equipment["is_quantity_tracked"] is True
        assert equipment["is_serialized"] is False
        assert equipment["available_quantity"] == 40

    def test_duplicate_code_rejected(self, client, manager_headers, category, equipment):
        response = client.post(
            "/api/equipment",
            json={
                "equipment_id": equipment.equipment_id,
                "equipment_name": "Copy",
                "category_id": category.id,
                "serial_number": "OTHER-1",
            },
            headers=manager_headers,
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Equipment ID already exists"

    def test_subcategory_must_match_category(self, client, manager_headers, subcategory, consumable_category):
        response = client.post(
            "/api/equipment",
            json={
                "equipment_id": "BAD-1",
                "equipment_name": "Mismatch",
                "category_id": consumable_category.id,
                "subcategory_id": subcategory.id,
            },
            headers=manager_headers,
        )
        assert response.status_code == 400

    def test_technician_cannot_create(self, client, tech_headers, category):
        response = client.post(
            "/api/equipment",
            json={"equipment_id": "T-1", "equipment_name": "T", "category_id": category.id, "serial_number": "S"},
            headers=tech_headers,
        )
        assert response.status_code == 403

    def test_get_detail_includes_derived_status(self, client, viewer_headers, equipment):
        response = client.get(f"/api/equipment/{equipment.id}", headers=viewer_headers)
        assert response.status_code == 200
        data = response.json()["equipment"]
        assert data["is_overdue"] is False
        assert data["calibration_status"] is None

    def test_lookup_by_code(self, client, viewer_headers, equipment):
        response = client.get("/api/equipment/by-code/MM-001", headers=viewer_headers)
        assert response.status_code == 200
        assert response.json()["equipment"]["id"] == equipment.id

        assert client.get("/api/equipment/by-code/NOPE", headers=viewer_headers).status_code == 404

    def test_list_filters(self, client, viewer_headers, equipment, consumable):
        response = client.get("/api/equipment", params={"search": "fluke"}, headers=viewer_headers)
        assert [e["equipment_id"] for e in response.json()["equipment"]] == ["MM-001"]

        response = client.get("/api/equipment", params={"is_consumable": True}, headers=viewer_headers)
        assert [e["equipment_id"] for e in response.json()["equipment"]] == ["CON-001"]

    def test_update_cannot_set_checked_out(self, client, manager_headers, equipment):
        response = client.put(
            f"/api/equipment/{equipment.id}",
            json={"status": "Checked Out"},
            headers=manager_headers,
        )
        assert response.status_code == 400

    def test_update_records_changed_fields(self, client, db_session, manager_headers, equipment):
        response = client.put(
            f"/api/equipment/{equipment.id}",
            json={"equipment_name": "Fluke 87V Max"},
            headers=manager_headers,
        )
        assert response.status_code == 200
        assert response.json()["equipment"]["equipment_name"] == "Fluke 87V Max"

        audit = db_session.query(AuditLog).filter(AuditLog.action == "UPDATE").one()
        assert "equipment_name" in audit.to_dict()["changed_fields"]

    def test_delete_retires(self, client, db_session, manager_headers, equipment):
        response = client.delete(f"/api/equipment/{equipment.id}", headers=manager_headers)
        assert response.status_code == 200

        db_session.refresh(equipment)
        assert equipment.status == STATUS_RETIRED

        listed = client.get("/api/equipment", headers=manager_headers).json()["equipment"]
        assert listed == []

    def test_cannot_retire_checked_out(self, client, db_session, manager_headers, equipment):
        equipment.status = "Checked Out"
        db_session.commit()
        response = client.delete(f"/api/equipment/{equipment.id}", headers=manager_headers)
        assert response.status_code == 400

    def test_history(self, client, tech_headers, equipment, site, personnel):
        client.post(
            "/api/movements",
            json={"equipment_id": equipment.id, "action": "OUT", "location_id": site.id, "personnel_id": personnel.id},
            headers=tech_headers,
        )
        response = client.get(f"/api/equipment/{equipment.id}/history", headers=tech_headers)
        assert response.status_code == 200
        assert len(response.json()["movements"]) == 1


class TestCatalogueApi:
    def test_create_category(self, client, manager_headers):
        response = client.post(
            "/api/categories",
            json={"name": "Torque Tools", "requires_calibration": True},
            headers=manager_headers,
        )
        assert response.status_code == 200
        assert response.json()["category"]["requires_calibration"] is True

    def test_duplicate_category_name(self, client, manager_headers, category):
        response = client.post("/api/categories", json={"name": category.name}, headers=manager_headers)
        assert response.status_code == 400

    def test_cannot_delete_category_in_use(self, client, manager_headers, category, equipment):
        response = client.delete(f"/api/categories/{category.id}", headers=manager_headers)
        assert response.status_code == 400

    def test_location_delete_deactivates(self, client, db_session, manager_headers, site):
        response = client.delete(f"/api/locations/{site.id}", headers=manager_headers)
        assert response.status_code == 200
        assert db_session.query(Location).filter(Location.id == site.id).one().is_active is False

    def test_personnel_duplicate_employee_id(self, client, manager_headers, personnel):
        response = client.post(
            "/api/personnel",
            json={"employee_id": personnel.employee_id, "first_name": "A", "last_name": "B"},
            headers=manager_headers,
        )
        assert response.status_code == 400

    def test_customer_lookup(self, client, viewer_headers, customer):
        response = client.get(f"/api/customers/{customer.id}", headers=viewer_headers)
        assert response.status_code == 200
        assert response.json()["customer"]["display_name"] == "Acme Mining"
