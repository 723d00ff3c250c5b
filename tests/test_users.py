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

"""Tests for user accounts and roles."""

from app.models.auth import AuthToken
from app.models.catalog import Personnel
from app.models.user import ROLE_ADMIN, ROLE_MANAGER, ROLE_VIEWER, User


class TestUserManagement:
    def test_create_user(self, client, manager_headers):
        response = client.post(
            "/api/users",
            json={"email": "New.Person@Example.com", "name": "New Person"},
            headers=manager_headers,
        )
        assert response.status_code == 200
        user = response.json()["user"]
        assert user["email"] == "new.person@example.com"
        assert user["role_id"] == 3

    def test_duplicate_email(self, client, manager_headers, tech_user):
        response = client.post(
            "/api/users",
            json={"email": tech_user.email, "name": "Dup"},
            headers=manager_headers,
        )
        assert response.status_code == 400

    def test_manager_cannot_grant_admin(self, client, manager_headers):
        response = client.post(
            "/api/users",
            json={"email": "boss@example.com", "name": "Boss", "role_id": ROLE_ADMIN},
            headers=manager_headers,
        )
        assert response.status_code == 403

    def test_manager_cannot_modify_admin(self, client, manager_headers, admin_user):
        response = client.patch(
            f"/api/users/{admin_user.id}/status",
            json={"is_active": False},
            headers=manager_headers,
        )
        assert response.status_code == 403

    def test_technician_cannot_manage_users(self, client, tech_headers):
        assert client.get("/api/users", headers=tech_headers).status_code == 403

    def test_cannot_change_own_role(self, client, admin_headers, admin_user):
        response = client.patch(
            f"/api/users/{admin_user.id}/role",
            json={"role_id": ROLE_VIEWER},
            headers=admin_headers,
        )
        assert response.status_code == 400

    def test_change_role(self, client, admin_headers, tech_user):
        response = client.patch(
            f"/api/users/{tech_user.id}/role",
            json={"role_id": ROLE_MANAGER},
            headers=admin_headers,
        )
        assert response.status_code == 200
        assert response.json()["user"]["role_id"] == ROLE_MANAGER

    def test_deactivation_revokes_tokens(self, client, db_session, admin_headers, tech_user, tech_headers):
        response = client.patch(
            f"/api/users/{tech_user.id}/status",
            json={"is_active": False},
            headers=admin_headers,
        )
        assert response.status_code == 200

        tokens = db_session.query(AuthToken).filter(AuthToken.user_id == tech_user.id).all()
        assert tokens and all(t.is_revoked for t in tokens)
        assert client.get("/api/auth/me", headers=tech_headers).status_code == 401

    def test_cannot_delete_self(self, client, admin_headers, admin_user):
        assert client.delete(f"/api/users/{admin_user.id}", headers=admin_headers).status_code == 400

    def test_delete_user(self, client, db_session, admin_headers, viewer_user):
        assert client.delete(f"/api/users/{viewer_user.id}", headers=admin_headers).status_code == 200
        assert db_session.query(User).filter(User.id == viewer_user.id).first() is None

    def test_own_permissions(self, client, tech_headers, tech_user, manager_user):
        data = client.get(f"/api/users/{tech_user.id}/permissions", headers=tech_headers).json()
        assert "movements:write" in data["permissions"]
        assert "reservations:approve" not in data["permissions"]

        assert client.get(f"/api/users/{manager_user.id}/permissions", headers=tech_headers).status_code == 403

    def test_bulk_import(self, client, db_session, manager_headers, personnel, tech_user):
        no_email = Personnel(employee_id="E100", first_name="No", last_name="Mail")
        clash = Personnel(employee_id="E101", first_name="Thandi", last_name="Tech", email=tech_user.email)
        db_session.add_all([no_email, clash])
        db_session.commit()

        response = client.post(
            "/api/users/bulk-import",
            json={"personnel_ids": [personnel.id, no_email.id, clash.id]},
            headers=manager_headers,
        )
        assert response.status_code == 200
        data = response.json()
        assert [u["username"] for u in data["created"]] == ["E001"]
        reasons = {s["id"]: s["reason"] for s in data["skipped"]}
        assert reasons == {no_email.id: "No email address", clash.id: "Email already in use"}

        again = client.post(
            "/api/users/bulk-import",
            json={"personnel_ids": [personnel.id]},
            headers=manager_headers,
        ).json()
        assert again["skipped"][0]["reason"] == "Already linked to a user"


class TestRoles:
    def test_list_roles(self, client, viewer_headers):
        data = client.get("/api/users/roles", headers=viewer_headers).json()
        assert [r["name"] for r in data["roles"]] == ["admin", "manager", "technician", "viewer"]
        assert "audit:read" in data["available_permissions"]

    def test_only_admin_manages_roles(self, client, manager_headers):
        response = client.post("/api/users/roles", json={"name": "auditor"}, headers=manager_headers)
        assert response.status_code == 403

    def test_custom_role_lifecycle(self, client, admin_headers, make_user, db_session):
        response = client.post(
            "/api/users/roles",
            json={"name": "auditor", "permissions": ["audit:read", "exports:read"]},
            headers=admin_headers,
        )
        assert response.status_code == 200
        role = response.json()["role"]
        assert role["permissions"] == ["audit:read", "exports:read"]

        user = make_user(role["id"])
        assert user.has_permission("audit:read")
        assert client.delete(f"/api/users/roles/{role['id']}", headers=admin_headers).status_code == 400

        db_session.delete(user)
        db_session.commit()
        assert client.delete(f"/api/users/roles/{role['id']}", headers=admin_headers).status_code == 200

    def test_unknown_permission(self, client, admin_headers):
        response = client.post(
            "/api/users/roles",
            json={"name": "weird", "permissions": ["launch:rockets"]},
            headers=admin_headers,
        )
        assert response.status_code == 400

    def test_system_roles_protected(self, client, admin_headers):
        assert client.put(f"/api/users/roles/{ROLE_VIEWER}", json={"name": "x"}, headers=admin_headers).status_code == 400
        assert client.delete(f"/api/users/roles/{ROLE_VIEWER}", headers=admin_headers).status_code == 400
