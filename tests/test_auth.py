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

"""Tests for passwordless login and sessions."""

from datetime import datetime, timedelta

from app.models.auth import MagicLink


def _login_token(client, email: str) -> str:
    response = client.post("/api/auth/login", json={"email": email})
    assert response.status_code == 200
    data = response.json()
    assert data["dev_mode"] is True
    return data["verify_link"].split("token=", 1)[1]


class TestLogin:
    def test_unknown_email(self, client):
        response = client.post("/api/auth/login", json={"email": "stranger@example.com"})
        assert response.status_code == 404

    def test_invalid_email(self, client):
        assert client.post("/api/auth/login", json={"email": "not-an-email"}).status_code == 422

    def test_inactive_user(self, client, db_session, tech_user):
        tech_user.is_active = False
        db_session.commit()
        assert client.post("/api/auth/login", json={"email": tech_user.email}).status_code == 403

    def test_magic_link_flow(self, client, tech_user):
        token = _login_token(client, "TECH@example.com")

        response = client.get("/api/auth/verify", params={"token": token, "redirect": False})
        assert response.status_code == 200
        session = response.json()
        assert session["user"]["email"] == tech_user.email

        headers = {"Authorization": f"Bearer {session['token']}"}
        me = client.get("/api/auth/me", headers=headers)
        assert me.json()["user"]["id"] == tech_user.id

        # Links are single use
        assert client.get("/api/auth/verify", params={"token": token, "redirect": False}).status_code == 400

    def test_expired_link(self, client, db_session, tech_user):
        token = _login_token(client, tech_user.email)
        link = db_session.query(MagicLink).filter(MagicLink.token == token).one()
        link.expires_at = datetime.utcnow() - timedelta(minutes=1)
        db_session.commit()

        assert client.get("/api/auth/verify", params={"token": token, "redirect": False}).status_code == 400

    def test_browser_verify_redirects(self, client, tech_user, settings):
        token = _login_token(client, tech_user.email)
        response = client.get("/api/auth/verify", params={"token": token}, follow_redirects=False)
        assert response.status_code == 302
        assert response.headers["location"] == settings.app.frontend_url
        assert "auth_token" in response.headers.get("set-cookie", "")


class TestSession:
    def test_no_token(self, client):
        assert client.get("/api/auth/me").status_code == 401

    def test_bad_token(self, client):
        assert client.get("/api/auth/me", headers={"Authorization": "Bearer nope"}).status_code == 401

    def test_validate(self, client, tech_headers):
        assert client.get("/api/auth/validate", headers=tech_headers).json()["valid"] is True
        assert client.get("/api/auth/validate").json() == {"valid": False}

    def test_logout_revokes_token(self, client, tech_headers):
        assert client.post("/api/auth/logout", headers=tech_headers).status_code == 200
        assert client.get("/api/auth/me", headers=tech_headers).status_code == 401

    def test_cookie_mutation_requires_csrf(self, client, db_session, tech_headers):
        token = tech_headers["Authorization"].split(" ", 1)[1]
        cookies = {"auth_token": token, "csrf_token": "abc"}

        client.cookies.update(cookies)
        try:
            assert client.get("/api/auth/me").status_code == 200
            assert client.post("/api/auth/logout").status_code == 403
            assert client.post("/api/auth/logout", headers={"X-CSRF-Token": "abc"}).status_code == 200
        finally:
            client.cookies.clear()

    def test_demo_mode_blocks_writes(self, client, settings, manager_headers, category):
        settings.app.demo_mode = True
        response = client.post("/api/categories", json={"name": "Blocked"}, headers=manager_headers)
        assert response.status_code == 403
        assert client.get("/api/categories", headers=manager_headers).status_code == 200


class TestHealth:
    def test_health(self, client):
        assert client.get("/health").json()["status"] == "healthy"
        assert client.get("/api/health").json()["status"] == "healthy"
