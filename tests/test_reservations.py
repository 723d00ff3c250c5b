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

"""Tests for equipment reservations and conflict detection."""

from datetime import date, timedelta

import pytest

from app.models.reservation import Reservation
from app.routes.reservations import check_reservation_conflicts

START = date.today() + timedelta(days=10)


def _days(offset: int) -> str:
    return (START + timedelta(days=offset)).isoformat()


@pytest.fixture
def reserve(client, tech_headers, equipment, personnel):
    """POST a reservation for ``equipment`` spanning START+a .. START+b."""

    def _reserve(start: int, end: int, headers=None, **extra):
        payload = {
            "equipment_id": equipment.id,
            "personnel_id": personnel.id,
            "start_date": _days(start),
            "end_date": _days(end),
        }
        payload.update(extra)
        return client.post("/api/reservations", json=payload, headers=headers or tech_headers)

    return _reserve


class TestConflictDetection:
    def test_overlapping_reservation_is_409(self, reserve):
        first = reserve(0, 4)
        assert first.status_code == 200
        assert first.json()["reservation"]["status"] == "pending"

        second = reserve(4, 6)
        assert second.status_code == 409
        detail = second.json()["detail"]
        assert detail["conflicts"][0]["id"] == first.json()["reservation"]["id"]

    def test_adjacent_ranges_do_not_conflict(self, reserve):
        assert reserve(0, 4).status_code == 200
        assert reserve(5, 6).status_code == 200

    def test_single_day_reservation(self, reserve):
        assert reserve(0, 0).status_code == 200
        assert reserve(0, 0).status_code == 409

    @pytest.mark.parametrize("inactive", ["cancelled", "rejected", "completed"])
    def test_inactive_reservations_never_block(self, db_session, reserve, inactive):
        reservation_id = reserve(0, 4).json()["reservation"]["id"]
        db_session.query(Reservation).filter(Reservation.id == reservation_id).update({"status": inactive})
        db_session.commit()

        assert reserve(2, 3).status_code == 200

    def test_end_before_start_is_rejected(self, reserve):
        assert reserve(3, 1).status_code == 422

    def test_conflict_query_excludes_self(self, db_session, reserve, equipment):
        reservation_id = reserve(0, 4).json()["reservation"]["id"]
        assert check_reservation_conflicts(db_session, equipment.id, START, START, reservation_id) == []
        assert len(check_reservation_conflicts(db_session, equipment.id, START, START)) == 1

    def test_check_availability(self, client, tech_headers, reserve, equipment):
        reserve(0, 4)
        busy = client.get(
            "/api/reservations/check-availability",
            params={"equipment_id": equipment.id, "start_date": _days(2), "end_date": _days(8)},
            headers=tech_headers,
        ).json()
        assert busy["available"] is False
        assert len(busy["conflicts"]) == 1

        free = client.get(
            "/api/reservations/check-availability",
            params={"equipment_id": equipment.id, "start_date": _days(5), "end_date": _days(8)},
            headers=tech_headers,
        ).json()
        assert free["available"] is True

    def test_update_ignores_own_dates(self, client, tech_headers, reserve):
        reservation_id = reserve(0, 4).json()["reservation"]["id"]
        response = client.put(
            f"/api/reservations/{reservation_id}",
            json={"start_date": _days(1), "end_date": _days(5)},
            headers=tech_headers,
        )
        assert response.status_code == 200
        assert response.json()["reservation"]["end_date"] == _days(5)

    def test_update_into_other_reservation_conflicts(self, client, tech_headers, reserve):
        reserve(0, 4)
        second_id = reserve(6, 8).json()["reservation"]["id"]
        response = client.put(
            f"/api/reservations/{second_id}",
            json={"start_date": _days(3)},
            headers=tech_headers,
        )
        assert response.status_code == 409

    def test_retired_equipment_cannot_be_reserved(self, db_session, reserve, equipment):
        equipment.status = "Retired"
        db_session.commit()
        assert reserve(0, 1).status_code == 400

    def test_unknown_personnel(self, reserve):
        assert reserve(0, 1, personnel_id=999).status_code == 400


class TestReservationLifecycle:
    def test_manager_approves(self, client, manager_headers, manager_user, reserve):
        reservation_id = reserve(0, 2).json()["reservation"]["id"]
        response = client.patch(
            f"/api/reservations/{reservation_id}/status",
            json={"status": "approved"},
            headers=manager_headers,
        )
        assert response.status_code == 200
        reservation = response.json()["reservation"]
        assert reservation["status"] == "approved"
        assert reservation["approved_by"] == manager_user.id
        assert reservation["approved_at"] is not None

    def test_technician_cannot_approve(self, client, tech_headers, reserve):
        reservation_id = reserve(0, 2).json()["reservation"]["id"]
        response = client.patch(
            f"/api/reservations/{reservation_id}/status",
            json={"status": "approved"},
            headers=tech_headers,
        )
        assert response.status_code == 403

    def test_technician_can_cancel(self, client, tech_headers, reserve):
        reservation_id = reserve(0, 2).json()["reservation"]["id"]
        response = client.patch(
            f"/api/reservations/{reservation_id}/status",
            json={"status": "cancelled"},
            headers=tech_headers,
        )
        assert response.status_code == 200

    def test_invalid_transition(self, client, manager_headers, reserve):
        reservation_id = reserve(0, 2).json()["reservation"]["id"]
        response = client.patch(
            f"/api/reservations/{reservation_id}/status",
            json={"status": "completed"},
            headers=manager_headers,
        )
        assert response.status_code == 400

    def test_unknown_status(self, client, manager_headers, reserve):
        reservation_id = reserve(0, 2).json()["reservation"]["id"]
        response = client.patch(
            f"/api/reservations/{reservation_id}/status",
            json={"status": "archived"},
            headers=manager_headers,
        )
        assert response.status_code == 400

    def test_cancelled_reservation_cannot_be_edited(self, client, tech_headers, reserve):
        reservation_id = reserve(0, 2).json()["reservation"]["id"]
        client.patch(
            f"/api/reservations/{reservation_id}/status",
            json={"status": "cancelled"},
            headers=tech_headers,
        )
        response = client.put(
            f"/api/reservations/{reservation_id}",
            json={"purpose": "changed"},
            headers=tech_headers,
        )
        assert response.status_code == 400

    def test_calendar_excludes_cancelled(self, client, tech_headers, reserve):
        keep = reserve(0, 1).json()["reservation"]["id"]
        drop = reserve(3, 4).json()["reservation"]["id"]
        client.patch(f"/api/reservations/{drop}/status", json={"status": "cancelled"}, headers=tech_headers)

        response = client.get(
            "/api/reservations/calendar",
            params={"start": _days(-1), "end": _days(10)},
            headers=tech_headers,
        )
        assert [r["id"] for r in response.json()["reservations"]] == [keep]

    def test_delete(self, client, db_session, tech_headers, reserve):
        reservation_id = reserve(0, 1).json()["reservation"]["id"]
        assert client.delete(f"/api/reservations/{reservation_id}", headers=tech_headers).status_code == 200
        assert db_session.query(Reservation).count() == 0
