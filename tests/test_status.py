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

"""Tests for derived status calculations."""

from datetime import date, datetime, timedelta

import pytest

from app.services.status import (
    CALIBRATION_DUE_SOON,
    CALIBRATION_EXPIRED,
    CALIBRATION_NOT_CALIBRATED,
    CALIBRATION_VALID,
    MAINTENANCE_DUE_SOON,
    MAINTENANCE_OVERDUE,
    MAINTENANCE_SCHEDULED,
    calibration_sort_key,
    calibration_status,
    checkout_days_out,
    date_ranges_overlap,
    days_until,
    is_checkout_overdue,
    maintenance_status,
    validate_calibration_dates,
)

TODAY = date(2025, 6, 15)
NOW = datetime(2025, 6, 15, 12, 0, 0)


class TestCalibrationStatus:
    def test_no_record_is_not_calibrated(self):
        assert calibration_status(None, TODAY) == CALIBRATION_NOT_CALIBRATED

    def test_yesterday_is_expired(self):
        assert calibration_status(TODAY - timedelta(days=1), TODAY) == CALIBRATION_EXPIRED

    def test_today_is_due_soon(self):
        assert calibration_status(TODAY, TODAY) == CALIBRATION_DUE_SOON

    def test_window_boundary_is_due_soon(self):
        assert calibration_status(TODAY + timedelta(days=30), TODAY) == CALIBRATION_DUE_SOON

    def test_past_window_is_valid(self):
        assert calibration_status(TODAY + timedelta(days=31), TODAY) == CALIBRATION_VALID

    def test_custom_window(self):
        assert calibration_status(TODAY + timedelta(days=10), TODAY, due_soon_days=7) == CALIBRATION_VALID

    def test_sort_order(self):
        rows = [
            (CALIBRATION_VALID, TODAY + timedelta(days=90)),
            (CALIBRATION_NOT_CALIBRATED, None),
            (CALIBRATION_DUE_SOON, TODAY + timedelta(days=5)),
            (CALIBRATION_EXPIRED, TODAY - timedelta(days=2)),
            (CALIBRATION_EXPIRED, TODAY - timedelta(days=20)),
        ]
        ordered = sorted(rows, key=lambda r: calibration_sort_key(*r))
        assert [r[0] for r in ordered] == [
            CALIBRATION_EXPIRED,
            CALIBRATION_EXPIRED,
            CALIBRATION_DUE_SOON,
            CALIBRATION_VALID,
            CALIBRATION_NOT_CALIBRATED,
        ]
        assert ordered[0][1] == TODAY - timedelta(days=20)


class TestCalibrationDates:
    def test_expiry_after_calibration_passes(self):
        validate_calibration_dates(TODAY, TODAY + timedelta(days=1))

    @pytest.mark.parametrize("offset", [0, -1])
    def test_expiry_not_after_calibration_fails(self, offset):
        with pytest.raises(ValueError):
            validate_calibration_dates(TODAY, TODAY + timedelta(days=offset))


class TestCheckoutOverdue:
    def test_within_threshold(self):
        assert not is_checkout_overdue("Checked Out", NOW - timedelta(days=14), NOW, 14)

    def test_past_threshold(self):
        assert is_checkout_overdue("Checked Out", NOW - timedelta(days=14, seconds=1), NOW, 14)

    def test_available_is_never_overdue(self):
        assert not is_checkout_overdue("Available", NOW - timedelta(days=100), NOW, 14)

    def test_missing_timestamp(self):
        assert not is_checkout_overdue("Checked Out", None, NOW, 14)

    def test_days_out(self):
        assert checkout_days_out(NOW - timedelta(days=3, hours=5), NOW) == 3
        assert checkout_days_out(None, NOW) == 0


class TestMaintenanceStatus:
    def test_nothing_scheduled(self):
        assert maintenance_status(None, TODAY) is None

    def test_overdue(self):
        assert maintenance_status(TODAY - timedelta(days=1), TODAY) == MAINTENANCE_OVERDUE

    def test_due_soon_includes_today(self):
        assert maintenance_status(TODAY, TODAY) == MAINTENANCE_DUE_SOON

    def test_scheduled(self):
        assert maintenance_status(TODAY + timedelta(days=31), TODAY, 30) == MAINTENANCE_SCHEDULED

    def test_days_until(self):
        assert days_until(TODAY - timedelta(days=4), TODAY) == -4
        assert days_until(None, TODAY) is None


class TestDateOverlap:
    @pytest.mark.parametrize(
        "b_start,b_end,expected",
        [
            (date(2025, 6, 10), date(2025, 6, 12), True),  # shared end day
            (date(2025, 6, 1), date(2025, 6, 30), True),  # contains
            (date(2025, 6, 13), date(2025, 6, 20), False),
            (date(2025, 6, 1), date(2025, 6, 4), False),
            (date(2025, 6, 1), date(2025, 6, 5), True),  # shared start day
        ],
    )
    def test_inclusive_overlap(self, b_start, b_end, expected):
        assert date_ranges_overlap(date(2025, 6, 5), date(2025, 6, 12), b_start, b_end) is expected
