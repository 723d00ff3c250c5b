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


"""Derived equipment statuses.

Calibration expiry, overdue checkouts, maintenance due dates and reservation
overlap are computed at query time from stored dates. Everything here is a
pure function of its arguments so callers pass ``today``/``now`` explicitly.
"""

from datetime import date, datetime, timedelta
from typing import Optional

CALIBRATION_EXPIRED = "Expired"
CALIBRATION_DUE_SOON = "Due Soon"
CALIBRATION_VALID = "Valid"
CALIBRATION_NOT_CALIBRATED = "Not Calibrated"

CALIBRATION_STATUS_ORDER = {
    CALIBRATION_EXPIRED: 1,
    CALIBRATION_DUE_SOON: 2,
    CALIBRATION_VALID: 3,
    CALIBRATION_NOT_CALIBRATED: 4,
}

MAINTENANCE_OVERDUE = "overdue"
MAINTENANCE_DUE_SOON = "due_soon"
MAINTENANCE_SCHEDULED = "scheduled"


def calibration_status(
    expiry_date: Optional[date], today: date, due_soon_days: int = 30
) -> str:
    """Classify a calibration expiry date relative to ``today``."""
    if expiry_date is None:
        return CALIBRATION_NOT_CALIBRATED
    if expiry_date < today:
        return CALIBRATION_EXPIRED
    if expiry_date <= today + timedelta(days=due_soon_days):
        return CALIBRATION_DUE_SOON
    return CALIBRATION_VALID


def calibration_sort_key(status: str, expiry_date: Optional[date]):
    """Order by status priority, then expiry date with missing dates last."""
    return (
        CALIBRATION_STATUS_ORDER.get(status, len(CALIBRATION_STATUS_ORDER) + 1),
        expiry_date is None,
        expiry_date or date.max,
    )


def days_until(target: Optional[date], today: date) -> Optional[int]:
    """Signed number of days from ``today`` to ``target``."""
    if target is None:
        return None
    return (target - today).days


def checkout_days_out(last_action_timestamp: Optional[datetime], now: datetime) -> int:
    """Whole days since the last movement."""
    if last_action_timestamp is None:
        return 0
    return max((now - last_action_timestamp).days, 0)


def is_checkout_overdue(
    status: str,
    last_action_timestamp: Optional[datetime],
    now: datetime,
    threshold_days: int = 14,
) -> bool:
    """True when checked-out equipment has been out longer than the threshold."""
    if status != "Checked Out" or last_action_timestamp is None:
        return False
    return last_action_timestamp < now - timedelta(days=threshold_days)


def maintenance_status(
    next_date: Optional[date], today: date, window_days: int = 30
) -> Optional[str]:
    """Classify the next maintenance date, or None when nothing is scheduled."""
    if next_date is None:
        return None
    if next_date < today:
        return MAINTENANCE_OVERDUE
    if next_date <= today + timedelta(days=window_days):
        return MAINTENANCE_DUE_SOON
    return MAINTENANCE_SCHEDULED


def date_ranges_overlap(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    """Inclusive overlap test for two date ranges."""
    return a_start <= b_end and a_end >= b_start


def validate_calibration_dates(calibration_date: date, expiry_date: date) -> None:
    """Raise ValueError unless the expiry falls strictly after calibration."""
    if expiry_date <= calibration_date:
        raise ValueError("Expiry date must be after calibration date")
