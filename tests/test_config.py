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

"""Tests for configuration loading and shared helpers."""

from datetime import date
from decimal import Decimal

import pytest

from app.config import load_config
from app.utils.helpers import model_snapshot, serialize_value


class TestConfig:
    def test_yaml_overrides_defaults(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text(
            "app:\n"
            "  name: Site Stores\n"
            "inventory:\n"
            "  overdue_threshold_days: 7\n"
            "organization:\n"
            "  default_currency: USD\n"
        )
        settings = load_config(str(config_file))

        assert settings.app.name == "Site Stores"
        assert settings.inventory.overdue_threshold_days == 7
        assert settings.inventory.calibration_due_soon_days == 30
        assert settings.organization.default_currency == "USD"

    def test_empty_file_gives_defaults(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("")
        assert load_config(str(config_file)).email.enabled is False

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "nope.yaml"))

    def test_environment_variable(self, tmp_path, monkeypatch):
        config_file = tmp_path / "env.yaml"
        config_file.write_text("security:\n  auth_token_days: 3\n")
        monkeypatch.setenv("EQUIPTRACK_CONFIG", str(config_file))
        assert load_config().security.auth_token_days == 3


class TestHelpers:
    def test_serialize_value(self):
        assert serialize_value(date(2025, 1, 2)) == "2025-01-02"
        assert serialize_value(Decimal("12.50")) == 12.5

    def test_model_snapshot(self, equipment):
        snapshot = model_snapshot(equipment)
        assert snapshot["equipment_id"] == "MM-001"
        assert snapshot["status"] == "Available"
        assert "id" in snapshot
