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

"""Configuration management for EquipTrack."""

import logging
import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class AppConfig(BaseModel):
    """Application configuration."""

    name: str = "EquipTrack"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 8000
    base_url: str = "http://localhost:8000"
    frontend_url: str = "http://localhost:3000"
    demo_mode: bool = False  # Read-only demo instance


class AdminConfig(BaseModel):
    """Bootstrap admin user configuration."""

    email: str = "admin@example.com"
    name: str = "Administrator"
    username: str = "admin"


class OrganizationConfig(BaseModel):
    """Organization configuration."""

    name: str = "My Organization"
    default_currency: str = "ZAR"
    home_country: str = "South Africa"


class DatabaseConfig(BaseModel):
    """Database configuration.

    ``url`` takes precedence over ``path`` when set, so any SQLAlchemy
    database (e.g. PostgreSQL) can be used. ``path`` is a SQLite file.
    """

    path: str = "/data/equiptrack.db"
    url: Optional[str] = None
    pool_size: int = 5
    max_overflow: int = 10


class EmailConfig(BaseModel):
    """Email configuration."""

    enabled: bool = False
    provider: str = "smtp"  # "smtp" or "resend"
    api_key: str = ""  # For Resend
    from_address: str = "noreply@example.com"
    from_name: str = "EquipTrack"
    # SMTP settings (used when provider="smtp")
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True
    smtp_use_ssl: bool = False


class SecurityConfig(BaseModel):
    """Security configuration."""

    auth_token_days: int = 30
    magic_link_minutes: int = 15
    max_tokens_per_user: int = 10
    csrf_enabled: bool = True


class InventoryConfig(BaseModel):
    """Thresholds used for derived equipment statuses."""

    overdue_threshold_days: int = 14
    calibration_due_soon_days: int = 30
    maintenance_due_days: int = 30
    recent_movements_limit: int = 10


class UploadConfig(BaseModel):
    """File upload configuration."""

    directory: str = "/data/uploads"
    max_size_mb: int = 10


class NotificationConfig(BaseModel):
    """System notification generation settings."""

    calibration_alert_days: int = 30
    calibration_expired_lookback_days: int = 7
    maintenance_alert_days: int = 14
    email_digest_enabled: bool = True


class CleanupConfig(BaseModel):
    """Cleanup settings configuration."""

    auth_token_retention_days: int = 7
    magic_link_retention_days: int = 7
    read_notification_retention_days: int = 90


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class Settings(BaseModel):
    """Main settings container."""

    app: AppConfig = Field(default_factory=AppConfig)
    admin: AdminConfig = Field(default_factory=AdminConfig)
    organization: OrganizationConfig = Field(default_factory=OrganizationConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    email: EmailConfig = Field(default_factory=EmailConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    inventory: InventoryConfig = Field(default_factory=InventoryConfig)
    uploads: UploadConfig = Field(default_factory=UploadConfig)
    notification: NotificationConfig = Field(default_factory=NotificationConfig)
    cleanup: CleanupConfig = Field(default_factory=CleanupConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config(config_path: Optional[str] = None) -> Settings:
    """Load configuration from YAML file.

    Args:
        config_path: Path to config file. If None, tries default locations.

    Returns:
        Settings object with loaded configuration.
    """
    default_paths = [
        Path("config/config.yaml"),
        Path("config.yaml"),
        Path("/app/config/config.yaml"),
        Path("/etc/equiptrack/config.yaml"),
    ]

    # Allow override via environment variable
    if config_path is None:
        config_path = os.environ.get("EQUIPTRACK_CONFIG")

    config_file = None

    if config_path:
        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        for path in default_paths:
            if path.exists():
                config_file = path
                break

    if config_file is None:
        logger.info("No config file found, using defaults")
        return Settings()

    logger.info("Loading config from: %s", config_file)

    with open(config_file, "r") as f:
        config_data = yaml.safe_load(f) or {}

    return Settings(**config_data)


def configure_logging(settings: Settings) -> None:
    """Configure root logging from settings."""
    logging.basicConfig(
        level=getattr(logging, settings.logging.level.upper(), logging.INFO),
        format=settings.logging.format,
    )


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = load_config()
    return _settings


def init_settings(config_path: Optional[str] = None) -> Settings:
    """Initialize settings from config file."""
    global _settings
    _settings = load_config(config_path)
    return _settings


def update_settings(new_settings: Settings) -> None:
    """Update the global settings instance."""
    global _settings
    _settings = new_settings
