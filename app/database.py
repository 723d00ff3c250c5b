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

"""Database setup and connection management."""

import json
import logging
from pathlib import Path
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from app.config import get_settings

logger = logging.getLogger(__name__)

# Base class for all models
Base = declarative_base()

# Global engine and session factory
_engine = None
_SessionLocal = None


def get_database_url() -> str:
    """Get the database URL from settings."""
    settings = get_settings()

    if settings.database.url:
        return settings.database.url

    db_path = settings.database.path

    # Ensure directory exists
    db_dir = Path(db_path).parent
    db_dir.mkdir(parents=True, exist_ok=True)

    return f"sqlite:///{db_path}"


def init_engine():
    """Initialize the database engine."""
    global _engine, _SessionLocal

    settings = get_settings()
    database_url = get_database_url()

    if database_url.startswith("sqlite"):
        _engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False},  # Needed for SQLite
            echo=settings.app.debug,
        )

        # Enable foreign keys for SQLite
        @event.listens_for(_engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()
    else:
        _engine = create_engine(
            database_url,
            pool_size=settings.database.pool_size,
            max_overflow=settings.database.max_overflow,
            pool_pre_ping=True,
            echo=settings.app.debug,
        )

    _SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_engine)

    return _engine


def get_engine():
    """Get the database engine, initializing if needed."""
    global _engine
    if _engine is None:
        init_engine()
    return _engine


def get_session_local():
    """Get the session factory."""
    global _SessionLocal
    if _SessionLocal is None:
        init_engine()
    return _SessionLocal


def get_db() -> Generator[Session, None, None]:
    """Dependency to get database session."""
    SessionLocal = get_session_local()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_tables(engine=None):
    """Create all database tables."""
    # Import all models to ensure they're registered
    from app import models  # noqa: F401

    Base.metadata.create_all(bind=engine or get_engine())


def seed_database(db: Session) -> None:
    """Insert system roles, maintenance types, cron jobs and the admin user.

    Safe to run repeatedly; existing rows are left untouched.
    """
    from app.models.auth import CronJob
    from app.models.maintenance import MaintenanceType
    from app.models.user import Role, User, SYSTEM_ROLES, ROLE_ADMIN

    settings = get_settings()

    for role_id, name, description, permissions in SYSTEM_ROLES:
        existing = db.query(Role).filter(Role.id == role_id).first()
        if not existing:
            db.add(
                Role(
                    id=role_id,
                    name=name,
                    description=description,
                    permissions=json.dumps(permissions),
                    is_system_role=True,
                )
            )

    db.commit()

    admin_email = settings.admin.email.lower()
    admin_user = db.query(User).filter(User.email == admin_email).first()

    if not admin_user:
        admin_user = User(
            email=admin_email,
            username=settings.admin.username,
            name=settings.admin.name,
            role_id=ROLE_ADMIN,
            is_active=True,
        )
        db.add(admin_user)
        db.commit()
        logger.info("Created admin user: %s", admin_email)

    maintenance_types = [
        ("Repair", "Equipment repair due to damage or malfunction"),
        ("Service", "Scheduled preventive maintenance"),
        ("Cleaning", "Cleaning and decontamination"),
        ("Software Update", "Firmware or software updates"),
        ("Battery Replacement", "Battery replacement or charging system service"),
        ("Accessory Replacement", "Cables, probes, or other accessories replaced"),
        ("Inspection", "General inspection and testing"),
    ]

    for name, description in maintenance_types:
        existing = db.query(MaintenanceType).filter(MaintenanceType.name == name).first()
        if not existing:
            db.add(MaintenanceType(name=name, description=description, is_active=True))

    db.commit()

    cron_jobs_data = [
        (
            "daily_notifications",
            "Daily Notifications",
            "Generate calibration, overdue, low stock and maintenance alerts",
            "0 6 * * *",
        ),
        (
            "daily_cleanup",
            "Daily Cleanup",
            "Clean up expired tokens and old read notifications",
            "30 6 * * *",
        ),
    ]

    for job_key, job_name, description, cron_schedule in cron_jobs_data:
        existing = db.query(CronJob).filter(CronJob.job_key == job_key).first()
        if not existing:
            db.add(
                CronJob(
                    job_key=job_key,
                    job_name=job_name,
                    description=description,
                    cron_schedule=cron_schedule,
                    is_enabled=True,
                )
            )

    db.commit()


def init_database():
    """Initialize database with tables and seed data."""
    create_tables()

    SessionLocal = get_session_local()
    db = SessionLocal()

    try:
        seed_database(db)
        logger.info("Database initialized successfully")
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
