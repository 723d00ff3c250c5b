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

"""Shared fixtures: in-memory database, API client and catalogue rows."""

import secrets
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401  (registers all tables)
from app.config import Settings, UploadConfig, update_settings
from app.database import Base, get_db, seed_database
from app.main import app
from app.models.auth import AuthToken
from app.models.catalog import Category, Customer, Location, Personnel, Subcategory
from app.models.equipment import Equipment
from app.models.user import ROLE_ADMIN, ROLE_MANAGER, ROLE_TECHNICIAN, ROLE_VIEWER, User


@pytest.fixture(autouse=True)
def settings(tmp_path):
    """Default settings with uploads written under the test's tmp dir."""
    test_settings = Settings(uploads=UploadConfig(directory=str(tmp_path / "uploads")))
    update_settings(test_settings)
    yield test_settings
    update_settings(Settings())


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(engine):
    """Seeded session shared by the test and the API client."""
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    seed_database(session)
    yield session
    session.close()


@pytest.fixture
def client(db_session):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def _auth_headers(db, user: User) -> dict:
    token = AuthToken(
        user_id=user.id,
        token=secrets.token_urlsafe(32),
        expires_at=datetime.utcnow() + timedelta(days=1),
    )
    db.add(token)
    db.commit()
    return {"Authorization": f"Bearer {token.token}"}


@pytest.fixture
def make_user(db_session):
    """Factory creating an active user with the given role."""

    def _make(role_id: int = ROLE_TECHNICIAN, email: str = None, name: str = "Test User") -> User:
        user = User(
            email=email or f"{secrets.token_hex(4)}@example.com",
            name=name,
            role_id=role_id,
            is_active=True,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make


@pytest.fixture
def admin_user(db_session):
    return db_session.query(User).filter(User.role_id == ROLE_ADMIN).first()


@pytest.fixture
def manager_user(make_user):
    return make_user(ROLE_MANAGER, "manager@example.com", "Mandla Manager")


@pytest.fixture
def tech_user(make_user):
    return make_user(ROLE_TECHNICIAN, "tech@example.com", "Thandi Tech")


@pytest.fixture
def viewer_user(make_user):
    return make_user(ROLE_VIEWER, "viewer@example.com", "Vusi Viewer")


@pytest.fixture
def admin_headers(db_session, admin_user):
    return _auth_headers(db_session, admin_user)


@pytest.fixture
def manager_headers(db_session, manager_user):
    return _auth_headers(db_session, manager_user)


@pytest.fixture
def tech_headers(db_session, tech_user):
    return _auth_headers(db_session, tech_user)


@pytest.fixture
def viewer_headers(db_session, viewer_user):
    return _auth_headers(db_session, viewer_user)


@pytest.fixture
def category(db_session):
    category = Category(name="Test Instruments", is_checkout_allowed=True, is_consumable=False)
    db_session.add(category)
    db_session.commit()
    return category


@pytest.fixture
def calibrated_category(db_session):
    category = Category(
        name="Gas Detectors",
        is_checkout_allowed=True,
        is_consumable=False,
        requires_calibration=True,
        default_calibration_interval_months=12,
    )
    db_session.add(category)
    db_session.commit()
    return category


@pytest.fixture
def consumable_category(db_session):
    category = Category(name="Consumables", is_checkout_allowed=False, is_consumable=True)
    db_session.add(category)
    db_session.commit()
    return category


@pytest.fixture
def subcategory(db_session, category):
    subcategory = Subcategory(category_id=category.id, name="Multimeters")
    db_session.add(subcategory)
    db_session.commit()
    return subcategory


@pytest.fixture
def location(db_session):
    location = Location(name="Main Warehouse", type="warehouse")
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture
def site(db_session):
    location = Location(name="Site B", type="site")
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture
def personnel(db_session):
    person = Personnel(employee_id="E001", first_name="Sipho", last_name="Dlamini", email="sipho@example.com")
    db_session.add(person)
    db_session.commit()
    return person


@pytest.fixture
def other_personnel(db_session):
    person = Personnel(employee_id="E002", first_name="Anna", last_name="Botha", email="anna@example.com")
    db_session.add(person)
    db_session.commit()
    return person


@pytest.fixture
def customer(db_session):
    customer = Customer(customer_number="C001", display_name="Acme Mining")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture
def make_equipment(db_session, category, location):
    """Factory for equipment rows. Defaults to an available serialised item."""
    counter = {"n": 0}

    def _make(**overrides) -> Equipment:
        counter["n"] += 1
        values = {
            "equipment_id": f"EQ-{counter['n']:03d}",
            "equipment_name": f"Item {counter['n']}",
            "category_id": category.id,
            "serial_number": f"SN-{counter['n']:05d}",
            "current_location_id": location.id,
        }
        values.update(overrides)
        equipment = Equipment(**values)
        db_session.add(equipment)
        db_session.commit()
        db_session.refresh(equipment)
        return equipment

    return _make


@pytest.fixture
def equipment(make_equipment):
    return make_equipment(equipment_id="MM-001", equipment_name="Fluke 87V")


@pytest.fixture
def consumable(make_equipment, consumable_category):
    return make_equipment(
        equipment_id="CON-001",
        equipment_name="Cable Ties",
        category_id=consumable_category.id,
        is_serialized=False,
        serial_number=None,
        is_quantity_tracked=True,
        total_quantity=100,
        available_quantity=100,
        unit="pack",
        reorder_level=20,
    )
