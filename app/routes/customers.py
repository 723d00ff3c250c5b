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


"""Customer site routes."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app.config import get_settings
from app.database import get_db
from app.middleware.auth import get_current_user, require_permission
from app.models.catalog import Customer
from app.models.equipment import STATUS_CHECKED_OUT, Equipment
from app.models.user import User
from app.services.audit import log_audit
from app.utils.helpers import clean_optional, model_snapshot, sanitize_input

router = APIRouter(prefix="/api/customers")

TEXT_FIELDS = (
    ("company_name", 255),
    ("phone", 50),
    ("billing_city", 100),
    ("billing_state", 100),
    ("billing_country", 100),
    ("shipping_city", 100),
    ("shipping_state", 100),
    ("shipping_country", 100),
    ("tax_registration_number", 100),
    ("vat_treatment", 50),
    ("notes", 2000),
)


class CustomerCreate(BaseModel):
    """Customer creation request."""

    customer_number: str = Field(..., min_length=1, max_length=50)
    display_name: str = Field(..., min_length=1, max_length=255)
    company_name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    currency_code: Optional[str] = Field(None, min_length=3, max_length=3)
    billing_city: Optional[str] = None
    billing_state: Optional[str] = None
    billing_country: Optional[str] = None
    shipping_city: Optional[str] = None
    shipping_state: Optional[str] = None
    shipping_country: Optional[str] = None
    tax_registration_number: Optional[str] = None
    vat_treatment: Optional[str] = None
    notes: Optional[str] = None


class CustomerUpdate(BaseModel):
    """Customer update request."""

    customer_number: Optional[str] = Field(None, min_length=1, max_length=50)
    display_name: Optional[str] = Field(None, min_length=1, max_length=255)
    company_name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    currency_code: Optional[str] = Field(None, min_length=3, max_length=3)
    billing_city: Optional[str] = None
    billing_state: Optional[str] = None
    billing_country: Optional[str] = None
    shipping_city: Optional[str] = None
    shipping_state: Optional[str] = None
    shipping_country: Optional[str] = None
    tax_registration_number: Optional[str] = None
    vat_treatment: Optional[str] = None
    notes: Optional[str] = None
    is_active: Optional[bool] = None


@router.get("")
async def list_customers(
    search: Optional[str] = None,
    country: Optional[str] = None,
    active_only: bool = True,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """List customers, active only by default."""
    query = db.query(Customer)

    if active_only:
        query = query.filter(Customer.is_active.is_(True))

    if country:
        query = query.filter(Customer.billing_country == country)

    if search:
        pattern = f"%{search}%"
        query = query.filter(
            or_(Customer.display_name.ilike(pattern), Customer.customer_number.ilike(pattern))
        )

    customers = query.order_by(Customer.display_name).all()
    return {"success": True, "customers": [c.to_dict() for c in customers]}


@router.get("/stats/summary")
async def customer_stats(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Counts of active customers split by home country and overseas."""
    home_country = get_settings().organization.home_country
    active = db.query(Customer).filter(Customer.is_active.is_(True))

    local = active.filter(Customer.billing_country == home_country).count()
    overseas = active.filter(
        Customer.billing_country.isnot(None), Customer.billing_country != home_country
    ).count()
    countries = (
        db.query(func.count(func.distinct(Customer.billing_country)))
        .filter(Customer.billing_country.isnot(None))
        .scalar()
    )

    return {
        "success": True,
        "stats": {
            "active_customers": active.count(),
            "local_customers": local,
            "overseas_customers": overseas,
            "countries": countries or 0,
            "home_country": home_country,
        },
    }


@router.get("/{customer_id}")
async def get_customer(
    customer_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Get a customer and the equipment currently at their site."""
    customer = db.query(Customer).filter(Customer.id == customer_id).first()
    if not customer:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Customer not found")

    on_site = (
        db.query(Equipment)
        .filter(
            Equipment.current_customer_id == customer_id,
            Equipment.status == STATUS_CHECKED_OUT,
        )
        .order_by(Equipment.equipment_name)
        .all()
    )

    return {
        "success": True,
        "customer": customer.to_dict(),
        "equipment": [e.to_dict() for e in on_site],
    }


@router.post("")
async def create_customer(
    request: Request,
    data: CustomerCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("catalog:write")),
):
    """Create a customer."""
    customer_number = sanitize_input(data.customer_number, 50)
    if db.query(Customer).filter(Customer.customer_number == customer_number).first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Customer number already exists",
        )

    customer = Customer(
        customer_number=customer_number,
        display_name=sanitize_input(data.display_name, 255),
        email=data.email.lower() if data.email else None,
        currency_code=(data.currency_code or get_settings().organization.default_currency).upper(),
    )
    for field, limit in TEXT_FIELDS:
        setattr(customer, field, clean_optional(getattr(data, field), limit))

    db.add(customer)
    db.commit()
    db.refresh(customer)

    log_audit(db, "customers", customer.id, "INSERT", current_user, None, model_snapshot(customer), request)

    return {"success": True, "customer": customer.to_dict(), "message": f"Customer '{customer.display_name}' created"}


@router.put("/{customer_id}")
async def update_customer(
    request: Request,
    customer_id: int,
    data: CustomerUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("catalog:write")),
):
    """Update a customer."""
    customer = db.query(Customer).filter(Customer.id == customer_id).first()
    if not customer:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Customer not found")

    old_values = model_snapshot(customer)

    if data.customer_number and data.customer_number != customer.customer_number:
        customer_number = sanitize_input(data.customer_number, 50)
        existing = (
            db.query(Customer)
            .filter(Customer.customer_number == customer_number, Customer.id != customer_id)
            .first()
        )
        if existing:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Customer number already exists",
            )
        customer.customer_number = customer_number

    if data.display_name:
        customer.display_name = sanitize_input(data.display_name, 255)
    if data.email is not None:
        customer.email = data.email.lower()
    if data.currency_code:
        customer.currency_code = data.currency_code.upper()
    for field, limit in TEXT_FIELDS:
        value = getattr(data, field)
        if value is not None:
            setattr(customer, field, clean_optional(value, limit))
    if data.is_active is not None:
        customer.is_active = data.is_active

    db.commit()
    db.refresh(customer)

    log_audit(db, "customers", customer.id, "UPDATE", current_user, old_values, model_snapshot(customer), request)

    return {"success": True, "customer": customer.to_dict(), "message": f"Customer '{customer.display_name}' updated"}
