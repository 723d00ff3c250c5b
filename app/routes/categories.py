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


"""Category and subcategory routes."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.database import get_db
from app.middleware.auth import get_current_user, require_permission
from app.models.catalog import Category, Subcategory
from app.models.equipment import Equipment
from app.models.user import User
from app.services.audit import log_audit
from app.utils.helpers import clean_optional, model_snapshot, sanitize_input

router = APIRouter()


class CategoryCreate(BaseModel):
    """Category creation request."""

    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    is_checkout_allowed: bool = True
    is_consumable: bool = False
    requires_calibration: bool = False
    default_calibration_interval_months: Optional[int] = Field(None, ge=1)
    display_order: int = 0


class CategoryUpdate(BaseModel):
    """Category update request."""

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    is_checkout_allowed: Optional[bool] = None
    is_consumable: Optional[bool] = None
    requires_calibration: Optional[bool] = None
    default_calibration_interval_months: Optional[int] = Field(None, ge=1)
    display_order: Optional[int] = None


class SubcategoryCreate(BaseModel):
    """Subcategory creation request."""

    category_id: int
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    display_order: int = 0


class SubcategoryUpdate(BaseModel):
    """Subcategory update request."""

    category_id: Optional[int] = None
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    display_order: Optional[int] = None


def _get_category(db: Session, category_id: int) -> Category:
    category = db.query(Category).filter(Category.id == category_id).first()
    if not category:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Category not found",
        )
    return category


def _get_subcategory(db: Session, subcategory_id: int) -> Subcategory:
    subcategory = db.query(Subcategory).filter(Subcategory.id == subcategory_id).first()
    if not subcategory:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Subcategory not found",
        )
    return subcategory


# Category Routes
@router.get("/api/categories")
async def list_categories(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """List all categories with their subcategories."""
    categories = db.query(Category).order_by(Category.display_order, Category.name).all()
    return {
        "success": True,
        "categories": [c.to_dict(include_subcategories=True) for c in categories],
    }


@router.get("/api/categories/{category_id}")
async def get_category(
    category_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Get a category with its subcategories."""
    category = _get_category(db, category_id)
    return {"success": True, "category": category.to_dict(include_subcategories=True)}


@router.post("/api/categories")
async def create_category(
    request: Request,
    data: CategoryCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("catalog:write")),
):
    """Create a category."""
    name = sanitize_input(data.name, 100)
    if db.query(Category).filter(Category.name == name).first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Category with this name already exists",
        )

    category = Category(
        name=name,
        description=clean_optional(data.description, 1000),
        is_checkout_allowed=data.is_checkout_allowed,
        is_consumable=data.is_consumable,
        requires_calibration=data.requires_calibration,
        default_calibration_interval_months=data.default_calibration_interval_months,
        display_order=data.display_order,
    )
    db.add(category)
    db.commit()
    db.refresh(category)

    log_audit(db, "categories", category.id, "INSERT", current_user, None, model_snapshot(category), request)

    return {
        "success": True,
        "category": category.to_dict(include_subcategories=True),
        "message": f"Category '{category.name}' created",
    }


@router.put("/api/categories/{category_id}")
async def update_category(
    request: Request,
    category_id: int,
    data: CategoryUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("catalog:write")),
):
    """Update a category."""
    category = _get_category(db, category_id)
    old_values = model_snapshot(category)

    if data.name and data.name != category.name:
        name = sanitize_input(data.name, 100)
        existing = db.query(Category).filter(Category.name == name, Category.id != category_id).first()
        if existing:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Category with this name already exists",
            )
        category.name = name

    if data.description is not None:
        category.description = clean_optional(data.description, 1000)

    for field in (
        "is_checkout_allowed",
        "is_consumable",
        "requires_calibration",
        "default_calibration_interval_months",
        "display_order",
    ):
        value = getattr(data, field)
        if value is not None:
            setattr(category, field, value)

    db.commit()
    db.refresh(category)

    log_audit(db, "categories", category.id, "UPDATE", current_user, old_values, model_snapshot(category), request)

    return {
        "success": True,
        "category": category.to_dict(include_subcategories=True),
        "message": f"Category '{category.name}' updated",
    }


@router.delete("/api/categories/{category_id}")
async def delete_category(
    request: Request,
    category_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("catalog:write")),
):
    """Delete a category that has no equipment."""
    category = _get_category(db, category_id)

    in_use = db.query(Equipment.id).filter(Equipment.category_id == category_id).count()
    if in_use:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Cannot delete category with {in_use} equipment item(s)",
        )

    old_values = model_snapshot(category)
    name = category.name
    db.delete(category)
    db.commit()

    log_audit(db, "categories", category_id, "DELETE", current_user, old_values, None, request)

    return {"success": True, "message": f"Category '{name}' deleted"}


# Subcategory Routes
@router.get("/api/subcategories")
async def list_subcategories(
    category_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """List subcategories, optionally for one category."""
    query = db.query(Subcategory)
    if category_id:
        query = query.filter(Subcategory.category_id == category_id)
    subcategories = query.order_by(Subcategory.display_order, Subcategory.name).all()
    return {
        "success": True,
        "subcategories": [s.to_dict() for s in subcategories],
    }


@router.get("/api/subcategories/{subcategory_id}")
async def get_subcategory(
    subcategory_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Get a subcategory."""
    return {"success": True, "subcategory": _get_subcategory(db, subcategory_id).to_dict()}


@router.post("/api/subcategories")
async def create_subcategory(
    request: Request,
    data: SubcategoryCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("catalog:write")),
):
    """Create a subcategory within an existing category."""
    category = db.query(Category).filter(Category.id == data.category_id).first()
    if not category:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Category does not exist",
        )

    name = sanitize_input(data.name, 100)
    existing = (
        db.query(Subcategory)
        .filter(Subcategory.category_id == data.category_id, Subcategory.name == name)
        .first()
    )
    if existing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Subcategory with this name already exists in the category",
        )

    subcategory = Subcategory(
        category_id=data.category_id,
        name=name,
        description=clean_optional(data.description, 1000),
        display_order=data.display_order,
    )
    db.add(subcategory)
    db.commit()
    db.refresh(subcategory)

    log_audit(db, "subcategories", subcategory.id, "INSERT", current_user, None, model_snapshot(subcategory), request)

    return {
        "success": True,
        "subcategory": subcategory.to_dict(),
        "message": f"Subcategory '{subcategory.name}' created",
    }


@router.put("/api/subcategories/{subcategory_id}")
async def update_subcategory(
    request: Request,
    subcategory_id: int,
    data: SubcategoryUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("catalog:write")),
):
    """Update a subcategory."""
    subcategory = _get_subcategory(db, subcategory_id)
    old_values = model_snapshot(subcategory)

    if data.category_id is not None and data.category_id != subcategory.category_id:
        if not db.query(Category).filter(Category.id == data.category_id).first():
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Category does not exist",
            )
        subcategory.category_id = data.category_id

    if data.name:
        subcategory.name = sanitize_input(data.name, 100)

    if data.description is not None:
        subcategory.description = clean_optional(data.description, 1000)

    if data.display_order is not None:
        subcategory.display_order = data.display_order

    db.commit()
    db.refresh(subcategory)

    log_audit(
        db, "subcategories", subcategory.id, "UPDATE", current_user, old_values, model_snapshot(subcategory), request
    )

    return {
        "success": True,
        "subcategory": subcategory.to_dict(),
        "message": f"Subcategory '{subcategory.name}' updated",
    }


@router.delete("/api/subcategories/{subcategory_id}")
async def delete_subcategory(
    request: Request,
    subcategory_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("catalog:write")),
):
    """Delete a subcategory that has no equipment."""
    subcategory = _get_subcategory(db, subcategory_id)

    in_use = db.query(Equipment.id).filter(Equipment.subcategory_id == subcategory_id).count()
    if in_use:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Cannot delete subcategory with {in_use} equipment item(s)",
        )

    old_values = model_snapshot(subcategory)
    db.delete(subcategory)
    db.commit()

    log_audit(db, "subcategories", subcategory_id, "DELETE", current_user, old_values, None, request)

    return {"success": True, "message": "Subcategory deleted"}
