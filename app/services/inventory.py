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


"""Check-out, check-in and stock movements.

Movements are validated against the equipment's current state and applied to
it in the caller's session. Nothing here commits; the route commits once the
whole operation (a single movement or a handover pair) has succeeded.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from app.models.equipment import (
    ACTION_IN,
    ACTION_ISSUE,
    ACTION_OUT,
    ACTION_RESTOCK,
    MOVEMENT_ACTIONS,
    STATUS_AVAILABLE,
    STATUS_CHECKED_OUT,
    Equipment,
    EquipmentMovement,
)

logger = logging.getLogger(__name__)


class InventoryError(Exception):
    """A movement was rejected by the inventory rules."""


def _validate_out(equipment: Equipment, quantity: int, location_id, customer_id, personnel_id):
    if not location_id and not customer_id:
        raise InventoryError("Location or Customer Site is required for check-out")
    if not personnel_id:
        raise InventoryError("Personnel is required for check-out")
    if equipment.is_consumable:
        raise InventoryError("Cannot check out consumable items. Use ISSUE action instead.")
    if not equipment.is_checkout_allowed:
        raise InventoryError(
            f"Checkout is not allowed for category: {equipment.category.name}"
        )
    if equipment.status != STATUS_AVAILABLE:
        raise InventoryError(
            f"Equipment is not available for checkout. Current status: {equipment.status}"
        )
    if equipment.is_quantity_tracked and quantity > equipment.available_quantity:
        raise InventoryError(
            f"Insufficient quantity. Requested: {quantity}, "
            f"Available: {equipment.available_quantity}"
        )


def _validate_in(equipment: Equipment, quantity: int, location_id):
    if not location_id:
        raise InventoryError("Return location is required")
    if equipment.is_consumable:
        raise InventoryError("Cannot check in consumable items.")
    if equipment.is_quantity_tracked:
        max_returnable = equipment.total_quantity - equipment.available_quantity
        if quantity > max_returnable:
            raise InventoryError(
                f"Cannot return more than checked out. Max returnable: {max_returnable}"
            )
    elif equipment.status != STATUS_CHECKED_OUT:
        raise InventoryError(
            f"Equipment is not checked out. Current status: {equipment.status}"
        )


def _validate_issue(equipment: Equipment, quantity: int, location_id, customer_id, personnel_id):
    if not location_id and not customer_id:
        raise InventoryError("Location or Customer Site is required for issue")
    if not personnel_id:
        raise InventoryError("Personnel is required for issue")
    if not equipment.is_consumable:
        raise InventoryError("ISSUE action is only for consumables. Use OUT for equipment.")
    if quantity > equipment.available_quantity:
        raise InventoryError(
            f"Insufficient stock. Requested: {quantity}, "
            f"Available: {equipment.available_quantity}"
        )


def _validate_restock(equipment: Equipment):
    if not equipment.is_consumable:
        raise InventoryError("RESTOCK action is only for consumables.")


def apply_movement(
    db: Session,
    equipment: Equipment,
    action: str,
    quantity: int = 1,
    location_id: Optional[int] = None,
    customer_id: Optional[int] = None,
    personnel_id: Optional[int] = None,
    notes: Optional[str] = None,
    created_by: Optional[int] = None,
    photo_path: Optional[str] = None,
    photo_name: Optional[str] = None,
) -> EquipmentMovement:
    """Validate one movement, update the equipment and record the movement.

    Raises:
        InventoryError: if the movement breaks an inventory rule.
    """
    action = (action or "").upper()
    if action not in MOVEMENT_ACTIONS:
        raise InventoryError(f"Invalid action. Must be one of: {', '.join(MOVEMENT_ACTIONS)}")
    if quantity is None or quantity < 1:
        raise InventoryError("Quantity must be at least 1")

    now = datetime.utcnow()

    if action == ACTION_OUT:
        _validate_out(equipment, quantity, location_id, customer_id, personnel_id)
        if equipment.is_quantity_tracked:
            equipment.available_quantity -= quantity
            if equipment.available_quantity == 0:
                equipment.status = STATUS_CHECKED_OUT
        else:
            equipment.status = STATUS_CHECKED_OUT
        equipment.current_holder_id = personnel_id
        equipment.current_location_id = location_id
        equipment.current_customer_id = customer_id

    elif action == ACTION_IN:
        _validate_in(equipment, quantity, location_id)
        if equipment.is_quantity_tracked:
            equipment.available_quantity += quantity
        equipment.status = STATUS_AVAILABLE
        equipment.current_holder_id = None
        equipment.current_customer_id = None
        equipment.current_location_id = location_id

    elif action == ACTION_ISSUE:
        _validate_issue(equipment, quantity, location_id, customer_id, personnel_id)
        equipment.available_quantity -= quantity

    elif action == ACTION_RESTOCK:
        _validate_restock(equipment)
        equipment.available_quantity += quantity
        equipment.total_quantity += quantity
        if location_id:
            equipment.current_location_id = location_id

    equipment.last_action = action
    equipment.last_action_timestamp = now

    movement = EquipmentMovement(
        equipment_id=equipment.id,
        action=action,
        quantity=quantity,
        location_id=location_id,
        customer_id=customer_id,
        personnel_id=personnel_id,
        notes=notes,
        created_by=created_by,
        photo_path=photo_path,
        photo_name=photo_name,
        created_at=now,
    )
    db.add(movement)
    db.flush()

    logger.info(
        "Movement %s x%d applied to %s (status now %s)",
        action,
        quantity,
        equipment.equipment_id,
        equipment.status,
    )
    return movement


def handover(
    db: Session,
    equipment: Equipment,
    return_location_id: int,
    new_personnel_id: int,
    new_location_id: Optional[int] = None,
    new_customer_id: Optional[int] = None,
    notes: Optional[str] = None,
    created_by: Optional[int] = None,
):
    """Check equipment in and straight back out to a new holder.

    Both movements are added to the same session; the caller commits or rolls
    back the pair together.
    """
    if equipment.is_consumable:
        raise InventoryError("Handover is not applicable to consumables")
    if equipment.status != STATUS_CHECKED_OUT:
        raise InventoryError("Equipment must be checked out to perform handover")
    if not new_personnel_id:
        raise InventoryError("New holder (personnel) is required")
    if not new_location_id and not new_customer_id:
        raise InventoryError("New location is required")

    suffix = notes or ""
    quantity = 1
    if equipment.is_quantity_tracked:
        quantity = equipment.total_quantity - equipment.available_quantity

    returned = apply_movement(
        db,
        equipment,
        ACTION_IN,
        quantity=quantity,
        location_id=return_location_id,
        notes=f"Handover return: {suffix}".strip(),
        created_by=created_by,
    )
    issued = apply_movement(
        db,
        equipment,
        ACTION_OUT,
        quantity=quantity,
        location_id=new_location_id,
        customer_id=new_customer_id,
        personnel_id=new_personnel_id,
        notes=f"Handover issue: {suffix}".strip(),
        created_by=created_by,
    )
    return returned, issued
