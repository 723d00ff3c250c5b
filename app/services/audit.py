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


"""Audit trail recording."""

import json
import logging
from typing import Optional

from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.audit import AuditLog
from app.models.user import User

logger = logging.getLogger(__name__)


def changed_fields(old_values: Optional[dict], new_values: Optional[dict]) -> Optional[list]:
    """Keys of ``new_values`` whose value differs from ``old_values``."""
    if not old_values or not new_values:
        return None
    return [
        key
        for key, value in new_values.items()
        if json.dumps(value, default=str, sort_keys=True)
        != json.dumps(old_values.get(key), default=str, sort_keys=True)
    ]


def log_audit(
    db: Session,
    table_name: str,
    record_id: int,
    action: str,
    user: Optional[User] = None,
    old_values: Optional[dict] = None,
    new_values: Optional[dict] = None,
    request: Optional[Request] = None,
) -> Optional[AuditLog]:
    """Write an audit row for a committed change.

    Called after the change itself has been committed. A failure to record
    the audit row is logged and rolled back without affecting the request.
    """
    ip_address = None
    user_agent = None
    if request is not None:
        ip_address = request.client.host if request.client else None
        user_agent = request.headers.get("user-agent")

    entry = AuditLog(
        table_name=table_name,
        record_id=record_id,
        action=action,
        user_id=user.id if user else None,
        user_name=user.name if user else None,
        old_values=json.dumps(old_values, default=str) if old_values is not None else None,
        new_values=json.dumps(new_values, default=str) if new_values is not None else None,
        changed_fields=json.dumps(changed_fields(old_values, new_values)),
        ip_address=ip_address,
        user_agent=user_agent,
    )

    try:
        db.add(entry)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to write audit entry for %s #%s", table_name, record_id)
        return None

    return entry
