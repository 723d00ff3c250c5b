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


"""API routes package."""

from fastapi import APIRouter, Depends

from app.middleware.auth import verify_csrf_token
from app.routes import (
    admin,
    audit,
    auth,
    calibration,
    categories,
    customers,
    equipment,
    exports,
    locations,
    maintenance,
    movements,
    notifications,
    reports,
    reservations,
    users,
)

# Create main API router
api_router = APIRouter(dependencies=[Depends(verify_csrf_token)])

# Include all API routes
api_router.include_router(auth.router, tags=["Authentication"])
api_router.include_router(categories.router, tags=["Categories"])
api_router.include_router(locations.router, tags=["Locations & Personnel"])
api_router.include_router(customers.router, tags=["Customers"])
api_router.include_router(equipment.router, tags=["Equipment"])
api_router.include_router(movements.router, tags=["Movements"])
api_router.include_router(calibration.router, tags=["Calibration"])
api_router.include_router(maintenance.router, tags=["Maintenance"])
api_router.include_router(reservations.router, tags=["Reservations"])
api_router.include_router(reports.router, tags=["Reports"])
api_router.include_router(exports.router, tags=["Exports"])
api_router.include_router(notifications.router, tags=["Notifications"])
api_router.include_router(audit.router, tags=["Audit"])
api_router.include_router(users.router, tags=["Users"])
api_router.include_router(admin.router, tags=["Admin"])

__all__ = ["api_router"]
