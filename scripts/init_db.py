#!/usr/bin/env python3
# EquipTrack - Equipment Inventory and Calibration Tracking
# Copyright (C) 2025 EquipTrack contributors
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Database initialization script."""

import argparse
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.config import get_settings, init_settings
from app.database import get_database_url, init_database


def main():
    """Create the schema and seed roles, admin user and defaults."""
    parser = argparse.ArgumentParser(description="Initialize the EquipTrack database")
    parser.add_argument("--config", help="Path to config.yaml (defaults to EQUIPTRACK_CONFIG)")
    args = parser.parse_args()

    print("Initializing EquipTrack database...")

    # Load configuration
    init_settings(args.config)
    settings = get_settings()
    print(f"Database: {get_database_url()}")

    # Initialize database
    init_database()

    print(f"Admin account: {settings.admin.email}")
    print("Database initialization complete!")


if __name__ == "__main__":
    main()
