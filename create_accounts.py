#!/usr/bin/env python3
"""
Script to create student and driver login accounts from the sheet rosters
Roll numbers and driver IDs become login identifiers, all sharing the
initial password from ACCOUNTS_PASSWORD.
"""

import os
import sys
from app import app
from models import ROLE_STUDENT, ROLE_DRIVER
import database_store as data_store
import sheet_api

def create_accounts(password):
    """Create accounts for every student and driver in the sheets"""
    with app.app_context():
        students, drivers = sheet_api.fetch_together(sheet_api.get_all_students, sheet_api.get_drivers)

        accounts = [(student.roll_number, ROLE_STUDENT, student.name) for student in students]
        accounts += [(driver.driver_id, ROLE_DRIVER, driver.name) for driver in drivers]

        created_count = 0
        updated_count = 0

        for identifier, role, name in accounts:
            if not identifier:
                continue
            _, created = data_store.upsert_user(identifier, role, password, name=name or None)
            if created:
                created_count += 1
            else:
                updated_count += 1

        print(f"\n✓ Account setup complete:")
        print(f"  - Created: {created_count} new accounts")
        print(f"  - Updated: {updated_count} existing accounts")
        print(f"  - Students: {len(students)}, Drivers: {len(drivers)}")

        return created_count, updated_count

if __name__ == "__main__":
    password = os.environ.get("ACCOUNTS_PASSWORD")
    if not password:
        print("Error: ACCOUNTS_PASSWORD environment variable not set")
        sys.exit(1)

    try:
        create_accounts(password)
    except sheet_api.DataUnavailableError as e:
        print(f"Error: {e}")
        sys.exit(1)
