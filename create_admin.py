#!/usr/bin/env python3
"""
Script to create admin accounts for the PEC bus dashboard
Run with: python create_admin.py <email> <name>
The password is read from ADMIN_PASSWORD.
"""
import os
import sys
from app import app
from models import ROLE_ADMIN
import database_store as data_store

def create_admin_user(email, password, name=None):
    """Create or update an admin user with proper password hashing"""
    with app.app_context():
        user, created = data_store.upsert_user(email, ROLE_ADMIN, password, name=name)

        if created:
            print(f"Created new admin: {email}")
        else:
            print(f"Admin {email} already exists. Updated password.")

        print(f"✓ Admin '{email}' created/updated successfully!")
        print(f"  User ID: {user['id']}")

        return user

if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("Usage: python create_admin.py <email> [name]")
        sys.exit(1)

    password = os.environ.get("ADMIN_PASSWORD")
    if not password:
        print("Error: ADMIN_PASSWORD environment variable not set")
        sys.exit(1)

    create_admin_user(sys.argv[1], password, name=sys.argv[2] if len(sys.argv) > 2 else None)
