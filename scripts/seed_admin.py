"""
Seed Admin User

Creates an admin account. Admins cannot self-register through the API, so
run this once per environment.

Usage:
    ADMIN_EMAIL=admin@example.com ADMIN_PASSWORD=... python scripts/seed_admin.py
    python scripts/seed_admin.py --email admin@example.com --password ... --name "Site Admin"
"""

import argparse
import asyncio
import os

from tuitionhub.core.config import settings
from tuitionhub.core.database import DatabaseManager
from tuitionhub.core.security import hash_password
from tuitionhub.modules.users.models import AdminPermission, UserRole
from tuitionhub.modules.users.repository import UserRepository


async def seed_admin(email: str, password: str, name: str) -> None:
    """Create the admin user if it doesn't exist."""
    database = DatabaseManager(settings)
    await database.init()

    try:
        async with database.session() as db:
            existing_user = await UserRepository.get_by_email(db, email)
            if existing_user:
                print(f"User already exists: {existing_user.email}")
                print(f"  ID: {existing_user.id}")
                print(f"  Role: {existing_user.role.value}")
                return

            admin_user = await UserRepository.create(
                db,
                email=email,
                password_hash=hash_password(password),
                name=name,
                role=UserRole.ADMIN,
                permissions=[p.value for p in AdminPermission],
                is_verified=True,
            )
            await db.commit()

            print("Admin created successfully!")
            print(f"  Email: {admin_user.email}")
            print(f"  Name: {admin_user.name}")
            print(f"  ID: {admin_user.id}")
    finally:
        await database.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Create a TuitionHub admin account")
    parser.add_argument("--email", default=os.environ.get("ADMIN_EMAIL"))
    parser.add_argument("--password", default=os.environ.get("ADMIN_PASSWORD"))
    parser.add_argument("--name", default=os.environ.get("ADMIN_NAME", "Administrator"))
    args = parser.parse_args()

    if not args.email or not args.password:
        parser.error("--email and --password (or ADMIN_EMAIL / ADMIN_PASSWORD) are required")
    if len(args.password) < 6:
        parser.error("password must be at least 6 characters")

    asyncio.run(seed_admin(args.email, args.password, args.name))


if __name__ == "__main__":
    main()
