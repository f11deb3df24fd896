"""
Create an admin account against the configured database.

Public signup never creates admins without the signup key; this script is
the out-of-band way to bootstrap the first one.

Run from the backend/ directory:
    python scripts/create_admin.py --name "Site Admin" --email admin@booknest.io --password 'S3cure-pass'
"""
import argparse
import asyncio
import os
import sys

# Add backend/ to path so we can import the app modules
BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, BACKEND_DIR)
os.chdir(BACKEND_DIR)

from dotenv import load_dotenv
load_dotenv(".env", override=False)

from database import async_session, init_db  # noqa: E402
from domain.enums import Role  # noqa: E402
from domain.errors import ConflictError  # noqa: E402
from services import auth_service  # noqa: E402
from services.async_executor import shutdown_executor  # noqa: E402


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create a BookNest admin account")
    parser.add_argument("--name", required=True)
    parser.add_argument("--email", required=True)
    parser.add_argument("--password", required=True)
    args = parser.parse_args(argv)
    if len(args.password) < 8:
        parser.error("--password must be at least 8 characters")
    if len(args.name.strip()) < 2:
        parser.error("--name must be at least 2 characters")
    return args


async def create_admin(name: str, email: str, password: str) -> int:
    await init_db()
    async with async_session() as db:
        user = await auth_service.create_account(
            db, name=name, email=email, password=password, role=Role.ADMIN.value
        )
        await db.commit()
        return user.id


def main(argv=None) -> int:
    args = parse_args(argv)
    try:
        user_id = asyncio.run(create_admin(args.name, args.email, args.password))
    except ConflictError as e:
        print(f"❌ {e.message}")
        return 1
    finally:
        shutdown_executor()
    print(f"✅ Admin created: id={user_id} email={args.email.strip().lower()}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
