import asyncio
import sys
from pathlib import Path
from decimal import Decimal

"""
Seed a demo company (two shop locations, an admin user, a few parts and
services with opening stock) into the configured DB.

This script can be run from either:
- backend/: `python scripts/seed_demo_data.py`
- repo root: `python backend/scripts/seed_demo_data.py`

Running it twice is safe: existing rows are reused and stock is only opened
for items created by this run.
"""

# Allow running from repo root by ensuring `backend/` is on sys.path
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from sqlalchemy import func, select

from core.logging_config import configure_logging
from core.config import settings
from db.company import Company, Location
from db.database import async_session_maker, create_db_and_tables
from db.inventory.item import InventoryItem
from db.users import User
from services.ledger import adjust_quantity

from fastapi_users.password import PasswordHelper


password_helper = PasswordHelper()

DEMO_ITEMS = [
    # sku, name, cost, price, tracked, opening stock at (main, branch)
    ("SCR-IP13", "iPhone 13 screen", Decimal("45.00"), Decimal("129.00"), True, (10, 2)),
    ("BAT-IP13", "iPhone 13 battery", Decimal("18.50"), Decimal("69.00"), True, (15, 5)),
    ("CHG-USBC", "USB-C charging port", Decimal("6.25"), Decimal("39.00"), True, (30, 0)),
    ("SRV-DIAG", "Diagnostics", Decimal("0"), Decimal("25.00"), False, (0, 0)),
]


async def get_or_create_company(session, name: str) -> Company:
    result = await session.execute(select(Company).where(func.lower(Company.name) == name.strip().lower()))
    company = result.scalar_one_or_none()
    if company:
        return company

    company = Company(name=name.strip())
    session.add(company)
    await session.flush()
    return company


async def get_or_create_location(session, company_id, name: str, tax_rate: Decimal) -> Location:
    result = await session.execute(
        select(Location).where(Location.company_id == company_id, func.lower(Location.name) == name.lower())
    )
    location = result.scalar_one_or_none()
    if location:
        return location

    location = Location(company_id=company_id, name=name, tax_rate=tax_rate)
    session.add(location)
    await session.flush()
    return location


async def get_or_create_user(session, email: str, password: str, company_id, location_id) -> User:
    result = await session.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if user:
        return user

    user = User(
        email=email,
        hashed_password=password_helper.hash(password),
        is_active=True,
        is_superuser=True,
        is_verified=True,
        company_id=company_id,
        current_location_id=location_id,
        first_name="Demo",
        last_name="Admin",
    )
    session.add(user)
    await session.flush()
    return user


async def seed():
    configure_logging(settings)
    await create_db_and_tables()

    async with async_session_maker() as session:
        company = await get_or_create_company(session, "Demo Repairs")
        main = await get_or_create_location(session, company.id, "Main Street", Decimal("8.25"))
        branch = await get_or_create_location(session, company.id, "Mall Kiosk", Decimal("8.25"))
        user = await get_or_create_user(session, "admin@example.com", "admin", company.id, main.id)

        for sku, name, cost, price, tracked, (main_qty, branch_qty) in DEMO_ITEMS:
            result = await session.execute(
                select(InventoryItem).where(
                    InventoryItem.company_id == company.id,
                    InventoryItem.location_id == main.id,
                    InventoryItem.sku == sku,
                    InventoryItem.deleted_at.is_(None),
                )
            )
            if result.scalar_one_or_none():
                continue

            item = InventoryItem(
                company_id=company.id,
                location_id=main.id,
                sku=sku,
                name=name,
                cost_price=cost,
                selling_price=price,
                track_quantity=tracked,
            )
            session.add(item)
            await session.flush()

            for location, qty in ((main, main_qty), (branch, branch_qty)):
                if qty:
                    await adjust_quantity(
                        session,
                        item.id,
                        location.id,
                        qty,
                        company_id=company.id,
                        reason="Opening stock",
                        source_type="manual",
                        user_id=user.id,
                    )

        await session.commit()


if __name__ == "__main__":
    asyncio.run(seed())
