"""
Shared fixtures: a throwaway SQLite database per test plus small factories.

Services roll the session back on any error, which expires every ORM object
in it, so the factories hand out plain ids rather than model instances.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

import db.models  # noqa: F401
from core.tenant import TenantContext
from db.company import Company, Location
from db.database import Base
from db.inventory.item import InventoryItem
from services.ledger import adjust_quantity, get_quantity_for_location


@dataclass(frozen=True)
class Shop:
    company_id: UUID
    main_id: UUID
    branch_id: UUID


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'repairshop.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest_asyncio.fixture
async def shop(db) -> Shop:
    company = Company(id=uuid4(), name="Acme Repairs")
    main = Location(id=uuid4(), company_id=company.id, name="Main Street", tax_rate=Decimal("10.00"))
    branch = Location(id=uuid4(), company_id=company.id, name="Mall Kiosk", tax_rate=Decimal("0"))
    db.add(company)
    await db.flush()
    db.add_all([main, branch])
    await db.commit()
    return Shop(company_id=company.id, main_id=main.id, branch_id=branch.id)


@pytest_asyncio.fixture
async def other_shop(db) -> Shop:
    company = Company(id=uuid4(), name="Other Co")
    main = Location(id=uuid4(), company_id=company.id, name="Elsewhere", tax_rate=Decimal("5.00"))
    branch = Location(id=uuid4(), company_id=company.id, name="Elsewhere 2", tax_rate=Decimal("5.00"))
    db.add(company)
    await db.flush()
    db.add_all([main, branch])
    await db.commit()
    return Shop(company_id=company.id, main_id=main.id, branch_id=branch.id)


@pytest.fixture
def ctx(shop) -> TenantContext:
    return TenantContext(company_id=shop.company_id, location_id=shop.main_id)


@pytest.fixture
def make_item(db, shop):
    """Create an inventory item (and opening stock at its home location); returns its id."""

    async def _make(
        sku: str = "PART-1",
        name: str = "Replacement part",
        quantity: int = 0,
        *,
        location_id: UUID = None,
        track_quantity: bool = True,
        selling_price: str = "50.00",
        cost_price: str = "20.00",
    ) -> UUID:
        location_id = location_id or shop.main_id
        item = InventoryItem(
            id=uuid4(),
            company_id=shop.company_id,
            location_id=location_id,
            sku=sku,
            name=name,
            cost_price=Decimal(cost_price),
            selling_price=Decimal(selling_price),
            track_quantity=track_quantity,
        )
        db.add(item)
        await db.flush()
        if quantity:
            await adjust_quantity(
                db, item.id, location_id, quantity, company_id=shop.company_id, reason="Opening stock"
            )
        await db.commit()
        return item.id

    return _make


@pytest.fixture
def stock(db, shop):
    async def _stock(item_id: UUID, location_id: UUID) -> int:
        return await get_quantity_for_location(db, item_id, location_id, company_id=shop.company_id)

    return _stock
