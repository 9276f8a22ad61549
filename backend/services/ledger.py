"""
Quantity ledger: per-location stock for inventory items.

`adjust_quantity` is the only code path that changes a stock quantity. It
never reads-modifies-writes in Python: every change is a single
`quantity = quantity + delta` statement so concurrent requests against the
same (item, location) row cannot lose updates. It never commits either; the
calling service's unit of work owns the transaction.
"""

import logging
from typing import Dict, Optional
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import func

from core.errors import InsufficientStockError, NotFoundError
from core.statuses import InvoiceItemType
from db.company import Location as LocationModel
from db.inventory.item import InventoryItem as InventoryItemModel
from db.inventory.movement import InventoryMovement as InventoryMovementModel
from db.inventory.quantity import InventoryLocationQuantity as QuantityModel

logger = logging.getLogger(__name__)


def is_inventory_backed(item_type: Optional[str], inventory_item: Optional[InventoryItemModel]) -> bool:
    """True when an invoice line of this type against this item moves stock."""
    if inventory_item is None:
        return False
    if (item_type or "") != InvoiceItemType.PART.value:
        return False
    return bool(inventory_item.track_quantity)


async def get_inventory_item(
    db: AsyncSession,
    inventory_item_id: UUID,
    *,
    company_id: UUID,
) -> InventoryItemModel:
    res = await db.execute(
        select(InventoryItemModel).where(
            InventoryItemModel.id == inventory_item_id,
            InventoryItemModel.company_id == company_id,
            InventoryItemModel.deleted_at.is_(None),
        )
    )
    item = res.scalar_one_or_none()
    if not item:
        raise NotFoundError("Inventory item not found")
    return item


async def get_location(db: AsyncSession, location_id: UUID, *, company_id: UUID) -> LocationModel:
    res = await db.execute(
        select(LocationModel).where(
            LocationModel.id == location_id,
            LocationModel.company_id == company_id,
            LocationModel.deleted_at.is_(None),
        )
    )
    location = res.scalar_one_or_none()
    if not location:
        raise NotFoundError("Location not found or does not belong to company")
    return location


async def _read_quantity(db: AsyncSession, inventory_item_id: UUID, location_id: UUID) -> int:
    res = await db.execute(
        select(QuantityModel.quantity).where(
            QuantityModel.inventory_item_id == inventory_item_id,
            QuantityModel.location_id == location_id,
        )
    )
    qty = res.scalar_one_or_none()
    return int(qty) if qty is not None else 0


async def get_quantity_for_location(
    db: AsyncSession,
    inventory_item_id: UUID,
    location_id: UUID,
    *,
    company_id: UUID,
) -> int:
    await get_inventory_item(db, inventory_item_id, company_id=company_id)
    return await _read_quantity(db, inventory_item_id, location_id)


async def get_location_quantities(db: AsyncSession, inventory_item_id: UUID) -> Dict[UUID, int]:
    res = await db.execute(
        select(QuantityModel.location_id, QuantityModel.quantity).where(
            QuantityModel.inventory_item_id == inventory_item_id
        )
    )
    return {row.location_id: int(row.quantity) for row in res.all()}


def _dialect_insert(db: AsyncSession):
    if db.get_bind().dialect.name == "sqlite":
        return sqlite_insert
    return pg_insert


async def _deduct(db: AsyncSession, inventory_item_id: UUID, location_id: UUID, amount: int) -> int:
    tbl = QuantityModel.__table__
    stmt = (
        update(tbl)
        .where(
            tbl.c.inventory_item_id == inventory_item_id,
            tbl.c.location_id == location_id,
            tbl.c.quantity >= amount,
        )
        .values(quantity=tbl.c.quantity - amount, updated_at=func.now())
        .returning(tbl.c.quantity)
    )
    row = (await db.execute(stmt)).first()
    if row is None:
        available = await _read_quantity(db, inventory_item_id, location_id)
        raise InsufficientStockError(
            available=available,
            requested=amount,
            inventory_item_id=inventory_item_id,
            location_id=location_id,
        )
    return int(row.quantity)


async def _credit(db: AsyncSession, inventory_item_id: UUID, location_id: UUID, amount: int) -> int:
    tbl = QuantityModel.__table__
    insert = _dialect_insert(db)
    upsert = (
        insert(tbl)
        .values(
            id=uuid4(),
            inventory_item_id=inventory_item_id,
            location_id=location_id,
            quantity=amount,
        )
        .on_conflict_do_update(
            index_elements=[tbl.c.inventory_item_id, tbl.c.location_id],
            set_={"quantity": tbl.c.quantity + amount, "updated_at": func.now()},
        )
        .returning(tbl.c.quantity)
    )
    row = (await db.execute(upsert)).first()
    return int(row.quantity) if row else amount


async def adjust_quantity(
    db: AsyncSession,
    inventory_item_id: UUID,
    location_id: UUID,
    delta: int,
    *,
    company_id: UUID,
    reason: Optional[str] = None,
    source_type: Optional[str] = None,
    source_id: Optional[UUID] = None,
    user_id: Optional[UUID] = None,
) -> Optional[int]:
    """
    Apply `delta` to the stock of an item at a location.

    Returns the new quantity, or None for items that do not track quantity
    (those are a no-op). A missing (item, location) row counts as 0 and is
    created on the first credit. Raises InsufficientStockError when the
    result would be negative.
    """
    item = await get_inventory_item(db, inventory_item_id, company_id=company_id)
    if not item.track_quantity:
        return None
    await get_location(db, location_id, company_id=company_id)

    delta = int(delta)
    if delta == 0:
        return await _read_quantity(db, inventory_item_id, location_id)

    if delta < 0:
        try:
            new_quantity = await _deduct(db, inventory_item_id, location_id, -delta)
        except InsufficientStockError as e:
            logger.warning(
                "Rejected stock deduction of %s for item %s at location %s (available %s)",
                -delta, inventory_item_id, location_id, e.available,
            )
            raise
    else:
        new_quantity = await _credit(db, inventory_item_id, location_id, delta)

    db.add(
        InventoryMovementModel(
            id=uuid4(),
            location_id=location_id,
            inventory_item_id=inventory_item_id,
            change=delta,
            quantity_after=new_quantity,
            reason=reason,
            source_type=source_type,
            source_id=source_id,
            created_by_user_id=user_id,
        )
    )
    logger.info(
        "Stock %s %s for item %s at location %s -> %s (%s)",
        "credited" if delta > 0 else "deducted",
        abs(delta), inventory_item_id, location_id, new_quantity, reason or source_type or "adjustment",
    )
    return new_quantity
