import logging
from datetime import datetime, timezone
from typing import List, Optional, Tuple
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import BadRequestError
from core.money import quantize_money
from core.statuses import TransferStatus
from core.tenant import TenantContext
from db.company import Location as LocationModel
from db.database import unit_of_work
from db.inventory.item import InventoryItem as InventoryItemModel
from db.inventory.movement import InventoryMovement as InventoryMovementModel
from db.inventory.quantity import InventoryLocationQuantity as QuantityModel
from db.inventory.transfer import InventoryTransfer as TransferModel
from schemas.inventory import InventoryItemCreate, InventoryItemUpdate, StockAdjustment
from services.ledger import adjust_quantity, get_inventory_item, get_location, get_location_quantities
from services.numbering import generate_sku

logger = logging.getLogger(__name__)

SOURCE_TYPE = "manual"


async def _ensure_sku_free(
    db: AsyncSession,
    sku: str,
    *,
    company_id: UUID,
    location_id: Optional[UUID],
    exclude_id: Optional[UUID] = None,
) -> None:
    stmt = select(InventoryItemModel.id).where(
        InventoryItemModel.company_id == company_id,
        InventoryItemModel.location_id == location_id,
        InventoryItemModel.sku == sku,
        InventoryItemModel.deleted_at.is_(None),
    )
    if exclude_id is not None:
        stmt = stmt.where(InventoryItemModel.id != exclude_id)
    res = await db.execute(stmt.limit(1))
    if res.scalar_one_or_none() is not None:
        raise BadRequestError(f"SKU {sku} already exists at this location")


async def _has_pending_transfers(db: AsyncSession, item_id: UUID) -> bool:
    # units of a pending transfer are off the ledger until it is resolved
    res = await db.execute(
        select(func.count(TransferModel.id)).where(
            TransferModel.inventory_item_id == item_id,
            TransferModel.status == TransferStatus.PENDING.value,
        )
    )
    return bool(res.scalar_one())


async def list_inventory_items(
    db: AsyncSession,
    *,
    company_id: UUID,
    location_id: Optional[UUID] = None,
    q: Optional[str] = None,
) -> List[Tuple[InventoryItemModel, Optional[int]]]:
    """
    Items of the company, name/SKU filtered by `q`.

    With `location_id` each item comes with its quantity there (0 when the
    item never had stock at that location, None when it does not track).
    """
    stmt = select(InventoryItemModel).where(
        InventoryItemModel.company_id == company_id,
        InventoryItemModel.deleted_at.is_(None),
    )
    if q:
        qq = f"%{q.strip().lower()}%"
        stmt = stmt.where(
            func.lower(InventoryItemModel.name).like(qq) | func.lower(InventoryItemModel.sku).like(qq)
        )
    res = await db.execute(stmt.order_by(func.lower(InventoryItemModel.name).asc()))
    items = list(res.scalars().all())

    quantities = {}
    if location_id and items:
        qres = await db.execute(
            select(QuantityModel.inventory_item_id, QuantityModel.quantity).where(
                QuantityModel.location_id == location_id,
                QuantityModel.inventory_item_id.in_([it.id for it in items]),
            )
        )
        quantities = {row.inventory_item_id: int(row.quantity) for row in qres.all()}

    out = []
    for it in items:
        qty = None
        if location_id and it.track_quantity:
            qty = quantities.get(it.id, 0)
        out.append((it, qty))
    return out


async def create_inventory_item(
    db: AsyncSession,
    payload: InventoryItemCreate,
    *,
    ctx: TenantContext,
) -> InventoryItemModel:
    location_id = payload.location_id or ctx.location_id
    if location_id is None:
        raise BadRequestError("Inventory item location is required")

    async with unit_of_work(db):
        await get_location(db, location_id, company_id=ctx.company_id)
        if payload.sku:
            sku = payload.sku
            await _ensure_sku_free(db, sku, company_id=ctx.company_id, location_id=location_id)
        else:
            sku = await generate_sku(db, ctx.company_id)

        item = InventoryItemModel(
            id=uuid4(),
            company_id=ctx.company_id,
            location_id=location_id,
            sku=sku,
            name=payload.name,
            description=payload.description,
            cost_price=quantize_money(payload.cost_price),
            selling_price=quantize_money(payload.selling_price),
            track_quantity=payload.track_quantity,
        )
        db.add(item)
        await db.flush()

        if payload.initial_quantity:
            await adjust_quantity(
                db,
                item.id,
                location_id,
                payload.initial_quantity,
                company_id=ctx.company_id,
                reason="Opening stock",
                source_type=SOURCE_TYPE,
                source_id=item.id,
                user_id=ctx.user_id,
            )

    logger.info("Inventory item %s (%s) created at location %s", sku, payload.name, location_id)
    return item


async def update_inventory_item(
    db: AsyncSession,
    item_id: UUID,
    payload: InventoryItemUpdate,
    *,
    ctx: TenantContext,
) -> InventoryItemModel:
    data = payload.model_dump(exclude_unset=True)

    async with unit_of_work(db):
        item = await get_inventory_item(db, item_id, company_id=ctx.company_id)

        if data.get("sku") and data["sku"] != item.sku:
            await _ensure_sku_free(
                db, data["sku"], company_id=ctx.company_id, location_id=item.location_id, exclude_id=item.id
            )
            item.sku = data["sku"]

        if data.get("track_quantity") is False and item.track_quantity:
            if any(q > 0 for q in (await get_location_quantities(db, item.id)).values()):
                raise BadRequestError("Cannot stop tracking quantity while stock is on hand")
            if await _has_pending_transfers(db, item.id):
                raise BadRequestError("Cannot stop tracking quantity while a transfer is pending")
        if data.get("track_quantity") is not None:
            item.track_quantity = data["track_quantity"]

        if data.get("name"):
            item.name = data["name"]
        if "description" in data:
            item.description = data["description"]
        for field in ("cost_price", "selling_price"):
            if data.get(field) is not None:
                setattr(item, field, quantize_money(data[field]))

        await db.flush()

    return item


async def delete_inventory_item(db: AsyncSession, item_id: UUID, *, ctx: TenantContext) -> None:
    async with unit_of_work(db):
        item = await get_inventory_item(db, item_id, company_id=ctx.company_id)

        quantities = await get_location_quantities(db, item.id)
        if any(q != 0 for q in quantities.values()):
            raise BadRequestError(
                "Cannot delete inventory item with non-zero quantity. All location quantities must be 0."
            )

        if await _has_pending_transfers(db, item.id):
            raise BadRequestError("Cannot delete inventory item with pending transfers")

        item.deleted_at = datetime.now(timezone.utc)

    logger.info("Inventory item %s deleted", item_id)


async def adjust_stock(
    db: AsyncSession,
    item_id: UUID,
    payload: StockAdjustment,
    *,
    ctx: TenantContext,
) -> int:
    """Manual stock correction; returns the new quantity at the location."""
    location_id = payload.location_id or ctx.location_id
    if location_id is None:
        raise BadRequestError("Location is required")

    async with unit_of_work(db):
        item = await get_inventory_item(db, item_id, company_id=ctx.company_id)
        if not item.track_quantity:
            raise BadRequestError(f"Inventory item {item.sku} does not track quantity")
        new_quantity = await adjust_quantity(
            db,
            item.id,
            location_id,
            payload.change,
            company_id=ctx.company_id,
            reason=payload.reason or "Manual adjustment",
            source_type=SOURCE_TYPE,
            user_id=ctx.user_id,
        )
    return new_quantity


async def get_item_stock(
    db: AsyncSession,
    item_id: UUID,
    *,
    company_id: UUID,
) -> Tuple[InventoryItemModel, List[Tuple[LocationModel, int]]]:
    item = await get_inventory_item(db, item_id, company_id=company_id)
    res = await db.execute(
        select(LocationModel, QuantityModel.quantity)
        .join(QuantityModel, QuantityModel.location_id == LocationModel.id)
        .where(QuantityModel.inventory_item_id == item.id)
        .order_by(LocationModel.name.asc())
    )
    return item, [(loc, int(qty)) for loc, qty in res.all()]


async def list_stock_for_location(
    db: AsyncSession,
    location_id: UUID,
    *,
    company_id: UUID,
) -> Tuple[LocationModel, List[Tuple[InventoryItemModel, int]]]:
    location = await get_location(db, location_id, company_id=company_id)
    res = await db.execute(
        select(InventoryItemModel, QuantityModel.quantity)
        .join(QuantityModel, QuantityModel.inventory_item_id == InventoryItemModel.id)
        .where(
            QuantityModel.location_id == location.id,
            InventoryItemModel.company_id == company_id,
            InventoryItemModel.deleted_at.is_(None),
        )
        .order_by(func.lower(InventoryItemModel.name).asc())
    )
    return location, [(item, int(qty)) for item, qty in res.all()]


async def list_movements(
    db: AsyncSession,
    *,
    company_id: UUID,
    inventory_item_id: Optional[UUID] = None,
    location_id: Optional[UUID] = None,
    source_type: Optional[str] = None,
    limit: int = 200,
) -> List[InventoryMovementModel]:
    stmt = (
        select(InventoryMovementModel)
        .join(LocationModel, LocationModel.id == InventoryMovementModel.location_id)
        .where(LocationModel.company_id == company_id)
    )
    if inventory_item_id:
        stmt = stmt.where(InventoryMovementModel.inventory_item_id == inventory_item_id)
    if location_id:
        stmt = stmt.where(InventoryMovementModel.location_id == location_id)
    if source_type:
        stmt = stmt.where(InventoryMovementModel.source_type == source_type)
    res = await db.execute(stmt.order_by(InventoryMovementModel.created_at.desc()).limit(limit))
    return list(res.scalars().all())
