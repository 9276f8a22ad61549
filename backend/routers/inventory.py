from typing import Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import BadRequestError
from core.money import money_out
from core.tenant import TenantContext, get_tenant_context
from db.database import get_async_session
from db.inventory.item import InventoryItem as InventoryItemModel
from db.inventory.movement import InventoryMovement as InventoryMovementModel
from schemas.inventory import (
    InventoryItemCreate,
    InventoryItemOut,
    InventoryItemUpdate,
    InventoryMovementOut,
    InventoryStockOut,
    StockAdjustment,
)
from services import inventory as inventory_service
from services.ledger import get_quantity_for_location

router = APIRouter()


def _serialize_item(it: InventoryItemModel, quantity: Optional[int] = None) -> InventoryItemOut:
    return InventoryItemOut(
        id=it.id,
        company_id=it.company_id,
        location_id=it.location_id,
        sku=it.sku,
        name=it.name,
        description=it.description,
        cost_price=money_out(it.cost_price),
        selling_price=money_out(it.selling_price),
        track_quantity=bool(it.track_quantity),
        quantity=quantity,
    )


def _serialize_movement(m: InventoryMovementModel) -> InventoryMovementOut:
    return InventoryMovementOut(
        id=m.id,
        location_id=m.location_id,
        inventory_item_id=m.inventory_item_id,
        change=int(m.change),
        quantity_after=int(m.quantity_after),
        reason=m.reason,
        source_type=m.source_type,
        source_id=m.source_id,
        created_at=m.created_at,
        created_by_user_id=m.created_by_user_id,
    )


async def _quantity_here(db: AsyncSession, it: InventoryItemModel, ctx: TenantContext) -> Optional[int]:
    if ctx.location_id is None or not it.track_quantity:
        return None
    return await get_quantity_for_location(db, it.id, ctx.location_id, company_id=ctx.company_id)


@router.get("/items", response_model=List[InventoryItemOut])
async def list_inventory_items(
    location_id: Optional[UUID] = None,
    q: Optional[str] = None,
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_async_session),
):
    """
    List inventory items, optionally filtered by name/SKU.

    Quantities are attached for `location_id`, or the current location when
    it is omitted.
    """
    rows = await inventory_service.list_inventory_items(
        db, company_id=ctx.company_id, location_id=location_id or ctx.location_id, q=q
    )
    return [_serialize_item(it, qty) for it, qty in rows]


@router.post("/items", response_model=InventoryItemOut, status_code=status.HTTP_201_CREATED)
async def create_inventory_item(
    payload: InventoryItemCreate,
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_async_session),
):
    it = await inventory_service.create_inventory_item(db, payload, ctx=ctx)
    return _serialize_item(it, await _quantity_here(db, it, ctx))


@router.get("/items/{item_id}", response_model=InventoryItemOut)
async def get_inventory_item(
    item_id: UUID,
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_async_session),
):
    it = await inventory_service.get_inventory_item(db, item_id, company_id=ctx.company_id)
    return _serialize_item(it, await _quantity_here(db, it, ctx))


@router.patch("/items/{item_id}", response_model=InventoryItemOut)
async def update_inventory_item(
    item_id: UUID,
    payload: InventoryItemUpdate,
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_async_session),
):
    it = await inventory_service.update_inventory_item(db, item_id, payload, ctx=ctx)
    return _serialize_item(it, await _quantity_here(db, it, ctx))


@router.delete("/items/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_inventory_item(
    item_id: UUID,
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_async_session),
):
    await inventory_service.delete_inventory_item(db, item_id, ctx=ctx)
    return None


@router.post("/items/{item_id}/adjust", response_model=Dict)
async def adjust_stock(
    item_id: UUID,
    payload: StockAdjustment,
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_async_session),
):
    new_quantity = await inventory_service.adjust_stock(db, item_id, payload, ctx=ctx)
    return {
        "inventory_item_id": item_id,
        "location_id": payload.location_id or ctx.location_id,
        "quantity": new_quantity,
    }


@router.get("/stock/item/{item_id}", response_model=Dict)
async def get_item_stock(
    item_id: UUID,
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_async_session),
):
    it, rows = await inventory_service.get_item_stock(db, item_id, company_id=ctx.company_id)
    return {
        "inventory_item_id": it.id,
        "sku": it.sku,
        "name": it.name,
        "total_quantity": sum(qty for _, qty in rows),
        "locations": [
            {"location_id": loc.id, "location_name": loc.name, "quantity": qty}
            for loc, qty in rows
        ],
    }


@router.get("/stock", response_model=List[InventoryStockOut])
async def list_stock_for_location(
    location_id: Optional[UUID] = None,
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_async_session),
):
    location_id = location_id or ctx.location_id
    if location_id is None:
        raise BadRequestError("location_id is required")
    location, rows = await inventory_service.list_stock_for_location(db, location_id, company_id=ctx.company_id)
    return [
        InventoryStockOut(
            location_id=location.id,
            location_name=location.name,
            inventory_item_id=it.id,
            sku=it.sku,
            name=it.name,
            quantity=qty,
        )
        for it, qty in rows
    ]


@router.get("/movements", response_model=List[InventoryMovementOut])
async def list_movements(
    inventory_item_id: Optional[UUID] = None,
    location_id: Optional[UUID] = None,
    source_type: Optional[str] = None,
    limit: int = Query(200, ge=1, le=1000),
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_async_session),
):
    movements = await inventory_service.list_movements(
        db,
        company_id=ctx.company_id,
        inventory_item_id=inventory_item_id,
        location_id=location_id,
        source_type=source_type,
        limit=limit,
    )
    return [_serialize_movement(m) for m in movements]
