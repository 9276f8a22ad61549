from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from core.money import money_out
from core.tenant import TenantContext, get_tenant_context
from db.database import get_async_session
from db.purchase_order import PurchaseOrder as PurchaseOrderModel, PurchaseOrderItem as PurchaseOrderItemModel
from schemas.purchase_orders import (
    PurchaseOrderCreate,
    PurchaseOrderItemRead,
    PurchaseOrderRead,
    PurchaseOrderReceive,
    PurchaseOrderStatusLiteral,
    PurchaseOrderUpdate,
)
from services import purchase_orders as po_service

router = APIRouter()


def _serialize_item(it: PurchaseOrderItemModel) -> PurchaseOrderItemRead:
    inv = it.inventory_item
    return PurchaseOrderItemRead(
        id=it.id,
        purchase_order_id=it.purchase_order_id,
        inventory_item_id=it.inventory_item_id,
        inventory_item_sku=inv.sku if inv else None,
        inventory_item_name=inv.name if inv else None,
        quantity_ordered=int(it.quantity_ordered),
        quantity_received=int(it.quantity_received or 0),
        unit_cost=money_out(it.unit_cost),
        subtotal=money_out(it.subtotal),
        notes=it.notes,
    )


def _serialize_po(po: PurchaseOrderModel) -> PurchaseOrderRead:
    return PurchaseOrderRead(
        id=po.id,
        company_id=po.company_id,
        location_id=po.location_id,
        po_number=po.po_number,
        supplier=po.supplier,
        status=po.status,
        order_date=po.order_date,
        expected_delivery_date=po.expected_delivery_date,
        received_date=po.received_date,
        notes=po.notes,
        total_amount=money_out(po.total_amount),
        items=[_serialize_item(it) for it in po.items],
    )


@router.get("/", response_model=List[PurchaseOrderRead])
async def list_purchase_orders(
    status_filter: Optional[PurchaseOrderStatusLiteral] = Query(None, alias="status"),
    location_id: Optional[UUID] = None,
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_async_session),
):
    pos = await po_service.list_purchase_orders(
        db, company_id=ctx.company_id, status=status_filter, location_id=location_id
    )
    return [_serialize_po(po) for po in pos]


@router.post("/", response_model=PurchaseOrderRead, status_code=status.HTTP_201_CREATED)
async def create_purchase_order(
    payload: PurchaseOrderCreate,
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_async_session),
):
    po = await po_service.create_purchase_order(db, payload, ctx=ctx)
    return _serialize_po(po)


@router.get("/{po_id}", response_model=PurchaseOrderRead)
async def get_purchase_order(
    po_id: UUID,
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_async_session),
):
    po = await po_service.load_purchase_order(db, po_id, company_id=ctx.company_id)
    return _serialize_po(po)


@router.patch("/{po_id}", response_model=PurchaseOrderRead)
async def update_purchase_order(
    po_id: UUID,
    payload: PurchaseOrderUpdate,
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_async_session),
):
    po = await po_service.update_purchase_order(db, po_id, payload, ctx=ctx)
    return _serialize_po(po)


@router.delete("/{po_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_purchase_order(
    po_id: UUID,
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_async_session),
):
    await po_service.delete_purchase_order(db, po_id, ctx=ctx)
    return None


@router.post("/{po_id}/order", response_model=PurchaseOrderRead)
async def place_purchase_order(
    po_id: UUID,
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_async_session),
):
    po = await po_service.place_purchase_order(db, po_id, ctx=ctx)
    return _serialize_po(po)


@router.post("/{po_id}/receive", response_model=PurchaseOrderRead)
async def receive_purchase_order(
    po_id: UUID,
    payload: PurchaseOrderReceive,
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_async_session),
):
    po = await po_service.receive_purchase_order(db, po_id, payload.items, ctx=ctx)
    return _serialize_po(po)


@router.post("/{po_id}/cancel", response_model=PurchaseOrderRead)
async def cancel_purchase_order(
    po_id: UUID,
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_async_session),
):
    po = await po_service.cancel_purchase_order(db, po_id, ctx=ctx)
    return _serialize_po(po)
