"""
Purchase orders: draft editing, placing, cancelling and receiving.

Receiving is the only step with stock effects. It validates every received
line before touching anything, then for each line records the received
quantity, folds the received cost into the item's weighted-average cost and
credits the ledger at the purchase order's location. The whole receipt is one
unit of work.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Iterable, List, Optional
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from core.config import settings
from core.errors import BadRequestError, NotFoundError
from core.money import Number, quantize_money, to_decimal
from core.statuses import PurchaseOrderStatus, ensure_transition
from core.tenant import TenantContext
from db.database import unit_of_work
from db.purchase_order import PurchaseOrder as PurchaseOrderModel, PurchaseOrderItem as PurchaseOrderItemModel
from schemas.purchase_orders import PurchaseOrderCreate, PurchaseOrderItemCreate, PurchaseOrderUpdate, ReceivedItem
from services.ledger import adjust_quantity, get_inventory_item, get_location, get_quantity_for_location
from services.numbering import generate_document_number

logger = logging.getLogger(__name__)

SOURCE_TYPE = "purchase_order"


def weighted_average_cost(
    current_quantity: int,
    current_cost: Number,
    received_quantity: int,
    received_cost: Number,
) -> Decimal:
    """
    (q*c + r*u) / (q + r), rounded to cents.

    With no stock on hand (q <= 0) the received cost replaces the old one.
    """
    if current_quantity <= 0 or current_quantity + received_quantity <= 0:
        return quantize_money(received_cost)
    q = to_decimal(current_quantity)
    r = to_decimal(received_quantity)
    total_value = q * to_decimal(current_cost) + r * to_decimal(received_cost)
    return quantize_money(total_value / (q + r))


def _sum_subtotals(lines: Iterable[PurchaseOrderItemModel]) -> Decimal:
    return quantize_money(sum((to_decimal(line.subtotal) for line in lines), Decimal("0")))


async def load_purchase_order(db: AsyncSession, po_id: UUID, *, company_id: UUID) -> PurchaseOrderModel:
    res = await db.execute(
        select(PurchaseOrderModel)
        .options(selectinload(PurchaseOrderModel.items).selectinload(PurchaseOrderItemModel.inventory_item))
        .where(
            PurchaseOrderModel.id == po_id,
            PurchaseOrderModel.company_id == company_id,
            PurchaseOrderModel.deleted_at.is_(None),
        )
        .execution_options(populate_existing=True)
    )
    po = res.scalar_one_or_none()
    if not po:
        raise NotFoundError("Purchase order not found")
    return po


async def list_purchase_orders(
    db: AsyncSession,
    *,
    company_id: UUID,
    status: Optional[str] = None,
    location_id: Optional[UUID] = None,
) -> List[PurchaseOrderModel]:
    stmt = (
        select(PurchaseOrderModel)
        .options(selectinload(PurchaseOrderModel.items).selectinload(PurchaseOrderItemModel.inventory_item))
        .where(PurchaseOrderModel.company_id == company_id, PurchaseOrderModel.deleted_at.is_(None))
        .order_by(PurchaseOrderModel.created_at.desc())
    )
    if status:
        stmt = stmt.where(PurchaseOrderModel.status == status)
    if location_id:
        stmt = stmt.where(PurchaseOrderModel.location_id == location_id)
    res = await db.execute(stmt)
    return list(res.scalars().all())


def _ensure_draft(po: PurchaseOrderModel, action: str) -> None:
    if po.status != PurchaseOrderStatus.DRAFT.value:
        raise BadRequestError(f'Cannot {action} a purchase order with status "{po.status}"')


async def _build_lines(
    db: AsyncSession,
    items: List[PurchaseOrderItemCreate],
    *,
    company_id: UUID,
) -> List[PurchaseOrderItemModel]:
    lines = []
    for item in items:
        inventory_item = await get_inventory_item(db, item.inventory_item_id, company_id=company_id)
        unit_cost = quantize_money(item.unit_cost)
        lines.append(
            PurchaseOrderItemModel(
                id=uuid4(),
                inventory_item_id=inventory_item.id,
                quantity_ordered=item.quantity_ordered,
                quantity_received=0,
                unit_cost=unit_cost,
                subtotal=quantize_money(unit_cost * item.quantity_ordered),
                notes=item.notes,
            )
        )
    return lines


async def create_purchase_order(
    db: AsyncSession,
    payload: PurchaseOrderCreate,
    *,
    ctx: TenantContext,
) -> PurchaseOrderModel:
    location_id = payload.location_id or ctx.location_id
    if location_id is None:
        raise BadRequestError("Purchase order location is required")

    async with unit_of_work(db):
        location = await get_location(db, location_id, company_id=ctx.company_id)
        lines = await _build_lines(db, payload.items, company_id=ctx.company_id)
        po_number = await generate_document_number(
            db,
            PurchaseOrderModel.po_number,
            PurchaseOrderModel.company_id,
            ctx.company_id,
            settings.po_number_prefix,
        )
        po = PurchaseOrderModel(
            id=uuid4(),
            company_id=ctx.company_id,
            location_id=location.id,
            po_number=po_number,
            supplier=payload.supplier,
            status=PurchaseOrderStatus.DRAFT.value,
            expected_delivery_date=payload.expected_delivery_date,
            notes=payload.notes,
            total_amount=_sum_subtotals(lines),
            items=lines,
        )
        db.add(po)
        await db.flush()

    logger.info("Purchase order %s created for %s (%s lines)", po_number, payload.supplier, len(lines))
    return await load_purchase_order(db, po.id, company_id=ctx.company_id)


async def update_purchase_order(
    db: AsyncSession,
    po_id: UUID,
    payload: PurchaseOrderUpdate,
    *,
    ctx: TenantContext,
) -> PurchaseOrderModel:
    data = payload.model_dump(exclude_unset=True)

    async with unit_of_work(db):
        po = await load_purchase_order(db, po_id, company_id=ctx.company_id)
        _ensure_draft(po, "edit")

        for field in ("supplier", "expected_delivery_date", "notes"):
            if field in data and (field != "supplier" or data[field]):
                setattr(po, field, data[field])

        if payload.items is not None:
            lines = await _build_lines(db, payload.items, company_id=ctx.company_id)
            po.items = lines
            po.total_amount = _sum_subtotals(lines)

        await db.flush()

    return await load_purchase_order(db, po_id, company_id=ctx.company_id)


async def delete_purchase_order(db: AsyncSession, po_id: UUID, *, ctx: TenantContext) -> None:
    async with unit_of_work(db):
        po = await load_purchase_order(db, po_id, company_id=ctx.company_id)
        _ensure_draft(po, "delete")
        po.deleted_at = datetime.now(timezone.utc)


async def _claim_status(
    db: AsyncSession,
    po: PurchaseOrderModel,
    target: PurchaseOrderStatus,
    **values,
) -> None:
    """
    Move `po` to `target` with a conditional UPDATE on its current status.

    A concurrent request that already moved the row leaves nothing to match,
    which is reported the same way as an invalid transition.
    """
    current = po.status
    ensure_transition(current, target)
    tbl = PurchaseOrderModel.__table__
    res = await db.execute(
        update(tbl)
        .where(tbl.c.id == po.id, tbl.c.status == current)
        .values(status=target.value, **values)
    )
    if res.rowcount != 1:
        raise BadRequestError(f'Purchase order {po.po_number} is no longer "{current}"')
    po.status = target.value
    for key, value in values.items():
        setattr(po, key, value)


async def place_purchase_order(db: AsyncSession, po_id: UUID, *, ctx: TenantContext) -> PurchaseOrderModel:
    async with unit_of_work(db):
        po = await load_purchase_order(db, po_id, company_id=ctx.company_id)
        await _claim_status(db, po, PurchaseOrderStatus.ORDERED, order_date=datetime.now(timezone.utc))

    logger.info("Purchase order %s placed", po.po_number)
    return await load_purchase_order(db, po_id, company_id=ctx.company_id)


async def cancel_purchase_order(db: AsyncSession, po_id: UUID, *, ctx: TenantContext) -> PurchaseOrderModel:
    async with unit_of_work(db):
        po = await load_purchase_order(db, po_id, company_id=ctx.company_id)
        await _claim_status(db, po, PurchaseOrderStatus.CANCELLED)

    logger.info("Purchase order %s cancelled", po.po_number)
    return await load_purchase_order(db, po_id, company_id=ctx.company_id)


def _validate_receipt(po: PurchaseOrderModel, received_items: List[ReceivedItem]) -> Dict[UUID, PurchaseOrderItemModel]:
    lines_by_id = {line.id: line for line in po.items}
    seen = set()
    for received in received_items:
        line = lines_by_id.get(received.item_id)
        if line is None:
            raise BadRequestError(f"Purchase order item {received.item_id} not found on this purchase order")
        if received.item_id in seen:
            raise BadRequestError(f"Purchase order item {received.item_id} is listed more than once")
        seen.add(received.item_id)
        if received.quantity_received < 0:
            raise BadRequestError("Quantity received cannot be negative")
        if received.quantity_received > line.quantity_ordered:
            raise BadRequestError(
                f"Quantity received ({received.quantity_received}) cannot exceed "
                f"quantity ordered ({line.quantity_ordered})"
            )
    return lines_by_id


async def receive_purchase_order(
    db: AsyncSession,
    po_id: UUID,
    received_items: List[ReceivedItem],
    *,
    ctx: TenantContext,
) -> PurchaseOrderModel:
    async with unit_of_work(db):
        po = await load_purchase_order(db, po_id, company_id=ctx.company_id)
        if po.status != PurchaseOrderStatus.ORDERED.value:
            logger.warning("Rejected receipt of purchase order %s in status %s", po.po_number, po.status)
            raise BadRequestError(f'Only ordered purchase orders can be received (status is "{po.status}")')

        lines_by_id = _validate_receipt(po, received_items)
        await _claim_status(db, po, PurchaseOrderStatus.RECEIVED, received_date=datetime.now(timezone.utc))

        for received in received_items:
            line = lines_by_id[received.item_id]
            quantity = received.quantity_received
            line.quantity_received = quantity
            line.subtotal = quantize_money(to_decimal(line.unit_cost) * quantity)
            if quantity == 0:
                continue

            inventory_item = await get_inventory_item(db, line.inventory_item_id, company_id=ctx.company_id)
            # untracked items have no on-hand stock to average against
            if inventory_item.track_quantity:
                on_hand = await get_quantity_for_location(
                    db, inventory_item.id, po.location_id, company_id=ctx.company_id
                )
                inventory_item.cost_price = weighted_average_cost(
                    on_hand, inventory_item.cost_price, quantity, line.unit_cost
                )
            await adjust_quantity(
                db,
                inventory_item.id,
                po.location_id,
                quantity,
                company_id=ctx.company_id,
                reason=f"Purchase order {po.po_number} received",
                source_type=SOURCE_TYPE,
                source_id=po.id,
                user_id=ctx.user_id,
            )

        po.total_amount = _sum_subtotals(po.items)
        await db.flush()

    logger.info("Purchase order %s received (%s lines)", po.po_number, len(received_items))
    return await load_purchase_order(db, po_id, company_id=ctx.company_id)
