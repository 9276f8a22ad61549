"""
Invoice line create/update/delete with their stock effects.

Each entry point runs as one unit of work: the line write, every ledger
adjustment it implies, and the invoice recalculation commit together or not
at all.

Stock effect per operation (only for inventory-backed lines, see
`services.ledger.is_inventory_backed`):

- create: -quantity on the line's item
- update, same item: old_quantity - new_quantity in one adjustment
- update, item/backing changed: +old_quantity on the old item,
  then -new_quantity on the new item
- delete: +quantity on the line's item
"""

import logging
from decimal import Decimal
from typing import Optional, Tuple
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import BadRequestError, InsufficientStockError, NotFoundError
from core.money import Number, quantize_money, to_decimal
from core.statuses import InvoiceItemType
from core.tenant import TenantContext
from db.database import unit_of_work
from db.inventory.item import InventoryItem as InventoryItemModel
from db.invoice import Invoice as InvoiceModel, InvoiceItem as InvoiceItemModel
from schemas.invoices import InvoiceItemCreate, InvoiceItemUpdate
from services.invoice_totals import compute_line_amounts, recalculate
from services.invoices import ensure_invoice_mutable, get_invoice, load_invoice
from services.ledger import adjust_quantity, get_inventory_item, get_quantity_for_location, is_inventory_backed

logger = logging.getLogger(__name__)

SOURCE_TYPE = "invoice_item"


def resolve_line_amounts(
    quantity: int,
    unit_price: Number,
    *,
    discount_percent: Optional[Number] = None,
    discount_amount: Optional[Number] = None,
    fallback_percent: Number = 0,
) -> Tuple[Decimal, Decimal, Decimal]:
    """
    Return (discount_percent, discount_amount, subtotal) for a line.

    An explicit discount amount wins and the percent is derived from it; an
    explicit percent derives the amount; otherwise `fallback_percent` (the
    line's current percent on update) is re-applied to the new quantity/price.
    """
    gross = quantize_money(to_decimal(quantity) * to_decimal(unit_price))

    if discount_amount is not None:
        amount = quantize_money(discount_amount)
        if amount > gross:
            raise BadRequestError(f"Discount amount ({amount}) cannot exceed line amount ({gross})")
        percent = (amount / gross * 100).quantize(Decimal("0.0001")) if gross > 0 else Decimal("0")
        return percent, amount, gross - amount

    percent = to_decimal(discount_percent if discount_percent is not None else fallback_percent)
    amount, subtotal = compute_line_amounts(quantity, unit_price, percent)
    return percent, amount, subtotal


async def _load_line(db: AsyncSession, invoice_id: UUID, item_id: UUID) -> InvoiceItemModel:
    res = await db.execute(
        select(InvoiceItemModel).where(
            InvoiceItemModel.id == item_id,
            InvoiceItemModel.invoice_id == invoice_id,
        )
    )
    line = res.scalar_one_or_none()
    if not line:
        raise NotFoundError("Invoice item not found")
    return line


async def _previous_inventory_item(
    db: AsyncSession,
    inventory_item_id: Optional[UUID],
    *,
    company_id: UUID,
) -> Optional[InventoryItemModel]:
    """The item a line already points at; a since-deleted item is treated as none."""
    if inventory_item_id is None:
        return None
    try:
        return await get_inventory_item(db, inventory_item_id, company_id=company_id)
    except NotFoundError:
        logger.warning("Invoice line references missing inventory item %s; no stock restored", inventory_item_id)
        return None


async def _ensure_available(
    db: AsyncSession,
    inventory_item: InventoryItemModel,
    location_id: UUID,
    requested: int,
    *,
    company_id: UUID,
    already_held: int = 0,
) -> None:
    available = await get_quantity_for_location(db, inventory_item.id, location_id, company_id=company_id)
    if requested > available + already_held:
        raise InsufficientStockError(
            available=available + already_held,
            requested=requested,
            inventory_item_id=inventory_item.id,
            location_id=location_id,
        )


async def _move_stock(
    db: AsyncSession,
    invoice: InvoiceModel,
    inventory_item_id: UUID,
    delta: int,
    *,
    line_id: UUID,
    ctx: TenantContext,
) -> None:
    if delta == 0:
        return
    action = "restored" if delta > 0 else "deducted"
    await adjust_quantity(
        db,
        inventory_item_id,
        invoice.location_id,
        delta,
        company_id=ctx.company_id,
        reason=f"Invoice {invoice.invoice_number}: {action}",
        source_type=SOURCE_TYPE,
        source_id=line_id,
        user_id=ctx.user_id,
    )


async def create_invoice_item(
    db: AsyncSession,
    invoice_id: UUID,
    payload: InvoiceItemCreate,
    *,
    ctx: TenantContext,
) -> InvoiceModel:
    async with unit_of_work(db):
        invoice = await load_invoice(db, invoice_id, company_id=ctx.company_id)
        ensure_invoice_mutable(invoice)

        inventory_item = None
        if payload.inventory_item_id:
            inventory_item = await get_inventory_item(db, payload.inventory_item_id, company_id=ctx.company_id)

        item_type = payload.type or (InvoiceItemType.PART.value if inventory_item else InvoiceItemType.SERVICE.value)
        description = payload.description or (inventory_item.name if inventory_item else None)
        if not description:
            raise BadRequestError("Description is required")
        unit_price = payload.unit_price
        if unit_price is None:
            unit_price = inventory_item.selling_price if inventory_item else Decimal("0")

        discount_percent, discount_amount, subtotal = resolve_line_amounts(
            payload.quantity,
            unit_price,
            discount_percent=payload.discount_percent,
            discount_amount=payload.discount_amount,
        )

        backed = is_inventory_backed(item_type, inventory_item)
        if backed:
            await _ensure_available(db, inventory_item, invoice.location_id, payload.quantity, company_id=ctx.company_id)

        line = InvoiceItemModel(
            id=uuid4(),
            invoice_id=invoice.id,
            inventory_item_id=inventory_item.id if inventory_item else None,
            description=description,
            quantity=payload.quantity,
            unit_price=quantize_money(unit_price),
            discount_percent=discount_percent,
            discount_amount=discount_amount,
            subtotal=subtotal,
            type=item_type,
        )
        db.add(line)
        await db.flush()

        if backed:
            await _move_stock(db, invoice, inventory_item.id, -payload.quantity, line_id=line.id, ctx=ctx)

        await recalculate(db, invoice.id, company_id=ctx.company_id)

    logger.info("Invoice %s: added %s x %s", invoice.invoice_number, line.quantity, line.description)
    return await get_invoice(db, invoice_id, company_id=ctx.company_id)


async def update_invoice_item(
    db: AsyncSession,
    invoice_id: UUID,
    item_id: UUID,
    payload: InvoiceItemUpdate,
    *,
    ctx: TenantContext,
) -> InvoiceModel:
    # last write wins on the line row; totals are recomputed from all lines
    data = payload.model_dump(exclude_unset=True)

    async with unit_of_work(db):
        invoice = await load_invoice(db, invoice_id, company_id=ctx.company_id)
        ensure_invoice_mutable(invoice)
        line = await _load_line(db, invoice_id, item_id)

        old_quantity = int(line.quantity)
        old_item = await _previous_inventory_item(db, line.inventory_item_id, company_id=ctx.company_id)
        old_backed = is_inventory_backed(line.type, old_item)

        new_inventory_item_id = data["inventory_item_id"] if "inventory_item_id" in data else line.inventory_item_id
        new_quantity = int(data.get("quantity") or old_quantity)
        new_type = data.get("type") or line.type

        if new_inventory_item_id is None:
            new_item = None
        elif old_item is not None and new_inventory_item_id == old_item.id:
            new_item = old_item
        elif new_inventory_item_id == line.inventory_item_id:
            # unchanged reference to an item deleted since; nothing to move
            new_item = None
        else:
            new_item = await get_inventory_item(db, new_inventory_item_id, company_id=ctx.company_id)
        new_backed = is_inventory_backed(new_type, new_item)

        location_id = invoice.location_id
        if old_backed and new_backed and old_item.id == new_item.id:
            delta = old_quantity - new_quantity
            if delta < 0:
                await _ensure_available(
                    db, new_item, location_id, new_quantity,
                    company_id=ctx.company_id, already_held=old_quantity,
                )
            await _move_stock(db, invoice, new_item.id, delta, line_id=line.id, ctx=ctx)
        else:
            if old_backed:
                await _move_stock(db, invoice, old_item.id, old_quantity, line_id=line.id, ctx=ctx)
            if new_backed:
                await _ensure_available(db, new_item, location_id, new_quantity, company_id=ctx.company_id)
                await _move_stock(db, invoice, new_item.id, -new_quantity, line_id=line.id, ctx=ctx)

        unit_price = data["unit_price"] if data.get("unit_price") is not None else line.unit_price
        discount_percent, discount_amount, subtotal = resolve_line_amounts(
            new_quantity,
            unit_price,
            discount_percent=data.get("discount_percent"),
            discount_amount=data.get("discount_amount"),
            fallback_percent=line.discount_percent or 0,
        )

        if data.get("description"):
            line.description = data["description"]
        line.inventory_item_id = new_inventory_item_id
        line.quantity = new_quantity
        line.type = new_type
        line.unit_price = quantize_money(unit_price)
        line.discount_percent = discount_percent
        line.discount_amount = discount_amount
        line.subtotal = subtotal
        await db.flush()

        await recalculate(db, invoice.id, company_id=ctx.company_id)

    return await get_invoice(db, invoice_id, company_id=ctx.company_id)


async def delete_invoice_item(
    db: AsyncSession,
    invoice_id: UUID,
    item_id: UUID,
    *,
    ctx: TenantContext,
) -> InvoiceModel:
    async with unit_of_work(db):
        invoice = await load_invoice(db, invoice_id, company_id=ctx.company_id)
        ensure_invoice_mutable(invoice)
        line = await _load_line(db, invoice_id, item_id)

        inventory_item = await _previous_inventory_item(db, line.inventory_item_id, company_id=ctx.company_id)
        if is_inventory_backed(line.type, inventory_item):
            await _move_stock(db, invoice, inventory_item.id, int(line.quantity), line_id=line.id, ctx=ctx)

        await db.delete(line)
        await db.flush()

        await recalculate(db, invoice.id, company_id=ctx.company_id)

    logger.info("Invoice %s: removed line %s", invoice.invoice_number, item_id)
    return await get_invoice(db, invoice_id, company_id=ctx.company_id)
