"""
Invoice money fields are a view over the invoice's line items.

`recalculate` is the only writer of `subtotal`, `tax_amount` and
`total_amount`; it always re-reads every current line, so two racing item
edits still converge on the right totals.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Tuple
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import NotFoundError
from core.money import Number, quantize_money, to_decimal
from db.database import unit_of_work
from db.invoice import Invoice as InvoiceModel, InvoiceItem as InvoiceItemModel

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal: Decimal
    tax_amount: Decimal
    total_amount: Decimal


def compute_line_amounts(quantity: int, unit_price: Number, discount_percent: Number) -> Tuple[Decimal, Decimal]:
    """Return (discount_amount, subtotal) for one invoice line."""
    gross = to_decimal(quantity) * to_decimal(unit_price)
    discount_amount = quantize_money(gross * to_decimal(discount_percent) / HUNDRED)
    return discount_amount, quantize_money(gross) - discount_amount


def compute_invoice_totals(
    item_subtotals: Iterable[Number],
    tax_rate: Number,
    discount_amount: Number,
) -> InvoiceTotals:
    subtotal = quantize_money(sum((to_decimal(s) for s in item_subtotals), Decimal("0")))
    tax_amount = quantize_money(subtotal * to_decimal(tax_rate) / HUNDRED)
    total_amount = subtotal + tax_amount - quantize_money(discount_amount)
    return InvoiceTotals(subtotal=subtotal, tax_amount=tax_amount, total_amount=total_amount)


async def recalculate(db: AsyncSession, invoice_id: UUID, *, company_id: UUID) -> InvoiceTotals:
    """Rebuild the invoice's money fields from its current items (no commit)."""
    res = await db.execute(
        select(InvoiceModel.tax_rate, InvoiceModel.discount_amount).where(
            InvoiceModel.id == invoice_id,
            InvoiceModel.company_id == company_id,
            InvoiceModel.deleted_at.is_(None),
        )
    )
    row = res.first()
    if row is None:
        raise NotFoundError("Invoice not found")

    sres = await db.execute(
        select(InvoiceItemModel.subtotal).where(InvoiceItemModel.invoice_id == invoice_id)
    )
    totals = compute_invoice_totals(sres.scalars().all(), row.tax_rate, row.discount_amount)

    await db.execute(
        update(InvoiceModel)
        .where(InvoiceModel.id == invoice_id, InvoiceModel.company_id == company_id)
        .values(
            subtotal=totals.subtotal,
            tax_amount=totals.tax_amount,
            total_amount=totals.total_amount,
        )
        .execution_options(synchronize_session="fetch")
    )
    logger.debug("Invoice %s totals: %s", invoice_id, totals)
    return totals


async def recalculate_invoice(db: AsyncSession, invoice_id: UUID, *, company_id: UUID) -> InvoiceTotals:
    async with unit_of_work(db):
        return await recalculate(db, invoice_id, company_id=company_id)
