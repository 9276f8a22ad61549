"""
Tests for invoice line mutations and their stock effects.

Validates:
- create/update/delete move exactly the stock the line holds
- swapping the inventory item restores the old one and deducts the new one
- service/other lines and untracked items never touch stock
- a failure partway leaves stock, line and totals as they were
- invoice totals always equal the sum of the current lines
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from core.errors import BadRequestError, InsufficientStockError, NotFoundError
from core.statuses import InvoiceStatus
from schemas.invoices import InvoiceCreate, InvoiceItemCreate, InvoiceItemUpdate
from services.invoice_items import create_invoice_item, delete_invoice_item, update_invoice_item
from services.invoices import change_invoice_status, create_invoice, get_invoice


async def _new_invoice(db, ctx):
    invoice = await create_invoice(db, InvoiceCreate(), ctx=ctx)
    return invoice.id


def _assert_totals_consistent(invoice):
    line_sum = sum((it.subtotal for it in invoice.items), Decimal("0"))
    assert invoice.subtotal == line_sum
    assert invoice.total_amount == invoice.subtotal + invoice.tax_amount - invoice.discount_amount


class TestCreateInvoiceItem:
    async def test_part_line_deducts_stock(self, db, ctx, shop, make_item, stock):
        item_id = await make_item(quantity=100)
        invoice_id = await _new_invoice(db, ctx)

        invoice = await create_invoice_item(
            db,
            invoice_id,
            InvoiceItemCreate(inventory_item_id=item_id, quantity=5, unit_price=Decimal("50"), type="part"),
            ctx=ctx,
        )

        assert await stock(item_id, shop.main_id) == 95
        assert invoice.subtotal == Decimal("250.00")
        assert invoice.tax_amount == Decimal("25.00")
        assert invoice.total_amount == Decimal("275.00")
        _assert_totals_consistent(invoice)

    async def test_service_line_against_tracked_item_keeps_stock(self, db, ctx, shop, make_item, stock):
        item_id = await make_item(quantity=100)
        invoice_id = await _new_invoice(db, ctx)

        invoice = await create_invoice_item(
            db,
            invoice_id,
            InvoiceItemCreate(inventory_item_id=item_id, quantity=1, unit_price=Decimal("100"), type="service"),
            ctx=ctx,
        )

        assert await stock(item_id, shop.main_id) == 100
        assert invoice.subtotal == Decimal("100.00")

    async def test_untracked_item_keeps_no_stock(self, db, ctx, shop, make_item, stock):
        item_id = await make_item(sku="SRV-DIAG", track_quantity=False)
        invoice_id = await _new_invoice(db, ctx)

        invoice = await create_invoice_item(
            db, invoice_id, InvoiceItemCreate(inventory_item_id=item_id, quantity=3, type="part"), ctx=ctx
        )

        assert await stock(item_id, shop.main_id) == 0
        assert invoice.items[0].type == "part"

    async def test_defaults_from_inventory_item(self, db, ctx, make_item):
        item_id = await make_item(name="iPhone 13 screen", quantity=10, selling_price="129.00")
        invoice_id = await _new_invoice(db, ctx)

        invoice = await create_invoice_item(
            db, invoice_id, InvoiceItemCreate(inventory_item_id=item_id, quantity=2), ctx=ctx
        )

        line = invoice.items[0]
        assert line.description == "iPhone 13 screen"
        assert line.unit_price == Decimal("129.00")
        assert line.type == "part"
        assert line.subtotal == Decimal("258.00")

    async def test_free_text_line_defaults_to_service(self, db, ctx):
        invoice_id = await _new_invoice(db, ctx)

        invoice = await create_invoice_item(
            db, invoice_id, InvoiceItemCreate(description="Labour", quantity=1, unit_price=Decimal("60")), ctx=ctx
        )

        assert invoice.items[0].type == "service"
        assert invoice.items[0].inventory_item_id is None

    async def test_description_required_without_item(self, db, ctx):
        invoice_id = await _new_invoice(db, ctx)

        with pytest.raises(BadRequestError, match="Description is required"):
            await create_invoice_item(db, invoice_id, InvoiceItemCreate(quantity=1), ctx=ctx)

    async def test_insufficient_stock_rejected(self, db, ctx, shop, make_item, stock):
        item_id = await make_item(quantity=2)
        invoice_id = await _new_invoice(db, ctx)

        with pytest.raises(InsufficientStockError) as exc:
            await create_invoice_item(
                db, invoice_id, InvoiceItemCreate(inventory_item_id=item_id, quantity=3), ctx=ctx
            )

        assert str(exc.value) == "Insufficient stock. Available: 2, Requested: 3"
        assert await stock(item_id, shop.main_id) == 2
        invoice = await get_invoice(db, invoice_id, company_id=shop.company_id)
        assert invoice.items == []

    async def test_discount_percent(self, db, ctx):
        invoice_id = await _new_invoice(db, ctx)

        invoice = await create_invoice_item(
            db,
            invoice_id,
            InvoiceItemCreate(description="Case", quantity=2, unit_price=Decimal("25"), discount_percent=Decimal("10")),
            ctx=ctx,
        )

        line = invoice.items[0]
        assert line.discount_amount == Decimal("5.00")
        assert line.subtotal == Decimal("45.00")

    async def test_discount_amount_derives_percent(self, db, ctx):
        invoice_id = await _new_invoice(db, ctx)

        invoice = await create_invoice_item(
            db,
            invoice_id,
            InvoiceItemCreate(description="Case", quantity=4, unit_price=Decimal("25"), discount_amount=Decimal("20")),
            ctx=ctx,
        )

        line = invoice.items[0]
        assert line.discount_percent == Decimal("20.0000")
        assert line.subtotal == Decimal("80.00")

    async def test_discount_amount_over_line_rejected(self, db, ctx):
        invoice_id = await _new_invoice(db, ctx)

        with pytest.raises(BadRequestError, match="cannot exceed line amount"):
            await create_invoice_item(
                db,
                invoice_id,
                InvoiceItemCreate(description="Case", quantity=1, unit_price=Decimal("5"), discount_amount=Decimal("6")),
                ctx=ctx,
            )

    async def test_unknown_invoice(self, db, ctx):
        with pytest.raises(NotFoundError, match="Invoice not found"):
            await create_invoice_item(db, uuid4(), InvoiceItemCreate(description="x", quantity=1), ctx=ctx)

    async def test_paid_invoice_is_immutable(self, db, ctx):
        invoice_id = await _new_invoice(db, ctx)
        await change_invoice_status(db, invoice_id, InvoiceStatus.ISSUED, ctx=ctx)
        await change_invoice_status(db, invoice_id, InvoiceStatus.PAID, ctx=ctx)

        with pytest.raises(BadRequestError, match='status "paid"'):
            await create_invoice_item(db, invoice_id, InvoiceItemCreate(description="x", quantity=1), ctx=ctx)


class TestUpdateInvoiceItem:
    async def _invoice_with_line(self, db, ctx, item_id, quantity=5):
        invoice_id = await _new_invoice(db, ctx)
        invoice = await create_invoice_item(
            db,
            invoice_id,
            InvoiceItemCreate(inventory_item_id=item_id, quantity=quantity, unit_price=Decimal("50"), type="part"),
            ctx=ctx,
        )
        return invoice_id, invoice.items[0].id

    async def test_same_item_quantity_change(self, db, ctx, shop, make_item, stock):
        item_id = await make_item(quantity=100)
        invoice_id, line_id = await self._invoice_with_line(db, ctx, item_id)

        invoice = await update_invoice_item(db, invoice_id, line_id, InvoiceItemUpdate(quantity=8), ctx=ctx)

        assert await stock(item_id, shop.main_id) == 92
        assert invoice.items[0].quantity == 8
        assert invoice.subtotal == Decimal("400.00")
        _assert_totals_consistent(invoice)

    async def test_same_item_quantity_decrease_restores(self, db, ctx, shop, make_item, stock):
        item_id = await make_item(quantity=100)
        invoice_id, line_id = await self._invoice_with_line(db, ctx, item_id)

        await update_invoice_item(db, invoice_id, line_id, InvoiceItemUpdate(quantity=2), ctx=ctx)

        assert await stock(item_id, shop.main_id) == 98

    async def test_increase_counts_units_already_held(self, db, ctx, shop, make_item, stock):
        item_id = await make_item(quantity=8)
        invoice_id, line_id = await self._invoice_with_line(db, ctx, item_id)
        assert await stock(item_id, shop.main_id) == 3

        # 3 on the shelf + 5 already on this line
        await update_invoice_item(db, invoice_id, line_id, InvoiceItemUpdate(quantity=8), ctx=ctx)
        assert await stock(item_id, shop.main_id) == 0

        with pytest.raises(InsufficientStockError) as exc:
            await update_invoice_item(db, invoice_id, line_id, InvoiceItemUpdate(quantity=9), ctx=ctx)
        assert exc.value.available == 8
        assert exc.value.requested == 9

    async def test_swap_inventory_item(self, db, ctx, shop, make_item, stock):
        a_id = await make_item(sku="A", quantity=100)
        b_id = await make_item(sku="B", quantity=50)
        invoice_id, line_id = await self._invoice_with_line(db, ctx, a_id)
        assert await stock(a_id, shop.main_id) == 95

        invoice = await update_invoice_item(
            db, invoice_id, line_id, InvoiceItemUpdate(inventory_item_id=b_id, quantity=3), ctx=ctx
        )

        assert await stock(a_id, shop.main_id) == 100
        assert await stock(b_id, shop.main_id) == 47
        assert invoice.items[0].inventory_item_id == b_id

    async def test_part_to_service_restores_stock(self, db, ctx, shop, make_item, stock):
        item_id = await make_item(quantity=100)
        invoice_id, line_id = await self._invoice_with_line(db, ctx, item_id)

        await update_invoice_item(db, invoice_id, line_id, InvoiceItemUpdate(type="service"), ctx=ctx)

        assert await stock(item_id, shop.main_id) == 100

    async def test_detach_inventory_item_restores_stock(self, db, ctx, shop, make_item, stock):
        item_id = await make_item(quantity=100)
        invoice_id, line_id = await self._invoice_with_line(db, ctx, item_id)

        invoice = await update_invoice_item(
            db, invoice_id, line_id, InvoiceItemUpdate(inventory_item_id=None), ctx=ctx
        )

        assert await stock(item_id, shop.main_id) == 100
        assert invoice.items[0].inventory_item_id is None

    async def test_service_to_part_deducts_stock(self, db, ctx, shop, make_item, stock):
        item_id = await make_item(quantity=10)
        invoice_id = await _new_invoice(db, ctx)
        invoice = await create_invoice_item(
            db,
            invoice_id,
            InvoiceItemCreate(inventory_item_id=item_id, quantity=4, type="service"),
            ctx=ctx,
        )
        line_id = invoice.items[0].id
        assert await stock(item_id, shop.main_id) == 10

        await update_invoice_item(db, invoice_id, line_id, InvoiceItemUpdate(type="part"), ctx=ctx)

        assert await stock(item_id, shop.main_id) == 6

    async def test_failed_swap_rolls_back_everything(self, db, ctx, shop, make_item, stock):
        a_id = await make_item(sku="A", quantity=100)
        b_id = await make_item(sku="B", quantity=2)
        invoice_id, line_id = await self._invoice_with_line(db, ctx, a_id)
        before = await get_invoice(db, invoice_id, company_id=shop.company_id)
        total_before = before.total_amount

        # A is restored first, then B cannot cover 5 units
        with pytest.raises(InsufficientStockError):
            await update_invoice_item(
                db, invoice_id, line_id, InvoiceItemUpdate(inventory_item_id=b_id, quantity=5), ctx=ctx
            )

        assert await stock(a_id, shop.main_id) == 95
        assert await stock(b_id, shop.main_id) == 2
        after = await get_invoice(db, invoice_id, company_id=shop.company_id)
        assert after.items[0].inventory_item_id == a_id
        assert after.items[0].quantity == 5
        assert after.total_amount == total_before

    async def test_existing_discount_reapplied(self, db, ctx):
        invoice_id = await _new_invoice(db, ctx)
        invoice = await create_invoice_item(
            db,
            invoice_id,
            InvoiceItemCreate(description="Case", quantity=2, unit_price=Decimal("25"), discount_percent=Decimal("10")),
            ctx=ctx,
        )
        line_id = invoice.items[0].id

        invoice = await update_invoice_item(db, invoice_id, line_id, InvoiceItemUpdate(quantity=4), ctx=ctx)

        line = invoice.items[0]
        assert line.discount_amount == Decimal("10.00")
        assert line.subtotal == Decimal("90.00")

    async def test_unknown_line(self, db, ctx):
        invoice_id = await _new_invoice(db, ctx)

        with pytest.raises(NotFoundError, match="Invoice item not found"):
            await update_invoice_item(db, invoice_id, uuid4(), InvoiceItemUpdate(quantity=2), ctx=ctx)


class TestDeleteInvoiceItem:
    async def test_round_trip_restores_stock(self, db, ctx, shop, make_item, stock):
        item_id = await make_item(quantity=100)
        invoice_id = await _new_invoice(db, ctx)
        invoice = await create_invoice_item(
            db, invoice_id, InvoiceItemCreate(inventory_item_id=item_id, quantity=5), ctx=ctx
        )
        assert await stock(item_id, shop.main_id) == 95

        invoice = await delete_invoice_item(db, invoice_id, invoice.items[0].id, ctx=ctx)

        assert await stock(item_id, shop.main_id) == 100
        assert invoice.items == []
        assert invoice.subtotal == Decimal("0.00")
        assert invoice.total_amount == Decimal("0.00")

    async def test_delete_service_line_keeps_stock(self, db, ctx, shop, make_item, stock):
        item_id = await make_item(quantity=10)
        invoice_id = await _new_invoice(db, ctx)
        invoice = await create_invoice_item(
            db, invoice_id, InvoiceItemCreate(inventory_item_id=item_id, quantity=1, type="service"), ctx=ctx
        )

        await delete_invoice_item(db, invoice_id, invoice.items[0].id, ctx=ctx)

        assert await stock(item_id, shop.main_id) == 10


class TestTotalsAfterMixedEdits:
    async def test_totals_follow_lines(self, db, ctx, make_item):
        a_id = await make_item(sku="A", quantity=50, selling_price="12.50")
        invoice_id = await _new_invoice(db, ctx)

        invoice = await create_invoice_item(
            db, invoice_id, InvoiceItemCreate(inventory_item_id=a_id, quantity=3), ctx=ctx
        )
        first_line = invoice.items[0].id
        invoice = await create_invoice_item(
            db,
            invoice_id,
            InvoiceItemCreate(description="Labour", quantity=1, unit_price=Decimal("45"), discount_percent=Decimal("15")),
            ctx=ctx,
        )
        _assert_totals_consistent(invoice)

        invoice = await update_invoice_item(db, invoice_id, first_line, InvoiceItemUpdate(quantity=1), ctx=ctx)
        _assert_totals_consistent(invoice)

        invoice = await delete_invoice_item(db, invoice_id, first_line, ctx=ctx)
        _assert_totals_consistent(invoice)
        assert invoice.subtotal == Decimal("38.25")
        assert invoice.tax_amount == Decimal("3.83")
        assert invoice.total_amount == Decimal("42.08")
