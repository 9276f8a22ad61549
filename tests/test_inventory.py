import pytest
from pydantic import ValidationError

from core.errors import BadRequestError, InsufficientStockError, NotFoundError
from schemas.inventory import InventoryItemCreate, InventoryItemUpdate, StockAdjustment, TransferCreate
from services.inventory import (
    adjust_stock,
    create_inventory_item,
    delete_inventory_item,
    get_item_stock,
    list_inventory_items,
    list_movements,
    list_stock_for_location,
    update_inventory_item,
)
from services.ledger import get_inventory_item
from services.numbering import format_sku
from services.transfers import cancel_transfer, create_transfer


class TestCreateInventoryItem:
    async def test_generated_sku_and_opening_stock(self, db, ctx, shop, stock):
        item = await create_inventory_item(
            db, InventoryItemCreate(name="iPhone 13 screen", cost_price="40", initial_quantity=4), ctx=ctx
        )

        assert item.sku.startswith("SKU-")
        assert item.location_id == shop.main_id
        assert await stock(item.id, shop.main_id) == 4

        movements = await list_movements(db, company_id=shop.company_id, inventory_item_id=item.id)
        assert [(m.change, m.reason, m.source_type) for m in movements] == [(4, "Opening stock", "manual")]

    async def test_duplicate_sku_at_same_location(self, db, ctx, shop, make_item):
        await make_item(sku="BATT-1")

        with pytest.raises(BadRequestError, match="SKU BATT-1 already exists at this location"):
            await create_inventory_item(db, InventoryItemCreate(sku="BATT-1", name="Battery"), ctx=ctx)

        other = await create_inventory_item(
            db, InventoryItemCreate(sku="BATT-1", name="Battery", location_id=shop.branch_id), ctx=ctx
        )
        assert other.location_id == shop.branch_id

    def test_opening_stock_requires_tracking(self):
        with pytest.raises(ValidationError):
            InventoryItemCreate(name="Labour", track_quantity=False, initial_quantity=1)

    def test_format_sku(self):
        sku = format_sku(suffix=7)
        prefix, millis, suffix = sku.split("-")
        assert prefix == "SKU"
        assert len(millis) == 8
        assert suffix == "007"


class TestUpdateInventoryItem:
    async def test_cannot_stop_tracking_with_stock(self, db, ctx, make_item):
        item_id = await make_item(quantity=2)

        with pytest.raises(BadRequestError, match="Cannot stop tracking quantity"):
            await update_inventory_item(db, item_id, InventoryItemUpdate(track_quantity=False), ctx=ctx)

    async def test_cannot_stop_tracking_with_pending_transfer(self, db, ctx, shop, make_item, stock):
        item_id = await make_item(quantity=5)
        transfer = await create_transfer(
            db, TransferCreate(to_location_id=shop.branch_id, inventory_item_id=item_id, quantity=5), ctx=ctx
        )
        transfer_id = transfer.id

        with pytest.raises(BadRequestError, match="while a transfer is pending"):
            await update_inventory_item(db, item_id, InventoryItemUpdate(track_quantity=False), ctx=ctx)

        await cancel_transfer(db, transfer_id, ctx=ctx)
        assert await stock(item_id, shop.main_id) == 5

    async def test_rename_and_reprice(self, db, ctx, shop, make_item):
        item_id = await make_item()

        await update_inventory_item(
            db, item_id, InventoryItemUpdate(name="Charging port", selling_price="12.345"), ctx=ctx
        )

        item = await get_inventory_item(db, item_id, company_id=shop.company_id)
        assert item.name == "Charging port"
        assert str(item.selling_price) == "12.35"


class TestDeleteInventoryItem:
    async def test_refused_while_stock_on_hand(self, db, ctx, make_item):
        item_id = await make_item(quantity=1)

        with pytest.raises(BadRequestError, match="non-zero quantity"):
            await delete_inventory_item(db, item_id, ctx=ctx)

    async def test_refused_with_pending_transfer(self, db, ctx, shop, make_item):
        item_id = await make_item(quantity=5)
        await create_transfer(
            db, TransferCreate(to_location_id=shop.branch_id, inventory_item_id=item_id, quantity=5), ctx=ctx
        )

        with pytest.raises(BadRequestError, match="pending transfers"):
            await delete_inventory_item(db, item_id, ctx=ctx)

    async def test_soft_delete_frees_sku(self, db, ctx, shop, make_item):
        item_id = await make_item(sku="CAM-1")

        await delete_inventory_item(db, item_id, ctx=ctx)

        with pytest.raises(NotFoundError):
            await get_inventory_item(db, item_id, company_id=shop.company_id)
        again = await create_inventory_item(db, InventoryItemCreate(sku="CAM-1", name="Camera"), ctx=ctx)
        assert again.id != item_id


class TestAdjustStock:
    async def test_manual_adjustment(self, db, ctx, shop, make_item, stock):
        item_id = await make_item(quantity=5)

        new_qty = await adjust_stock(db, item_id, StockAdjustment(change=-2, reason="Damaged"), ctx=ctx)

        assert new_qty == 3
        assert await stock(item_id, shop.main_id) == 3
        movements = await list_movements(db, company_id=shop.company_id, source_type="manual")
        assert [(m.change, m.quantity_after, m.reason) for m in movements] == [(-2, 3, "Damaged")]

    async def test_cannot_go_negative(self, db, ctx, shop, make_item, stock):
        item_id = await make_item(quantity=1)

        with pytest.raises(InsufficientStockError):
            await adjust_stock(db, item_id, StockAdjustment(change=-2), ctx=ctx)

        assert await stock(item_id, shop.main_id) == 1

    async def test_untracked_item_rejected(self, db, ctx, make_item):
        item_id = await make_item(sku="SRV", track_quantity=False)

        with pytest.raises(BadRequestError, match="does not track quantity"):
            await adjust_stock(db, item_id, StockAdjustment(change=1), ctx=ctx)

    def test_zero_change_is_invalid(self):
        with pytest.raises(ValidationError):
            StockAdjustment(change=0)


class TestStockQueries:
    async def test_list_items_with_location_quantities(self, db, shop, make_item):
        tracked_id = await make_item(sku="A", name="Adhesive strip", quantity=6)
        service_id = await make_item(sku="B", name="Board repair", track_quantity=False)

        rows = await list_inventory_items(db, company_id=shop.company_id, location_id=shop.main_id)
        assert [(item.id, qty) for item, qty in rows] == [(tracked_id, 6), (service_id, None)]

        rows = await list_inventory_items(db, company_id=shop.company_id, q="adhes")
        assert [item.id for item, _ in rows] == [tracked_id]

    async def test_item_and_location_stock(self, db, ctx, shop, make_item):
        item_id = await make_item(quantity=6)
        await adjust_stock(db, item_id, StockAdjustment(location_id=shop.branch_id, change=2), ctx=ctx)

        item, locations = await get_item_stock(db, item_id, company_id=shop.company_id)
        assert item.id == item_id
        assert [(loc.name, qty) for loc, qty in locations] == [("Main Street", 6), ("Mall Kiosk", 2)]

        location, rows = await list_stock_for_location(db, shop.branch_id, company_id=shop.company_id)
        assert location.name == "Mall Kiosk"
        assert [(it.id, qty) for it, qty in rows] == [(item_id, 2)]

    async def test_movements_scoped_to_company(self, db, shop, other_shop, make_item):
        await make_item(quantity=3)

        assert await list_movements(db, company_id=other_shop.company_id) == []
