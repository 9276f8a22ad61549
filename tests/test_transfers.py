from uuid import uuid4

import pytest

from core.errors import BadRequestError, NotFoundError
from db.inventory.transfer import InventoryTransfer
from schemas.inventory import TransferCreate
from services.ledger import get_inventory_item
from services.transfers import cancel_transfer, complete_transfer, create_transfer, get_transfer, list_transfers


class TestCreateTransfer:
    async def test_debits_source_immediately(self, db, ctx, shop, make_item, stock):
        item_id = await make_item(quantity=20)

        transfer = await create_transfer(
            db, TransferCreate(to_location_id=shop.branch_id, inventory_item_id=item_id, quantity=5), ctx=ctx
        )

        assert transfer.status == "pending"
        assert transfer.from_location_id == shop.main_id
        assert transfer.from_location.name == "Main Street"
        assert transfer.to_location.name == "Mall Kiosk"
        assert transfer.inventory_item.sku == "PART-1"
        assert await stock(item_id, shop.main_id) == 15
        assert await stock(item_id, shop.branch_id) == 0

    async def test_insufficient_quantity(self, db, ctx, shop, make_item, stock):
        item_id = await make_item(quantity=20)

        with pytest.raises(BadRequestError, match="Insufficient quantity. Available: 20, Requested: 25"):
            await create_transfer(
                db, TransferCreate(to_location_id=shop.branch_id, inventory_item_id=item_id, quantity=25), ctx=ctx
            )

        assert await stock(item_id, shop.main_id) == 20

    async def test_same_location_rejected(self, db, ctx, shop, make_item):
        item_id = await make_item(quantity=20)

        with pytest.raises(BadRequestError, match="must be different"):
            await create_transfer(
                db, TransferCreate(to_location_id=shop.main_id, inventory_item_id=item_id, quantity=1), ctx=ctx
            )

    async def test_foreign_location_rejected(self, db, ctx, other_shop, make_item):
        item_id = await make_item(quantity=20)

        with pytest.raises(NotFoundError, match="Location not found"):
            await create_transfer(
                db, TransferCreate(to_location_id=other_shop.main_id, inventory_item_id=item_id, quantity=1), ctx=ctx
            )

    async def test_untracked_item_rejected(self, db, ctx, shop, make_item):
        item_id = await make_item(sku="SRV", track_quantity=False)

        with pytest.raises(BadRequestError, match="does not track quantity"):
            await create_transfer(
                db, TransferCreate(to_location_id=shop.branch_id, inventory_item_id=item_id, quantity=1), ctx=ctx
            )


class TestCompleteTransfer:
    async def test_relocates_item_without_destination_match(self, db, ctx, shop, make_item, stock):
        item_id = await make_item(quantity=20)
        transfer = await create_transfer(
            db, TransferCreate(to_location_id=shop.branch_id, inventory_item_id=item_id, quantity=5), ctx=ctx
        )

        transfer = await complete_transfer(db, transfer.id, ctx=ctx)

        assert transfer.status == "completed"
        assert await stock(item_id, shop.main_id) == 15
        assert await stock(item_id, shop.branch_id) == 5
        item = await get_inventory_item(db, item_id, company_id=shop.company_id)
        assert item.location_id == shop.branch_id

    async def test_merges_into_same_sku_at_destination(self, db, ctx, shop, make_item, stock):
        source_id = await make_item(sku="SCR-IP13", quantity=20)
        dest_id = await make_item(sku="SCR-IP13", quantity=3, location_id=shop.branch_id)
        transfer = await create_transfer(
            db, TransferCreate(to_location_id=shop.branch_id, inventory_item_id=source_id, quantity=5), ctx=ctx
        )

        await complete_transfer(db, transfer.id, ctx=ctx)

        assert await stock(source_id, shop.main_id) == 15
        assert await stock(source_id, shop.branch_id) == 0
        assert await stock(dest_id, shop.branch_id) == 8
        source = await get_inventory_item(db, source_id, company_id=shop.company_id)
        assert source.location_id == shop.main_id

    async def test_untracked_same_sku_at_destination_keeps_units(self, db, ctx, shop, make_item, stock):
        source_id = await make_item(sku="SCR-IP13", quantity=20)
        await make_item(sku="SCR-IP13", location_id=shop.branch_id, track_quantity=False)
        transfer = await create_transfer(
            db, TransferCreate(to_location_id=shop.branch_id, inventory_item_id=source_id, quantity=5), ctx=ctx
        )

        transfer = await complete_transfer(db, transfer.id, ctx=ctx)

        assert transfer.status == "completed"
        assert await stock(source_id, shop.main_id) + await stock(source_id, shop.branch_id) == 20
        assert await stock(source_id, shop.branch_id) == 5
        source = await get_inventory_item(db, source_id, company_id=shop.company_id)
        assert source.location_id == shop.main_id

    async def test_complete_twice_rejected(self, db, ctx, shop, make_item, stock):
        item_id = await make_item(quantity=20)
        transfer = await create_transfer(
            db, TransferCreate(to_location_id=shop.branch_id, inventory_item_id=item_id, quantity=5), ctx=ctx
        )
        transfer_id = transfer.id
        await complete_transfer(db, transfer_id, ctx=ctx)

        with pytest.raises(BadRequestError, match='from "completed" to "completed"'):
            await complete_transfer(db, transfer_id, ctx=ctx)

        assert await stock(item_id, shop.branch_id) == 5


class TestCancelTransfer:
    async def test_cancel_restores_source(self, db, ctx, shop, make_item, stock):
        item_id = await make_item(quantity=20)
        transfer = await create_transfer(
            db, TransferCreate(to_location_id=shop.branch_id, inventory_item_id=item_id, quantity=5), ctx=ctx
        )
        transfer_id = transfer.id

        transfer = await cancel_transfer(db, transfer_id, ctx=ctx)

        assert transfer.status == "cancelled"
        assert await stock(item_id, shop.main_id) == 20
        assert await stock(item_id, shop.branch_id) == 0

        with pytest.raises(BadRequestError, match='from "cancelled" to "completed"'):
            await complete_transfer(db, transfer_id, ctx=ctx)


class TestListTransfers:
    async def test_filters_and_tenant_scope(self, db, ctx, shop, other_shop, make_item):
        item_id = await make_item(quantity=20)
        first = await create_transfer(
            db, TransferCreate(to_location_id=shop.branch_id, inventory_item_id=item_id, quantity=2), ctx=ctx
        )
        first_id = first.id
        second = await create_transfer(
            db, TransferCreate(to_location_id=shop.branch_id, inventory_item_id=item_id, quantity=3), ctx=ctx
        )
        second_id = second.id
        await cancel_transfer(db, second_id, ctx=ctx)

        pending = await list_transfers(db, company_id=shop.company_id, status="pending")
        assert [t.id for t in pending] == [first_id]

        to_branch = await list_transfers(db, company_id=shop.company_id, to_location_id=shop.branch_id)
        assert {t.id for t in to_branch} == {first_id, second_id}

        assert await list_transfers(db, company_id=other_shop.company_id) == []
        with pytest.raises(NotFoundError):
            await get_transfer(db, first_id, company_id=other_shop.company_id)

    async def test_destination_of_other_company_not_visible(self, db, ctx, shop, other_shop, make_item, stock):
        item_id = await make_item(quantity=20)
        transfer = InventoryTransfer(
            id=uuid4(),
            from_location_id=shop.main_id,
            to_location_id=other_shop.main_id,
            inventory_item_id=item_id,
            quantity=5,
            status="pending",
        )
        db.add(transfer)
        await db.commit()
        transfer_id = transfer.id

        with pytest.raises(NotFoundError):
            await get_transfer(db, transfer_id, company_id=shop.company_id)
        with pytest.raises(NotFoundError):
            await complete_transfer(db, transfer_id, ctx=ctx)
        assert await list_transfers(db, company_id=shop.company_id) == []
        assert await stock(item_id, shop.main_id) == 20
