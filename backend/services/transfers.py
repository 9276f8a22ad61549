"""
Two-phase stock transfers between locations of one company.

create   -> source debited at once, transfer `pending` (stock is in transit)
complete -> destination credited, transfer `completed`
cancel   -> source re-credited, transfer `cancelled`

On completion, if the destination already holds a tracked item with the same
SKU the quantity is credited to that item; otherwise the transferred item
itself is re-homed to the destination and credited there. When the SKU is held
at the destination by an untracked item, the transferred item is credited at
the destination without being re-homed.
"""

import logging
from typing import List, Optional
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased, selectinload

from core.errors import BadRequestError, NotFoundError
from core.statuses import TransferStatus, ensure_transition
from core.tenant import TenantContext
from db.company import Location as LocationModel
from db.database import unit_of_work
from db.inventory.item import InventoryItem as InventoryItemModel
from db.inventory.transfer import InventoryTransfer as TransferModel
from schemas.inventory import TransferCreate
from services.ledger import adjust_quantity, get_inventory_item, get_location, get_quantity_for_location

logger = logging.getLogger(__name__)

SOURCE_TYPE = "transfer"


def _transfer_query(company_id: UUID):
    # both ends must belong to the tenant
    from_location = aliased(LocationModel)
    to_location = aliased(LocationModel)
    return (
        select(TransferModel)
        .join(from_location, from_location.id == TransferModel.from_location_id)
        .join(to_location, to_location.id == TransferModel.to_location_id)
        .where(from_location.company_id == company_id, to_location.company_id == company_id)
        .options(
            selectinload(TransferModel.from_location),
            selectinload(TransferModel.to_location),
            selectinload(TransferModel.inventory_item),
        )
    )


async def get_transfer(db: AsyncSession, transfer_id: UUID, *, company_id: UUID) -> TransferModel:
    res = await db.execute(
        _transfer_query(company_id)
        .where(TransferModel.id == transfer_id)
        .execution_options(populate_existing=True)
    )
    transfer = res.scalar_one_or_none()
    if not transfer:
        raise NotFoundError("Inventory transfer not found")
    return transfer


async def list_transfers(
    db: AsyncSession,
    *,
    company_id: UUID,
    status: Optional[str] = None,
    from_location_id: Optional[UUID] = None,
    to_location_id: Optional[UUID] = None,
) -> List[TransferModel]:
    stmt = _transfer_query(company_id).order_by(TransferModel.created_at.desc())
    if status:
        stmt = stmt.where(TransferModel.status == status)
    if from_location_id:
        stmt = stmt.where(TransferModel.from_location_id == from_location_id)
    if to_location_id:
        stmt = stmt.where(TransferModel.to_location_id == to_location_id)
    res = await db.execute(stmt)
    return list(res.scalars().all())


async def create_transfer(db: AsyncSession, payload: TransferCreate, *, ctx: TenantContext) -> TransferModel:
    from_location_id = payload.from_location_id or ctx.location_id
    if from_location_id is None:
        raise BadRequestError("Source location is required")
    if from_location_id == payload.to_location_id:
        raise BadRequestError("From and to locations must be different")

    async with unit_of_work(db):
        await get_location(db, from_location_id, company_id=ctx.company_id)
        await get_location(db, payload.to_location_id, company_id=ctx.company_id)
        item = await get_inventory_item(db, payload.inventory_item_id, company_id=ctx.company_id)
        if not item.track_quantity:
            raise BadRequestError(f"Inventory item {item.sku} does not track quantity and cannot be transferred")

        available = await get_quantity_for_location(db, item.id, from_location_id, company_id=ctx.company_id)
        if available < payload.quantity:
            logger.warning(
                "Rejected transfer of %s x %s from %s (available %s)",
                payload.quantity, item.sku, from_location_id, available,
            )
            raise BadRequestError(
                f"Insufficient quantity. Available: {available}, Requested: {payload.quantity}"
            )

        transfer = TransferModel(
            id=uuid4(),
            from_location_id=from_location_id,
            to_location_id=payload.to_location_id,
            inventory_item_id=item.id,
            quantity=payload.quantity,
            status=TransferStatus.PENDING.value,
            notes=payload.notes,
            transferred_by=ctx.user_id,
        )
        db.add(transfer)
        await db.flush()

        await adjust_quantity(
            db,
            item.id,
            from_location_id,
            -payload.quantity,
            company_id=ctx.company_id,
            reason=f"Transfer out to {payload.to_location_id}",
            source_type=SOURCE_TYPE,
            source_id=transfer.id,
            user_id=ctx.user_id,
        )

    logger.info("Transfer %s created: %s x %s", transfer.id, payload.quantity, item.sku)
    return await get_transfer(db, transfer.id, company_id=ctx.company_id)


async def _claim_status(db: AsyncSession, transfer: TransferModel, target: TransferStatus) -> None:
    current = transfer.status
    ensure_transition(current, target)
    tbl = TransferModel.__table__
    res = await db.execute(
        update(tbl)
        .where(tbl.c.id == transfer.id, tbl.c.status == current)
        .values(status=target.value)
    )
    if res.rowcount != 1:
        raise BadRequestError(f'Transfer {transfer.id} is no longer "{current}"')
    transfer.status = target.value


async def _destination_item(
    db: AsyncSession,
    item: InventoryItemModel,
    to_location_id: UUID,
) -> Optional[InventoryItemModel]:
    res = await db.execute(
        select(InventoryItemModel).where(
            InventoryItemModel.company_id == item.company_id,
            InventoryItemModel.location_id == to_location_id,
            InventoryItemModel.sku == item.sku,
            InventoryItemModel.id != item.id,
            InventoryItemModel.deleted_at.is_(None),
        )
    )
    return res.scalars().first()


async def complete_transfer(db: AsyncSession, transfer_id: UUID, *, ctx: TenantContext) -> TransferModel:
    async with unit_of_work(db):
        transfer = await get_transfer(db, transfer_id, company_id=ctx.company_id)
        await _claim_status(db, transfer, TransferStatus.COMPLETED)

        item = await get_inventory_item(db, transfer.inventory_item_id, company_id=ctx.company_id)
        target = await _destination_item(db, item, transfer.to_location_id)
        if target is None:
            item.location_id = transfer.to_location_id
            target = item
            await db.flush()
        elif not target.track_quantity:
            # the SKU is taken at the destination by an untracked item; keep
            # the units on the transferred item instead of dropping them
            logger.warning(
                "Transfer %s: item %s at destination does not track quantity; crediting item %s",
                transfer_id, target.id, item.id,
            )
            target = item

        await adjust_quantity(
            db,
            target.id,
            transfer.to_location_id,
            transfer.quantity,
            company_id=ctx.company_id,
            reason=f"Transfer in from {transfer.from_location_id}",
            source_type=SOURCE_TYPE,
            source_id=transfer.id,
            user_id=ctx.user_id,
        )

    logger.info(
        "Transfer %s completed: %s x %s credited to item %s",
        transfer_id, transfer.quantity, item.sku, target.id,
    )
    return await get_transfer(db, transfer_id, company_id=ctx.company_id)


async def cancel_transfer(db: AsyncSession, transfer_id: UUID, *, ctx: TenantContext) -> TransferModel:
    async with unit_of_work(db):
        transfer = await get_transfer(db, transfer_id, company_id=ctx.company_id)
        await _claim_status(db, transfer, TransferStatus.CANCELLED)

        await adjust_quantity(
            db,
            transfer.inventory_item_id,
            transfer.from_location_id,
            transfer.quantity,
            company_id=ctx.company_id,
            reason="Transfer cancelled",
            source_type=SOURCE_TYPE,
            source_id=transfer.id,
            user_id=ctx.user_id,
        )

    logger.info("Transfer %s cancelled; %s returned to %s", transfer_id, transfer.quantity, transfer.from_location_id)
    return await get_transfer(db, transfer_id, company_id=ctx.company_id)
