from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from core.tenant import TenantContext, get_tenant_context
from db.database import get_async_session
from db.inventory.transfer import InventoryTransfer as TransferModel
from schemas.inventory import TransferCreate, TransferOut, TransferStatusLiteral
from services import transfers as transfers_service

router = APIRouter()


def _serialize_transfer(t: TransferModel) -> TransferOut:
    item = t.inventory_item
    return TransferOut(
        id=t.id,
        from_location_id=t.from_location_id,
        from_location_name=t.from_location.name if t.from_location else None,
        to_location_id=t.to_location_id,
        to_location_name=t.to_location.name if t.to_location else None,
        inventory_item_id=t.inventory_item_id,
        inventory_item_sku=item.sku if item else None,
        inventory_item_name=item.name if item else None,
        quantity=int(t.quantity),
        status=t.status,
        notes=t.notes,
        transferred_by=t.transferred_by,
        created_at=t.created_at,
        updated_at=t.updated_at,
    )


@router.get("/", response_model=List[TransferOut])
async def list_transfers(
    status_filter: Optional[TransferStatusLiteral] = Query(None, alias="status"),
    from_location_id: Optional[UUID] = None,
    to_location_id: Optional[UUID] = None,
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_async_session),
):
    transfers = await transfers_service.list_transfers(
        db,
        company_id=ctx.company_id,
        status=status_filter,
        from_location_id=from_location_id,
        to_location_id=to_location_id,
    )
    return [_serialize_transfer(t) for t in transfers]


@router.post("/", response_model=TransferOut, status_code=status.HTTP_201_CREATED)
async def create_transfer(
    payload: TransferCreate,
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_async_session),
):
    t = await transfers_service.create_transfer(db, payload, ctx=ctx)
    return _serialize_transfer(t)


@router.get("/{transfer_id}", response_model=TransferOut)
async def get_transfer(
    transfer_id: UUID,
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_async_session),
):
    t = await transfers_service.get_transfer(db, transfer_id, company_id=ctx.company_id)
    return _serialize_transfer(t)


@router.post("/{transfer_id}/complete", response_model=TransferOut)
async def complete_transfer(
    transfer_id: UUID,
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_async_session),
):
    t = await transfers_service.complete_transfer(db, transfer_id, ctx=ctx)
    return _serialize_transfer(t)


@router.post("/{transfer_id}/cancel", response_model=TransferOut)
async def cancel_transfer(
    transfer_id: UUID,
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_async_session),
):
    t = await transfers_service.cancel_transfer(db, transfer_id, ctx=ctx)
    return _serialize_transfer(t)
