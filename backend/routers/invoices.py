from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from core.money import money_out
from core.statuses import InvoiceStatus
from core.tenant import TenantContext, get_tenant_context
from db.database import get_async_session
from db.invoice import Invoice as InvoiceModel, InvoiceItem as InvoiceItemModel
from schemas.invoices import (
    InvoiceCreate,
    InvoiceItemCreate,
    InvoiceItemRead,
    InvoiceItemUpdate,
    InvoiceRead,
    InvoiceStatusChange,
    InvoiceStatusLiteral,
    InvoiceUpdate,
)
from services import invoice_items as items_service
from services import invoices as invoices_service
from services.invoice_totals import recalculate_invoice

router = APIRouter()


def _serialize_item(it: InvoiceItemModel) -> InvoiceItemRead:
    return InvoiceItemRead(
        id=it.id,
        invoice_id=it.invoice_id,
        inventory_item_id=it.inventory_item_id,
        description=it.description,
        quantity=int(it.quantity),
        unit_price=money_out(it.unit_price),
        discount_percent=float(it.discount_percent or 0),
        discount_amount=money_out(it.discount_amount),
        subtotal=money_out(it.subtotal),
        type=it.type,
    )


def _serialize_invoice(inv: InvoiceModel) -> InvoiceRead:
    return InvoiceRead(
        id=inv.id,
        company_id=inv.company_id,
        location_id=inv.location_id,
        invoice_number=inv.invoice_number,
        customer_id=inv.customer_id,
        ticket_id=inv.ticket_id,
        status=inv.status,
        issue_date=inv.issue_date,
        due_date=inv.due_date,
        paid_date=inv.paid_date,
        subtotal=money_out(inv.subtotal),
        tax_rate=float(inv.tax_rate or 0),
        tax_amount=money_out(inv.tax_amount),
        discount_amount=money_out(inv.discount_amount),
        total_amount=money_out(inv.total_amount),
        notes=inv.notes,
        payment_method=inv.payment_method,
        payment_reference=inv.payment_reference,
        items=[_serialize_item(it) for it in inv.items],
    )


@router.get("/", response_model=List[InvoiceRead])
async def list_invoices(
    status_filter: Optional[InvoiceStatusLiteral] = Query(None, alias="status"),
    location_id: Optional[UUID] = None,
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_async_session),
):
    invoices = await invoices_service.list_invoices(
        db, company_id=ctx.company_id, status=status_filter, location_id=location_id
    )
    return [_serialize_invoice(inv) for inv in invoices]


@router.post("/", response_model=InvoiceRead, status_code=status.HTTP_201_CREATED)
async def create_invoice(
    payload: InvoiceCreate,
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_async_session),
):
    inv = await invoices_service.create_invoice(db, payload, ctx=ctx)
    return _serialize_invoice(inv)


@router.get("/{invoice_id}", response_model=InvoiceRead)
async def get_invoice(
    invoice_id: UUID,
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_async_session),
):
    inv = await invoices_service.get_invoice(db, invoice_id, company_id=ctx.company_id)
    return _serialize_invoice(inv)


@router.patch("/{invoice_id}", response_model=InvoiceRead)
async def update_invoice(
    invoice_id: UUID,
    payload: InvoiceUpdate,
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_async_session),
):
    inv = await invoices_service.update_invoice(db, invoice_id, payload, ctx=ctx)
    return _serialize_invoice(inv)


@router.post("/{invoice_id}/status", response_model=InvoiceRead)
async def change_invoice_status(
    invoice_id: UUID,
    payload: InvoiceStatusChange,
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_async_session),
):
    inv = await invoices_service.change_invoice_status(
        db,
        invoice_id,
        InvoiceStatus(payload.status),
        ctx=ctx,
        payment_method=payload.payment_method,
        payment_reference=payload.payment_reference,
    )
    return _serialize_invoice(inv)


@router.delete("/{invoice_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_invoice(
    invoice_id: UUID,
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_async_session),
):
    await invoices_service.delete_invoice(db, invoice_id, ctx=ctx)
    return None


@router.post("/{invoice_id}/recalculate", response_model=InvoiceRead)
async def recalculate(
    invoice_id: UUID,
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_async_session),
):
    await recalculate_invoice(db, invoice_id, company_id=ctx.company_id)
    inv = await invoices_service.get_invoice(db, invoice_id, company_id=ctx.company_id)
    return _serialize_invoice(inv)


@router.post("/{invoice_id}/items", response_model=InvoiceRead, status_code=status.HTTP_201_CREATED)
async def create_invoice_item(
    invoice_id: UUID,
    payload: InvoiceItemCreate,
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_async_session),
):
    inv = await items_service.create_invoice_item(db, invoice_id, payload, ctx=ctx)
    return _serialize_invoice(inv)


@router.patch("/{invoice_id}/items/{item_id}", response_model=InvoiceRead)
async def update_invoice_item(
    invoice_id: UUID,
    item_id: UUID,
    payload: InvoiceItemUpdate,
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_async_session),
):
    inv = await items_service.update_invoice_item(db, invoice_id, item_id, payload, ctx=ctx)
    return _serialize_invoice(inv)


@router.delete("/{invoice_id}/items/{item_id}", response_model=InvoiceRead)
async def delete_invoice_item(
    invoice_id: UUID,
    item_id: UUID,
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_async_session),
):
    inv = await items_service.delete_invoice_item(db, invoice_id, item_id, ctx=ctx)
    return _serialize_invoice(inv)
