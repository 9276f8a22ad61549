import logging
from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from core.config import settings
from core.errors import BadRequestError, NotFoundError
from core.statuses import InvoiceStatus, MUTABLE_INVOICE_STATUSES, ensure_transition
from core.tenant import TenantContext
from db.database import unit_of_work
from db.invoice import Invoice as InvoiceModel
from schemas.invoices import InvoiceCreate, InvoiceUpdate
from services.invoice_totals import recalculate
from services.ledger import get_location
from services.numbering import generate_document_number

logger = logging.getLogger(__name__)


async def load_invoice(
    db: AsyncSession,
    invoice_id: UUID,
    *,
    company_id: UUID,
    with_items: bool = False,
) -> InvoiceModel:
    stmt = select(InvoiceModel).where(
        InvoiceModel.id == invoice_id,
        InvoiceModel.company_id == company_id,
        InvoiceModel.deleted_at.is_(None),
    )
    if with_items:
        stmt = stmt.options(selectinload(InvoiceModel.items))
    # totals are written with Core UPDATEs; always take the row as stored
    stmt = stmt.execution_options(populate_existing=True)
    res = await db.execute(stmt)
    invoice = res.scalar_one_or_none()
    if not invoice:
        raise NotFoundError("Invoice not found")
    return invoice


def ensure_invoice_mutable(invoice: InvoiceModel) -> None:
    if InvoiceStatus(invoice.status) not in MUTABLE_INVOICE_STATUSES:
        raise BadRequestError(f'Cannot modify items of an invoice with status "{invoice.status}"')


async def get_invoice(db: AsyncSession, invoice_id: UUID, *, company_id: UUID) -> InvoiceModel:
    return await load_invoice(db, invoice_id, company_id=company_id, with_items=True)


async def list_invoices(
    db: AsyncSession,
    *,
    company_id: UUID,
    status: Optional[str] = None,
    location_id: Optional[UUID] = None,
) -> List[InvoiceModel]:
    stmt = (
        select(InvoiceModel)
        .options(selectinload(InvoiceModel.items))
        .where(InvoiceModel.company_id == company_id, InvoiceModel.deleted_at.is_(None))
        .order_by(InvoiceModel.created_at.desc())
    )
    if status:
        stmt = stmt.where(InvoiceModel.status == status)
    if location_id:
        stmt = stmt.where(InvoiceModel.location_id == location_id)
    res = await db.execute(stmt)
    return list(res.scalars().all())


async def create_invoice(db: AsyncSession, payload: InvoiceCreate, *, ctx: TenantContext) -> InvoiceModel:
    if ctx.location_id is None:
        raise BadRequestError("Invoice location is required")

    async with unit_of_work(db):
        location = await get_location(db, ctx.location_id, company_id=ctx.company_id)
        invoice_number = await generate_document_number(
            db,
            InvoiceModel.invoice_number,
            InvoiceModel.company_id,
            ctx.company_id,
            settings.invoice_number_prefix,
        )
        now = datetime.now(timezone.utc)
        invoice = InvoiceModel(
            id=uuid4(),
            company_id=ctx.company_id,
            location_id=location.id,
            invoice_number=invoice_number,
            customer_id=payload.customer_id,
            ticket_id=payload.ticket_id,
            status=InvoiceStatus.DRAFT.value,
            issue_date=now,
            due_date=payload.due_date or now,
            tax_rate=location.tax_rate or 0,
            discount_amount=payload.discount_amount,
            subtotal=0,
            tax_amount=0,
            total_amount=0,
            notes=payload.notes,
        )
        db.add(invoice)
        await db.flush()
        await recalculate(db, invoice.id, company_id=ctx.company_id)

    logger.info("Invoice %s created at location %s", invoice_number, location.id)
    return await get_invoice(db, invoice.id, company_id=ctx.company_id)


async def update_invoice(
    db: AsyncSession,
    invoice_id: UUID,
    payload: InvoiceUpdate,
    *,
    ctx: TenantContext,
) -> InvoiceModel:
    data = payload.model_dump(exclude_unset=True)

    async with unit_of_work(db):
        invoice = await load_invoice(db, invoice_id, company_id=ctx.company_id)
        money_changed = False

        for field in ("customer_id", "ticket_id", "due_date", "notes"):
            if field in data:
                setattr(invoice, field, data[field])

        if data.get("discount_amount") is not None:
            ensure_invoice_mutable(invoice)
            invoice.discount_amount = data["discount_amount"]
            money_changed = True

        if data.get("tax_rate") is not None:
            if invoice.status != InvoiceStatus.DRAFT.value:
                raise BadRequestError("Tax rate can only be changed on draft invoices")
            invoice.tax_rate = data["tax_rate"]
            money_changed = True

        await db.flush()
        if money_changed:
            await recalculate(db, invoice.id, company_id=ctx.company_id)

    return await get_invoice(db, invoice_id, company_id=ctx.company_id)


async def change_invoice_status(
    db: AsyncSession,
    invoice_id: UUID,
    target: InvoiceStatus,
    *,
    ctx: TenantContext,
    payment_method: Optional[str] = None,
    payment_reference: Optional[str] = None,
) -> InvoiceModel:
    async with unit_of_work(db):
        invoice = await load_invoice(db, invoice_id, company_id=ctx.company_id)
        invoice.status = ensure_transition(invoice.status, target).value
        if target == InvoiceStatus.PAID:
            invoice.paid_date = datetime.now(timezone.utc)
            invoice.payment_method = payment_method or invoice.payment_method
            invoice.payment_reference = payment_reference or invoice.payment_reference

    logger.info("Invoice %s moved to %s", invoice_id, target.value)
    return await get_invoice(db, invoice_id, company_id=ctx.company_id)


async def delete_invoice(db: AsyncSession, invoice_id: UUID, *, ctx: TenantContext) -> None:
    """Soft delete. Stock held by the invoice's lines stays deducted."""
    async with unit_of_work(db):
        invoice = await load_invoice(db, invoice_id, company_id=ctx.company_id)
        invoice.deleted_at = datetime.now(timezone.utc)
