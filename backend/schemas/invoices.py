from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


InvoiceStatusLiteral = Literal["draft", "issued", "paid", "overdue", "cancelled"]
InvoiceItemTypeLiteral = Literal["part", "service", "other"]


def _strip_nullable(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    v = v.strip()
    return v or None


class InvoiceCreate(BaseModel):
    customer_id: Optional[UUID] = None
    ticket_id: Optional[UUID] = None
    due_date: Optional[datetime] = None
    discount_amount: Decimal = Field(default=Decimal("0"), ge=0)
    notes: Optional[str] = None

    @field_validator("notes")
    @classmethod
    def _strip_notes(cls, v: Optional[str]) -> Optional[str]:
        return _strip_nullable(v)


class InvoiceUpdate(BaseModel):
    customer_id: Optional[UUID] = None
    ticket_id: Optional[UUID] = None
    due_date: Optional[datetime] = None
    discount_amount: Optional[Decimal] = Field(default=None, ge=0)
    tax_rate: Optional[Decimal] = Field(default=None, ge=0, le=100)
    notes: Optional[str] = None

    @field_validator("notes")
    @classmethod
    def _strip_notes(cls, v: Optional[str]) -> Optional[str]:
        return _strip_nullable(v)


class InvoiceStatusChange(BaseModel):
    status: InvoiceStatusLiteral
    payment_method: Optional[str] = None
    payment_reference: Optional[str] = Field(default=None, max_length=100)


class InvoiceItemCreate(BaseModel):
    inventory_item_id: Optional[UUID] = None
    description: Optional[str] = Field(default=None, max_length=255)
    quantity: int = Field(ge=1)
    unit_price: Optional[Decimal] = Field(default=None, ge=0)
    discount_percent: Optional[Decimal] = Field(default=None, ge=0, le=100)
    discount_amount: Optional[Decimal] = Field(default=None, ge=0)
    type: Optional[InvoiceItemTypeLiteral] = None

    @field_validator("description")
    @classmethod
    def _strip_description(cls, v: Optional[str]) -> Optional[str]:
        return _strip_nullable(v)


class InvoiceItemUpdate(BaseModel):
    """
    Partial update. `inventory_item_id` is only touched when it is present in
    the payload, so an explicit null detaches the line from inventory.
    """

    inventory_item_id: Optional[UUID] = None
    description: Optional[str] = Field(default=None, max_length=255)
    quantity: Optional[int] = Field(default=None, ge=1)
    unit_price: Optional[Decimal] = Field(default=None, ge=0)
    discount_percent: Optional[Decimal] = Field(default=None, ge=0, le=100)
    discount_amount: Optional[Decimal] = Field(default=None, ge=0)
    type: Optional[InvoiceItemTypeLiteral] = None

    @field_validator("description")
    @classmethod
    def _strip_description(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        if not v:
            raise ValueError("cannot be empty")
        return v


class InvoiceItemRead(BaseModel):
    id: UUID
    invoice_id: UUID
    inventory_item_id: Optional[UUID] = None
    description: str
    quantity: int
    unit_price: float
    discount_percent: float
    discount_amount: float
    subtotal: float
    type: InvoiceItemTypeLiteral


class InvoiceRead(BaseModel):
    id: UUID
    company_id: UUID
    location_id: UUID
    invoice_number: str
    customer_id: Optional[UUID] = None
    ticket_id: Optional[UUID] = None
    status: InvoiceStatusLiteral
    issue_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    paid_date: Optional[datetime] = None
    subtotal: float
    tax_rate: float
    tax_amount: float
    discount_amount: float
    total_amount: float
    notes: Optional[str] = None
    payment_method: Optional[str] = None
    payment_reference: Optional[str] = None
    items: List[InvoiceItemRead] = []
