from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


PurchaseOrderStatusLiteral = Literal["draft", "ordered", "received", "cancelled"]


class PurchaseOrderItemCreate(BaseModel):
    inventory_item_id: UUID
    quantity_ordered: int = Field(ge=1)
    unit_cost: Decimal = Field(ge=0)
    notes: Optional[str] = None


class PurchaseOrderCreate(BaseModel):
    supplier: str = Field(min_length=1, max_length=255)
    location_id: Optional[UUID] = None  # defaults to the current location
    expected_delivery_date: Optional[datetime] = None
    notes: Optional[str] = None
    items: List[PurchaseOrderItemCreate] = Field(min_length=1)

    @field_validator("supplier")
    @classmethod
    def _strip_supplier(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("cannot be empty")
        return v


class PurchaseOrderUpdate(BaseModel):
    """Draft-only edit. When `items` is sent it replaces every line."""

    supplier: Optional[str] = Field(default=None, min_length=1, max_length=255)
    expected_delivery_date: Optional[datetime] = None
    notes: Optional[str] = None
    items: Optional[List[PurchaseOrderItemCreate]] = Field(default=None, min_length=1)


class ReceivedItem(BaseModel):
    item_id: UUID  # purchase order line id
    quantity_received: int = Field(ge=0)


class PurchaseOrderReceive(BaseModel):
    items: List[ReceivedItem] = Field(min_length=1)


class PurchaseOrderItemRead(BaseModel):
    id: UUID
    purchase_order_id: UUID
    inventory_item_id: UUID
    inventory_item_sku: Optional[str] = None
    inventory_item_name: Optional[str] = None
    quantity_ordered: int
    quantity_received: int
    unit_cost: float
    subtotal: float
    notes: Optional[str] = None


class PurchaseOrderRead(BaseModel):
    id: UUID
    company_id: UUID
    location_id: UUID
    po_number: str
    supplier: str
    status: PurchaseOrderStatusLiteral
    order_date: Optional[datetime] = None
    expected_delivery_date: Optional[datetime] = None
    received_date: Optional[datetime] = None
    notes: Optional[str] = None
    total_amount: float
    items: List[PurchaseOrderItemRead] = []
