from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator


TransferStatusLiteral = Literal["pending", "completed", "cancelled"]


class InventoryItemCreate(BaseModel):
    sku: Optional[str] = None  # generated when omitted
    name: str
    description: Optional[str] = None
    location_id: Optional[UUID] = None  # defaults to the current location
    cost_price: Decimal = Field(default=Decimal("0"), ge=0)
    selling_price: Decimal = Field(default=Decimal("0"), ge=0)
    track_quantity: bool = True
    initial_quantity: int = Field(default=0, ge=0)

    @field_validator("name")
    @classmethod
    def _strip_required(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("field is required")
        return v

    @field_validator("sku", "description")
    @classmethod
    def _strip_nullable(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None

    @model_validator(mode="after")
    def _opening_stock_needs_tracking(self):
        if self.initial_quantity and not self.track_quantity:
            raise ValueError("initial_quantity requires track_quantity")
        return self


class InventoryItemUpdate(BaseModel):
    sku: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    cost_price: Optional[Decimal] = Field(default=None, ge=0)
    selling_price: Optional[Decimal] = Field(default=None, ge=0)
    track_quantity: Optional[bool] = None

    @field_validator("sku", "name")
    @classmethod
    def _strip_optional(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = (v or "").strip()
        if not v:
            raise ValueError("cannot be empty")
        return v


class StockAdjustment(BaseModel):
    """Manual correction (count, damage, ...) of one item's stock at a location."""

    location_id: Optional[UUID] = None
    change: int
    reason: Optional[str] = None

    @field_validator("change")
    @classmethod
    def _non_zero(cls, v: int) -> int:
        if v == 0:
            raise ValueError("change must not be 0")
        return v

    @field_validator("reason")
    @classmethod
    def _strip_reason(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None


class InventoryItemOut(BaseModel):
    id: UUID
    company_id: UUID
    location_id: Optional[UUID] = None
    sku: str
    name: str
    description: Optional[str] = None
    cost_price: float
    selling_price: float
    track_quantity: bool
    quantity: Optional[int] = None  # at the current location


class InventoryStockOut(BaseModel):
    location_id: UUID
    location_name: Optional[str] = None
    inventory_item_id: UUID
    sku: Optional[str] = None
    name: Optional[str] = None
    quantity: int


class InventoryMovementOut(BaseModel):
    id: UUID
    location_id: UUID
    inventory_item_id: UUID
    change: int
    quantity_after: int
    reason: Optional[str] = None
    source_type: Optional[str] = None
    source_id: Optional[UUID] = None
    created_at: Optional[datetime] = None
    created_by_user_id: Optional[UUID] = None


class TransferCreate(BaseModel):
    from_location_id: Optional[UUID] = None  # defaults to the current location
    to_location_id: UUID
    inventory_item_id: UUID
    quantity: int = Field(ge=1)
    notes: Optional[str] = None

    @model_validator(mode="after")
    def _distinct_locations(self):
        if self.from_location_id is not None and self.from_location_id == self.to_location_id:
            raise ValueError("Source and destination locations must be different")
        return self


class TransferOut(BaseModel):
    id: UUID
    from_location_id: UUID
    from_location_name: Optional[str] = None
    to_location_id: UUID
    to_location_name: Optional[str] = None
    inventory_item_id: UUID
    inventory_item_sku: Optional[str] = None
    inventory_item_name: Optional[str] = None
    quantity: int
    status: TransferStatusLiteral
    notes: Optional[str] = None
    transferred_by: Optional[UUID] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
