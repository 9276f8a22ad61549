import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..database import Base


class InventoryLocationQuantity(Base):
    __tablename__ = "inventory_location_quantities"
    __table_args__ = (
        UniqueConstraint("inventory_item_id", "location_id", name="ux_inventory_location_quantities_item_location"),
        CheckConstraint("quantity >= 0", name="ck_inventory_location_quantities_non_negative"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    inventory_item_id = Column(
        Uuid,
        ForeignKey("inventory_items.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    location_id = Column(Uuid, ForeignKey("locations.id", ondelete="CASCADE"), nullable=False, index=True)

    # only ever written as `quantity = quantity + delta` (services/ledger.py)
    quantity = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    inventory_item = relationship("InventoryItem", back_populates="quantities")
    location = relationship("Location")
