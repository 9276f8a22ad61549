import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, Text, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..database import Base


class InventoryTransfer(Base):
    __tablename__ = "inventory_transfers"
    __table_args__ = (
        CheckConstraint("from_location_id <> to_location_id", name="ck_inventory_transfers_distinct_locations"),
        CheckConstraint("quantity > 0", name="ck_inventory_transfers_positive_quantity"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    from_location_id = Column(Uuid, ForeignKey("locations.id"), nullable=False, index=True)
    to_location_id = Column(Uuid, ForeignKey("locations.id"), nullable=False, index=True)
    inventory_item_id = Column(Uuid, ForeignKey("inventory_items.id"), nullable=False, index=True)

    quantity = Column(Integer, nullable=False)
    status = Column(Text, nullable=False, default="pending", index=True)  # pending|completed|cancelled
    notes = Column(Text, nullable=True)
    transferred_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    from_location = relationship("Location", foreign_keys=[from_location_id])
    to_location = relationship("Location", foreign_keys=[to_location_id])
    inventory_item = relationship("InventoryItem")
    transferred_by_user = relationship("User")
