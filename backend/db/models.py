"""Import every model module so Base.metadata knows all tables."""

from db.company import Company, Location
from db.users import User
from db.inventory.item import InventoryItem
from db.inventory.quantity import InventoryLocationQuantity
from db.inventory.movement import InventoryMovement
from db.inventory.transfer import InventoryTransfer
from db.invoice import Invoice, InvoiceItem
from db.purchase_order import PurchaseOrder, PurchaseOrderItem

__all__ = [
    "Company",
    "Location",
    "User",
    "InventoryItem",
    "InventoryLocationQuantity",
    "InventoryMovement",
    "InventoryTransfer",
    "Invoice",
    "InvoiceItem",
    "PurchaseOrder",
    "PurchaseOrderItem",
]
