"""
Inventory (multi-location, tenant-scoped).

Models:
- InventoryItem (catalog row, sku unique per company + home location)
- InventoryLocationQuantity (quantity per item per location, the ledger)
- InventoryMovement (append-only record of every ledger write)
- InventoryTransfer (pending -> completed | cancelled move between locations)
"""
