"""Medcore Inventory - Batch-level pharmacy stock ledger.

Provides:
- InventoryLot: one batch of one product at one pharmacy
- derive_status(): pure status function (recalled > expired > near_expiry
  > out_of_stock > low_stock > active)
- receive/reserve/release/commit and the other lot mutations, all
  through one compare-and-swap retry loop
- fefo_lots(): first-expiring-first-out lot selection
"""

__version__ = "0.1.0"
