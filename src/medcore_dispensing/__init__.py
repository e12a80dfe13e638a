"""
medcore-dispensing: Dispense signed prescriptions against batch inventory.

Provides:
- DispensingRecord: immutable (line, lot) fulfillment row; returns are
  compensating records, never deletions
- ApprovedSubstitute: product substitution list with priorities
- dispense(): plan (FEFO + substitutes), reserve, then commit atomically
- return_dispensed(): compensating return that restocks the lot
"""

__version__ = "0.1.0"
