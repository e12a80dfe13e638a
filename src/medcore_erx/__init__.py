"""
medcore-erx: Tamper-evident electronic prescriptions.

Provides:
- Prescription: versioned prescription with digest, keyed signature and
  revision chain
- LineItem: immutable prescription line with a stable line_id
- sign / verify / amend / expire services and chain verification
"""

__version__ = "0.1.0"
