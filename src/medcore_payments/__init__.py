"""
medcore-payments: Payment capture and refund reconciliation.

Provides:
- Payment: numbered payment with an embedded status timeline
- initiate/authorize/capture/refund/fail/cancel services
- bounded capture retries with exponential backoff
"""

__version__ = "0.1.0"
