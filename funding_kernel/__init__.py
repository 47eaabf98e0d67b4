"""
Funding Kernel

An append-only, double-entry ledger for contributions with:
- Idempotent order execution keyed by order id
- Atomic CREDIT/DEBIT pairs per economic event
- Refunds that exactly reverse prior records, fees included
- Recurring billing arithmetic for subscriptions
"""

__version__ = "0.1.0"
