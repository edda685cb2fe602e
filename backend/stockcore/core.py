# Overview: Public entry points of the stock and settlement core.

"""
The three operations the transaction-processing layer calls:

- check_availability: pre-flight stock check, no mutation
- adjust_stock: atomic increase/decrease of one stock row
- settle_payment: allocate a payment across a contact's open transactions

All three must run inside a Flask app context (they use the shared
db.session). Each is at-most-once: on a transport timeout re-read state
instead of re-invoking. Only ConcurrencyConflict is retry-safe; wrap the call
in concurrency.run_with_retry for that.
"""

from .services.stock_service import adjust_stock, check_availability
from .services.settlement_service import settle_payment

__all__ = [
    "check_availability",
    "adjust_stock",
    "settle_payment",
]
