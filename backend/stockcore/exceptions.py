"""
Typed exceptions for the stock and settlement core.

Every error carries a machine-readable ``code`` and the structured values
the caller needs to react (shortfall, remainder, offending ids) so nothing
has to be parsed back out of the message.

    StockCoreError
    |
    +-- UnitError
    |   +-- IncompatibleUnits
    |   +-- InvalidUnitDefinition
    |
    +-- StockError
    |   +-- InsufficientStock
    |   +-- InvalidQuantity
    |
    +-- SettlementError
    |   +-- InvalidPaymentAmount
    |   +-- SettlementSideError
    |
    +-- RecordNotFound
    +-- ConcurrencyConflict

All of these are recoverable and are raised to the immediate caller. Only
ConcurrencyConflict is safe to retry: it means nothing was committed.
"""

from __future__ import annotations

from decimal import Decimal


class StockCoreError(Exception):
    """Base exception for all stock and settlement errors."""

    code: str = "STOCK_CORE_ERROR"


class RecordNotFound(StockCoreError):
    """A referenced unit, variant, contact or transaction does not exist."""

    code: str = "RECORD_NOT_FOUND"

    def __init__(self, entity_type: str, entity_id):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} {entity_id} not found")


class ConcurrencyConflict(StockCoreError):
    """
    A concurrent mutation was detected on a stock row, contact or transaction.

    Nothing was committed. Retry the whole operation with fresh reads; never
    re-apply a previously computed delta.
    """

    code: str = "CONCURRENCY_CONFLICT"

    def __init__(self, entity_type: str, entity_id):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Concurrent modification of {entity_type} {entity_id}; "
            "re-read state and retry"
        )


# Unit errors


class UnitError(StockCoreError):
    code: str = "UNIT_ERROR"


class IncompatibleUnits(UnitError):
    """The two units do not share a direct base/sub-unit relationship."""

    code: str = "INCOMPATIBLE_UNITS"

    def __init__(self, from_unit_id, to_unit_id):
        self.from_unit_id = from_unit_id
        self.to_unit_id = to_unit_id
        super().__init__(
            f"Units {from_unit_id} and {to_unit_id} are not directly related"
        )


class InvalidUnitDefinition(UnitError):
    """Catalog data for a unit breaks the base/multiplier invariant."""

    code: str = "INVALID_UNIT_DEFINITION"

    def __init__(self, unit_id, reason: str):
        self.unit_id = unit_id
        self.reason = reason
        super().__init__(f"Invalid definition for unit {unit_id}: {reason}")


# Stock errors


class StockError(StockCoreError):
    code: str = "STOCK_ERROR"


class InsufficientStock(StockError):
    """A decrease would take the stock row below zero."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, variant_id, location_id, available: Decimal, requested: Decimal):
        self.variant_id = variant_id
        self.location_id = location_id
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient stock for variant {variant_id} at location {location_id}. "
            f"Available: {available}, requested: {requested} (base units)"
        )

    @property
    def shortfall(self) -> Decimal:
        return self.requested - self.available


class InvalidQuantity(StockError):
    code: str = "INVALID_QUANTITY"

    def __init__(self, quantity, reason: str):
        self.quantity = quantity
        self.reason = reason
        super().__init__(f"Invalid quantity {quantity}: {reason}")


# Settlement errors


class SettlementError(StockCoreError):
    code: str = "SETTLEMENT_ERROR"


class InvalidPaymentAmount(SettlementError):
    code: str = "INVALID_PAYMENT_AMOUNT"

    def __init__(self, amount, reason: str = "payment amount must be positive"):
        self.amount = amount
        self.reason = reason
        super().__init__(f"Invalid payment amount {amount}: {reason}")


class SettlementSideError(SettlementError):
    """Receivable/payable side is missing for a dual contact, or does not fit the contact."""

    code: str = "SETTLEMENT_SIDE_ERROR"

    def __init__(self, contact_id, reason: str):
        self.contact_id = contact_id
        self.reason = reason
        super().__init__(f"Cannot settle contact {contact_id}: {reason}")
