# Overview: Service-layer operations for stock; the per-location ledger of on-hand quantity in base units.

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from flask import current_app

from ..exceptions import InsufficientStock, InvalidQuantity, RecordNotFound
from ..extensions import db
from ..models import StockRecord, Variant
from ..numeric import QUANTITY_DECIMAL_PLACES, ZERO, exceeds_places
from .concurrency import conflict_guard, finish, lock_for_update
from .unit_service import convert_to_base, resolve_unit, validate_quantity_for_unit
"""
Stock Ledger Invariants (authoritative)

- One StockRecord per (variant_id, location_id); qty_available is ALWAYS in
  the variant's base unit. Quantities in any other unit are converted through
  unit_service before touching a row.
- A missing row means zero on hand. Rows are created on first write and are
  never deleted.
- qty_available never drops below zero unless the caller passes
  allow_negative=True for that call. There is no global switch.
- Every mutation is a single read-check-write on a row locked FOR UPDATE and
  versioned (version_id), so two sessions cannot both pass the check against
  the same stock. A lost race surfaces as ConcurrencyConflict, never as a
  silent overwrite.
- Multi-row operations (sale/purchase batches, transfers) lock rows in key
  order and commit once: every row changes or none does.
- Nothing here retries. A decrement is not idempotent.
"""


DIRECTION_INCREASE = "increase"
DIRECTION_DECREASE = "decrease"

VALID_DIRECTIONS = [
    DIRECTION_INCREASE,
    DIRECTION_DECREASE,
]


@dataclass(frozen=True)
class AvailabilityCheck:
    variant_id: int
    location_id: int
    requested: Decimal  # base units
    available: Decimal  # base units
    sufficient: bool
    shortfall: Decimal

    def to_dict(self) -> dict:
        return {
            "variant_id": self.variant_id,
            "location_id": self.location_id,
            "requested": str(self.requested),
            "available": str(self.available),
            "sufficient": self.sufficient,
            "shortfall": str(self.shortfall),
        }


@dataclass(frozen=True)
class StockLine:
    """One sale or purchase line: quantity expressed in `unit` (Unit or unit id)."""

    variant_id: int
    location_id: int
    quantity: Decimal
    unit: object


@dataclass(frozen=True)
class StockMovement:
    variant_id: int
    location_id: int
    quantity: Decimal
    unit_id: int
    quantity_in_base: Decimal
    qty_available: Decimal

    def to_dict(self) -> dict:
        return {
            "variant_id": self.variant_id,
            "location_id": self.location_id,
            "quantity": str(self.quantity),
            "unit_id": self.unit_id,
            "quantity_in_base": str(self.quantity_in_base),
            "qty_available": str(self.qty_available),
        }


@dataclass(frozen=True)
class TransferResult:
    variant_id: int
    from_location_id: int
    to_location_id: int
    quantity_in_base: Decimal
    source_qty_available: Decimal
    destination_qty_available: Decimal

    def to_dict(self) -> dict:
        return {
            "variant_id": self.variant_id,
            "from_location_id": self.from_location_id,
            "to_location_id": self.to_location_id,
            "quantity_in_base": str(self.quantity_in_base),
            "source_qty_available": str(self.source_qty_available),
            "destination_qty_available": str(self.destination_qty_available),
        }


def _row_key(variant_id: int, location_id: int) -> str:
    return f"{variant_id}@{location_id}"


def get_variant(variant_id: int) -> Variant:
    variant = db.session.get(Variant, variant_id)
    if variant is None:
        raise RecordNotFound("variant", variant_id)
    return variant


def _to_base_units(variant: Variant, quantity, unit, *, allow_zero: bool = False):
    """Resolve the line's unit and return (unit, quantity, quantity in the variant's base unit)."""
    unit = resolve_unit(unit)
    value = validate_quantity_for_unit(quantity, unit)
    if value < ZERO or (value == ZERO and not allow_zero):
        raise InvalidQuantity(quantity, "quantity must be positive")
    base_qty = convert_to_base(value, unit, variant.base_unit)
    if exceeds_places(base_qty, QUANTITY_DECIMAL_PLACES):
        raise InvalidQuantity(
            quantity, f"finer than {QUANTITY_DECIMAL_PLACES} decimal places in the base unit ({base_qty})",
        )
    return unit, value, base_qty


# =============================================================================
# STOCK STORE
# =============================================================================

def read_stock_row(variant_id: int, location_id: int, *, lock: bool = False) -> StockRecord | None:
    query = db.session.query(StockRecord).filter_by(variant_id=variant_id, location_id=location_id)
    if lock:
        # Re-read under the lock; a copy cached earlier in the session may be stale
        query = lock_for_update(query).populate_existing()
    return query.first()


def upsert_stock_row(
    variant_id: int,
    location_id: int,
    new_qty: Decimal,
    *,
    row: StockRecord | None = None,
) -> StockRecord:
    """
    Write qty_available for a row, creating it on first stock.

    Must run inside a conflict_guard: a concurrent first insert raises
    IntegrityError, a concurrent update raises StaleDataError.
    """
    if row is None:
        row = read_stock_row(variant_id, location_id, lock=True)
    return _write_stock_row(variant_id, location_id, new_qty, row)


def _write_stock_row(variant_id: int, location_id: int, new_qty: Decimal, row: StockRecord | None) -> StockRecord:
    """Insert when `row` is None, never re-reading: new_qty was computed from that absence."""
    if row is None:
        row = StockRecord(
            variant_id=variant_id,
            location_id=location_id,
            qty_available=new_qty,
            alert_threshold=ZERO,
        )
        db.session.add(row)
    else:
        row.qty_available = new_qty

    db.session.flush()
    return row


# =============================================================================
# READS
# =============================================================================

def get_available(variant_id: int, location_id: int) -> Decimal:
    """On-hand quantity in base units; zero when the variant was never stocked here."""
    row = read_stock_row(variant_id, location_id)
    return row.qty_available if row is not None else ZERO


def get_available_for_variants(variant_ids, location_id: int) -> dict[int, Decimal]:
    variant_ids = list(variant_ids)
    stock = {variant_id: ZERO for variant_id in variant_ids}
    if not variant_ids:
        return stock

    rows = db.session.query(StockRecord).filter(
        StockRecord.location_id == location_id,
        StockRecord.variant_id.in_(variant_ids),
    ).all()
    for row in rows:
        stock[row.variant_id] = row.qty_available
    return stock


def check_availability(variant_id: int, location_id: int, requested_qty, requested_unit) -> AvailabilityCheck:
    """
    Pre-flight check before committing a sale. Pure: reads only.

    Example (1 Box = 12 Pieces, 120 Pieces on hand):
        check_availability(v, loc, 11, box) -> sufficient=False, shortfall=12
    """
    variant = get_variant(variant_id)
    _, _, requested = _to_base_units(variant, requested_qty, requested_unit, allow_zero=True)
    available = get_available(variant_id, location_id)

    sufficient = requested <= available
    return AvailabilityCheck(
        variant_id=variant_id,
        location_id=location_id,
        requested=requested,
        available=available,
        sufficient=sufficient,
        shortfall=ZERO if sufficient else requested - available,
    )


def list_low_stock(location_id: int) -> list[StockRecord]:
    """Rows at or below their alert threshold at a location."""
    return db.session.query(StockRecord).filter(
        StockRecord.location_id == location_id,
        StockRecord.qty_available <= StockRecord.alert_threshold,
    ).order_by(StockRecord.variant_id).all()


# =============================================================================
# MUTATIONS
# =============================================================================

def _adjust_locked(
    variant_id: int,
    location_id: int,
    base_delta: Decimal,
    direction: str,
    *,
    allow_negative: bool,
) -> tuple[Decimal, Decimal]:
    """Core read-check-write on one row. No commit; caller holds the conflict_guard."""
    row = read_stock_row(variant_id, location_id, lock=True)
    current = row.qty_available if row is not None else ZERO

    if direction == DIRECTION_DECREASE:
        new_qty = current - base_delta
        if new_qty < ZERO and not allow_negative:
            raise InsufficientStock(variant_id, location_id, current, base_delta)
    else:
        new_qty = current + base_delta

    _write_stock_row(variant_id, location_id, new_qty, row)
    return current, new_qty


def adjust_stock(
    variant_id: int,
    location_id: int,
    delta_qty,
    unit,
    direction: str,
    *,
    allow_negative: bool = False,
    reason: str | None = None,
    commit: bool = True,
) -> Decimal:
    """
    Increase or decrease one stock row by delta_qty expressed in `unit`.

    Args:
        delta_qty: Positive quantity in `unit`
        unit: Unit or unit id; must be the variant's base unit or a direct sub-unit
        direction: 'increase' or 'decrease'
        allow_negative: Caller's explicit negative-stock override for this call
        reason: Free text kept in the log line (manual adjustments, damage...)
        commit: False flushes only; the caller owns the transaction

    Returns:
        New qty_available in base units

    Raises:
        InsufficientStock, IncompatibleUnits, InvalidQuantity, RecordNotFound,
        ConcurrencyConflict
    """
    if direction not in VALID_DIRECTIONS:
        raise ValueError(f"Invalid direction: {direction}. Must be one of {VALID_DIRECTIONS}")

    with conflict_guard("stock_record", _row_key(variant_id, location_id), duplicate_is_conflict=True):
        variant = get_variant(variant_id)
        _, _, base_delta = _to_base_units(variant, delta_qty, unit)
        previous, new_qty = _adjust_locked(
            variant_id,
            location_id,
            base_delta,
            direction,
            allow_negative=allow_negative,
        )
        finish(commit)

    current_app.logger.info(
        "Stock %s for variant %s at location %s: %s -> %s (%s base units, reason=%s)",
        direction, variant_id, location_id, previous, new_qty, base_delta, reason,
    )
    return new_qty


def _apply_lines(lines, direction: str, *, allow_negative: bool, commit: bool) -> list[StockMovement]:
    lines = list(lines)
    if not lines:
        return []

    keys = sorted({(line.variant_id, line.location_id) for line in lines})
    entity_id = ", ".join(_row_key(*key) for key in keys)

    with conflict_guard("stock_record", entity_id, duplicate_is_conflict=True):
        # Lock in key order so two batches touching the same rows cannot deadlock
        for variant_id, location_id in keys:
            read_stock_row(variant_id, location_id, lock=True)

        movements = []
        for line in lines:
            variant = get_variant(line.variant_id)
            unit, quantity, base_qty = _to_base_units(variant, line.quantity, line.unit)
            _, new_qty = _adjust_locked(
                line.variant_id,
                line.location_id,
                base_qty,
                direction,
                allow_negative=allow_negative,
            )
            movements.append(StockMovement(
                variant_id=line.variant_id,
                location_id=line.location_id,
                quantity=quantity,
                unit_id=unit.id,
                quantity_in_base=base_qty,
                qty_available=new_qty,
            ))

        finish(commit)

    current_app.logger.info("Stock %s applied for %d line(s) on %s", direction, len(movements), entity_id)
    return movements


def deduct_stock_for_sale(lines, *, allow_negative: bool = False, commit: bool = True) -> list[StockMovement]:
    """
    Decrease stock for every line of a completed sale, all-or-nothing.

    Lines for the same variant/location are applied in order, so the second
    line sees the first line's decrement.
    """
    return _apply_lines(lines, DIRECTION_DECREASE, allow_negative=allow_negative, commit=commit)


def increase_stock_for_purchase(lines, *, commit: bool = True) -> list[StockMovement]:
    """Increase stock for every line of a received purchase, all-or-nothing."""
    return _apply_lines(lines, DIRECTION_INCREASE, allow_negative=False, commit=commit)


def transfer_stock(
    variant_id: int,
    from_location_id: int,
    to_location_id: int,
    quantity,
    unit,
    *,
    allow_negative: bool = False,
    commit: bool = True,
) -> TransferResult:
    """
    Move stock between locations as one transaction: decrease at source,
    increase at destination, both or neither.
    """
    if from_location_id == to_location_id:
        raise ValueError("Source and destination locations cannot be the same")

    entity_id = f"{_row_key(variant_id, from_location_id)} -> {_row_key(variant_id, to_location_id)}"

    with conflict_guard("stock_transfer", entity_id, duplicate_is_conflict=True):
        variant = get_variant(variant_id)
        _, _, base_qty = _to_base_units(variant, quantity, unit)

        for location_id in sorted((from_location_id, to_location_id)):
            read_stock_row(variant_id, location_id, lock=True)

        _, source_qty = _adjust_locked(
            variant_id, from_location_id, base_qty, DIRECTION_DECREASE, allow_negative=allow_negative,
        )
        _, destination_qty = _adjust_locked(
            variant_id, to_location_id, base_qty, DIRECTION_INCREASE, allow_negative=False,
        )
        finish(commit)

    current_app.logger.info(
        "Transferred %s base units of variant %s from location %s to %s",
        base_qty, variant_id, from_location_id, to_location_id,
    )
    return TransferResult(
        variant_id=variant_id,
        from_location_id=from_location_id,
        to_location_id=to_location_id,
        quantity_in_base=base_qty,
        source_qty_available=source_qty,
        destination_qty_available=destination_qty,
    )
