# Overview: Service-layer operations for units of measure; conversion between base units and sub-units.

"""
Unit Conversion Invariants (authoritative)

- A unit either IS a base unit (base_unit_id NULL, no multiplier) or is a
  direct sub-unit of one (base_unit_id set AND base_unit_multiplier > 0).
- 1 sub-unit == base_unit_multiplier base units (1 Box == 12 Pieces).
- Only direct base <-> sub relationships convert. Two sub-units of the same
  base, or a sub-unit of a sub-unit, raise IncompatibleUnits; callers convert
  through the shared base explicitly.
- All arithmetic is Decimal; the order is quantity * multiplier. Nothing here
  rounds.

Units are owned by catalog management and only ever read here.
"""

from __future__ import annotations

from decimal import Decimal

from ..exceptions import IncompatibleUnits, InvalidQuantity, InvalidUnitDefinition, RecordNotFound
from ..extensions import db
from ..models import Unit
from ..numeric import ZERO, is_integral, to_decimal

ONE = Decimal("1")


# =============================================================================
# UNIT SOURCE
# =============================================================================

def get_unit(unit_id: int) -> Unit:
    unit = db.session.get(Unit, unit_id)
    if unit is None:
        raise RecordNotFound("unit", unit_id)
    return unit


def list_units() -> list[Unit]:
    return db.session.query(Unit).order_by(Unit.id).all()


def resolve_unit(unit) -> Unit:
    """Accept a Unit (or any object with the same attributes) or a unit id."""
    if isinstance(unit, int) and not isinstance(unit, bool):
        return get_unit(unit)
    return unit


# =============================================================================
# CONVERSION
# =============================================================================

def validate_unit_definition(unit) -> None:
    """
    Enforce the base_unit_id <=> base_unit_multiplier > 0 invariant.

    Raises:
        InvalidUnitDefinition: half-defined sub-unit, self reference, or a
            zero/negative multiplier. Bad catalog data is reported, never coerced.
    """
    has_base = unit.base_unit_id is not None
    has_multiplier = unit.base_unit_multiplier is not None

    if has_base != has_multiplier:
        raise InvalidUnitDefinition(
            unit.id, "base_unit_id and base_unit_multiplier must be set together"
        )
    if not has_base:
        return
    if unit.base_unit_id == unit.id:
        raise InvalidUnitDefinition(unit.id, "unit cannot be its own base unit")
    if to_decimal(unit.base_unit_multiplier) <= ZERO:
        raise InvalidUnitDefinition(unit.id, "base_unit_multiplier must be positive")


def get_multiplier(from_unit, to_unit) -> Decimal:
    """
    How many to_unit equal one from_unit.

    Example (1 Box = 12 Pieces):
        get_multiplier(box, pieces) -> 12
        get_multiplier(pieces, box) -> 1/12
    """
    if from_unit.id == to_unit.id:
        return ONE

    validate_unit_definition(from_unit)
    validate_unit_definition(to_unit)

    # Sub-unit -> its base (Box -> Pieces)
    if from_unit.base_unit_id == to_unit.id:
        return to_decimal(from_unit.base_unit_multiplier)

    # Base -> one of its sub-units (Pieces -> Box)
    if to_unit.base_unit_id == from_unit.id:
        return ONE / to_decimal(to_unit.base_unit_multiplier)

    raise IncompatibleUnits(from_unit.id, to_unit.id)


def convert_quantity(quantity, from_unit, to_unit) -> Decimal:
    """quantity * get_multiplier(from_unit, to_unit). No side effects."""
    return to_decimal(quantity) * get_multiplier(from_unit, to_unit)


def convert_to_base(quantity, unit, base_unit) -> Decimal:
    """
    Convert a transaction-line quantity into the variant's base unit.

    base_unit must be a base unit; a base that is itself a sub-unit would
    make stock depend on a transitive chain.
    """
    validate_unit_definition(base_unit)
    if base_unit.base_unit_id is not None:
        raise InvalidUnitDefinition(base_unit.id, "stock base unit cannot itself be a sub-unit")
    return convert_quantity(quantity, unit, base_unit)


def are_units_compatible(unit_a, unit_b) -> bool:
    try:
        get_multiplier(unit_a, unit_b)
        return True
    except IncompatibleUnits:
        return False


def validate_quantity_for_unit(quantity, unit) -> Decimal:
    """
    Normalize a line quantity and reject fractions in whole-only units.

    Raises:
        InvalidQuantity: not a number, or fractional where the unit forbids it.
    """
    try:
        value = to_decimal(quantity)
    except ValueError as exc:
        raise InvalidQuantity(quantity, "not a number") from exc
    if not unit.allows_fractional and not is_integral(value):
        raise InvalidQuantity(quantity, f"unit {unit.name} does not allow fractional quantities")
    return value


# =============================================================================
# UNIT GRAPH
# =============================================================================

class UnitGraph:
    """
    In-memory view of the unit catalog for repeated conversions.

    Load once per request (UnitGraph.load()) and look units up by id; every
    conversion still goes through get_multiplier so the two-level rule is
    identical to the per-call functions.
    """

    def __init__(self, units):
        self._units = {unit.id: unit for unit in units}
        for unit in self._units.values():
            validate_unit_definition(unit)
            if unit.base_unit_id is not None and unit.base_unit_id not in self._units:
                raise InvalidUnitDefinition(unit.id, f"base unit {unit.base_unit_id} is not defined")

    @classmethod
    def load(cls) -> "UnitGraph":
        return cls(list_units())

    def __contains__(self, unit_id) -> bool:
        return unit_id in self._units

    def __len__(self) -> int:
        return len(self._units)

    def unit(self, unit_or_id):
        unit_id = getattr(unit_or_id, "id", unit_or_id)
        try:
            return self._units[unit_id]
        except KeyError:
            raise RecordNotFound("unit", unit_id) from None

    def base_of(self, unit_or_id):
        """The unit's base unit, or the unit itself when it is a base."""
        unit = self.unit(unit_or_id)
        if unit.base_unit_id is None:
            return unit
        return self.unit(unit.base_unit_id)

    def sub_units(self, base_or_id) -> list:
        base = self.unit(base_or_id)
        return sorted(
            (u for u in self._units.values() if u.base_unit_id == base.id),
            key=lambda u: u.id,
        )

    def multiplier(self, from_unit, to_unit) -> Decimal:
        return get_multiplier(self.unit(from_unit), self.unit(to_unit))

    def convert(self, quantity, from_unit, to_unit) -> Decimal:
        return convert_quantity(quantity, self.unit(from_unit), self.unit(to_unit))

    def to_base(self, quantity, unit) -> Decimal:
        unit = self.unit(unit)
        return convert_quantity(quantity, unit, self.base_of(unit))

    def are_compatible(self, unit_a, unit_b) -> bool:
        return are_units_compatible(self.unit(unit_a), self.unit(unit_b))
