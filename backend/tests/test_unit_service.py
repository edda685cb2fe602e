from decimal import Decimal
from types import SimpleNamespace

import pytest

from stockcore.exceptions import IncompatibleUnits, InvalidQuantity, InvalidUnitDefinition, RecordNotFound
from stockcore.services import unit_service
from stockcore.services.unit_service import UnitGraph

TOLERANCE = Decimal("1e-20")


def _unit(unit_id, name, base_unit_id=None, multiplier=None, allows_fractional=False):
    return SimpleNamespace(
        id=unit_id,
        name=name,
        base_unit_id=base_unit_id,
        base_unit_multiplier=None if multiplier is None else Decimal(multiplier),
        allows_fractional=allows_fractional,
    )


PIECES = _unit(1, "Pieces")
BOX = _unit(2, "Box", base_unit_id=1, multiplier="12")
PACK = _unit(3, "Pack", base_unit_id=1, multiplier="6")
CRATE = _unit(4, "Crate", base_unit_id=2, multiplier="10")  # sub-unit of a sub-unit
KILOGRAM = _unit(5, "Kilogram", allows_fractional=True)
GRAM = _unit(6, "Gram", base_unit_id=5, multiplier="0.001", allows_fractional=True)


def test_same_unit_multiplier_is_one():
    assert unit_service.get_multiplier(BOX, BOX) == 1


def test_sub_unit_to_base_uses_multiplier():
    assert unit_service.get_multiplier(BOX, PIECES) == Decimal("12")


def test_base_to_sub_unit_is_reciprocal():
    assert unit_service.get_multiplier(PIECES, BOX) == Decimal(1) / Decimal(12)


@pytest.mark.parametrize("a, b", [(BOX, PIECES), (PACK, PIECES), (GRAM, KILOGRAM)])
def test_multipliers_are_inverse(a, b):
    product = unit_service.get_multiplier(a, b) * unit_service.get_multiplier(b, a)
    assert abs(product - 1) < TOLERANCE


def test_convert_box_to_pieces():
    assert unit_service.convert_quantity(2, BOX, PIECES) == Decimal("24")
    assert unit_service.convert_quantity(Decimal("1500"), GRAM, KILOGRAM) == Decimal("1.5")


@pytest.mark.parametrize("quantity", ["1", "7", "0.5", "144", "1000.25"])
def test_conversion_round_trip(quantity):
    there = unit_service.convert_quantity(quantity, PIECES, BOX)
    back = unit_service.convert_quantity(there, BOX, PIECES)
    assert abs(back - Decimal(quantity)) < TOLERANCE


def test_sibling_sub_units_are_incompatible():
    with pytest.raises(IncompatibleUnits) as exc_info:
        unit_service.get_multiplier(BOX, PACK)
    assert exc_info.value.from_unit_id == BOX.id
    assert exc_info.value.to_unit_id == PACK.id


def test_chains_are_not_walked():
    assert unit_service.get_multiplier(CRATE, BOX) == Decimal("10")
    with pytest.raises(IncompatibleUnits):
        unit_service.get_multiplier(CRATE, PIECES)


def test_unrelated_bases_are_incompatible():
    assert not unit_service.are_units_compatible(PIECES, KILOGRAM)
    assert unit_service.are_units_compatible(GRAM, KILOGRAM)


@pytest.mark.parametrize("multiplier", ["0", "-12"])
def test_non_positive_multiplier_is_a_definition_error(multiplier):
    broken = _unit(9, "Broken", base_unit_id=1, multiplier=multiplier)
    with pytest.raises(InvalidUnitDefinition) as exc_info:
        unit_service.get_multiplier(broken, PIECES)
    assert exc_info.value.unit_id == 9


def test_half_defined_sub_unit_is_a_definition_error():
    with pytest.raises(InvalidUnitDefinition):
        unit_service.get_multiplier(_unit(9, "NoFactor", base_unit_id=1), PIECES)
    with pytest.raises(InvalidUnitDefinition):
        unit_service.get_multiplier(_unit(9, "NoBase", multiplier="3"), PIECES)


def test_convert_to_base_rejects_sub_unit_as_base():
    with pytest.raises(InvalidUnitDefinition):
        unit_service.convert_to_base(1, CRATE, BOX)
    assert unit_service.convert_to_base(3, BOX, PIECES) == Decimal("36")


def test_whole_units_reject_fractions():
    with pytest.raises(InvalidQuantity):
        unit_service.validate_quantity_for_unit("1.5", BOX)
    assert unit_service.validate_quantity_for_unit("2.000", BOX) == Decimal("2")
    assert unit_service.validate_quantity_for_unit("0.25", KILOGRAM) == Decimal("0.25")


def test_non_numeric_quantity_is_rejected():
    with pytest.raises(InvalidQuantity):
        unit_service.validate_quantity_for_unit("two", PIECES)


def test_unit_graph_in_memory():
    graph = UnitGraph([PIECES, BOX, PACK, KILOGRAM, GRAM])

    assert len(graph) == 5
    assert graph.to_base(2, BOX.id) == Decimal("24")
    assert graph.base_of(GRAM.id) is KILOGRAM
    assert graph.base_of(PIECES.id) is PIECES
    assert [u.name for u in graph.sub_units(PIECES.id)] == ["Box", "Pack"]
    assert graph.multiplier(PIECES.id, PACK.id) == Decimal(1) / Decimal(6)
    assert not graph.are_compatible(BOX.id, PACK.id)


def test_unit_graph_rejects_dangling_base():
    with pytest.raises(InvalidUnitDefinition):
        UnitGraph([BOX])


def test_unit_graph_unknown_unit():
    graph = UnitGraph([PIECES])
    with pytest.raises(RecordNotFound):
        graph.unit(42)


def test_unit_source_reads_catalog(db_session, pieces, box, gram):
    assert [u.name for u in unit_service.list_units()] == ["Pieces", "Box", "Kilogram", "Gram"]
    assert unit_service.get_unit(box.id).base_unit_multiplier == Decimal("12")

    graph = UnitGraph.load()
    assert graph.convert(3, box.id, pieces.id) == Decimal("36")
    assert box.id in graph


def test_get_unit_missing(db_session):
    with pytest.raises(RecordNotFound) as exc_info:
        unit_service.get_unit(999)
    assert exc_info.value.entity_type == "unit"
