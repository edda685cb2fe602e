"""Sale-to-settlement flow through the three public operations."""

from datetime import datetime
from decimal import Decimal

import pytest

from stockcore import core
from stockcore.exceptions import InsufficientStock, InvalidPaymentAmount
from stockcore.services.stock_service import DIRECTION_DECREASE

from conftest import LOCATION_MAIN


def test_core_exports_exactly_three_operations():
    assert sorted(core.__all__) == ["adjust_stock", "check_availability", "settle_payment"]


def test_sale_then_payment(db_session, stocked_variant, box, customer, make_transaction):
    check = core.check_availability(stocked_variant.id, LOCATION_MAIN, 11, box)
    assert not check.sufficient
    assert check.shortfall == Decimal("12")

    with pytest.raises(InsufficientStock) as exc_info:
        core.adjust_stock(stocked_variant.id, LOCATION_MAIN, 11, box, DIRECTION_DECREASE)
    assert exc_info.value.shortfall == Decimal("12")

    # Operator re-quantifies
    assert core.check_availability(stocked_variant.id, LOCATION_MAIN, 2, box).sufficient
    assert core.adjust_stock(stocked_variant.id, LOCATION_MAIN, 2, box, DIRECTION_DECREASE) == Decimal("96")

    sale = make_transaction(customer, "sale", "480.00", on=datetime(2026, 10, 1))
    with pytest.raises(InvalidPaymentAmount):
        core.settle_payment(customer.id, "0")

    result = core.settle_payment(customer.id, "480.00")
    assert result.statuses == {sale.id: "paid"}
    assert result.to_dict()["unapplied_remainder"] == "0.00"
