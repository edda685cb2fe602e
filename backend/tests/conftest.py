"""
Pytest fixtures for stockcore tests.

Provides an in-memory database, a small unit catalog (Pieces with Box and
Pack sub-units, Kilogram with Gram), a variant stocked in Pieces, and
contacts with open transactions.
"""

from datetime import datetime
from decimal import Decimal

import pytest

from stockcore import create_app
from stockcore.extensions import db
from stockcore.models import Contact, OutstandingTransaction, StockRecord, Unit, Variant


LOCATION_MAIN = 1
LOCATION_BRANCH = 2


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    # Clear all data but keep schema
    meta = db.metadata
    for table in reversed(meta.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    # Cleanup after test
    db.session.rollback()


@pytest.fixture(scope='function')
def pieces(db_session):
    unit = Unit(name="Pieces", short_name="pc", allows_fractional=False)
    db_session.add(unit)
    db_session.commit()
    return unit


@pytest.fixture(scope='function')
def box(db_session, pieces):
    """1 Box == 12 Pieces."""
    unit = Unit(
        name="Box",
        short_name="box",
        allows_fractional=False,
        base_unit_id=pieces.id,
        base_unit_multiplier=Decimal("12"),
    )
    db_session.add(unit)
    db_session.commit()
    return unit


@pytest.fixture(scope='function')
def pack(db_session, pieces):
    """1 Pack == 6 Pieces; a sibling of Box, not directly convertible to it."""
    unit = Unit(
        name="Pack",
        short_name="pk",
        allows_fractional=False,
        base_unit_id=pieces.id,
        base_unit_multiplier=Decimal("6"),
    )
    db_session.add(unit)
    db_session.commit()
    return unit


@pytest.fixture(scope='function')
def kilogram(db_session):
    unit = Unit(name="Kilogram", short_name="kg", allows_fractional=True)
    db_session.add(unit)
    db_session.commit()
    return unit


@pytest.fixture(scope='function')
def gram(db_session, kilogram):
    unit = Unit(
        name="Gram",
        short_name="g",
        allows_fractional=True,
        base_unit_id=kilogram.id,
        base_unit_multiplier=Decimal("0.001"),
    )
    db_session.add(unit)
    db_session.commit()
    return unit


@pytest.fixture(scope='function')
def variant(db_session, pieces, box):
    variant = Variant(sku="TEE-RED-M", name="T-Shirt Red M", base_unit_id=pieces.id)
    db_session.add(variant)
    db_session.commit()
    return variant


@pytest.fixture(scope='function')
def stocked_variant(db_session, variant):
    """Variant with 120 Pieces at the main location."""
    db_session.add(StockRecord(
        variant_id=variant.id,
        location_id=LOCATION_MAIN,
        qty_available=Decimal("120"),
        alert_threshold=Decimal("0"),
    ))
    db_session.commit()
    return variant


@pytest.fixture(scope='function')
def customer(db_session):
    contact = Contact(name="Walk-in Wholesale", contact_type="customer")
    db_session.add(contact)
    db_session.commit()
    return contact


@pytest.fixture(scope='function')
def supplier(db_session):
    contact = Contact(name="Fabric Mills Ltd", contact_type="supplier")
    db_session.add(contact)
    db_session.commit()
    return contact


@pytest.fixture(scope='function')
def dual_contact(db_session):
    contact = Contact(name="Tailor & Co", contact_type="both")
    db_session.add(contact)
    db_session.commit()
    return contact


@pytest.fixture(scope='function')
def make_transaction(db_session):
    """Factory for OutstandingTransaction rows."""

    def _make(contact, kind, total, paid="0", on=datetime(2026, 1, 1), status=None):
        total = Decimal(str(total))
        paid = Decimal(str(paid))
        if status is None:
            if paid == total:
                status = "paid"
            elif paid == 0:
                status = "due"
            else:
                status = "partial"
        transaction = OutstandingTransaction(
            contact_id=contact.id,
            kind=kind,
            total_amount=total,
            paid_amount=paid,
            transaction_date=on,
            payment_status=status,
        )
        db_session.add(transaction)
        db_session.commit()
        return transaction

    return _make
