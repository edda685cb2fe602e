from __future__ import annotations

from ..extensions import db
from ..numeric import quantity_type
from stockcore.time_utils import to_utc_z


class Unit(db.Model):
    """
    Unit of measure, read-only to the stock core.

    A base unit has base_unit_id = NULL. A sub-unit points at its base unit
    and declares how many base units one of it is worth:
    1 Box == base_unit_multiplier (12) Pieces.

    Only two levels are meaningful: a sub-unit of a sub-unit is never
    resolved transitively.
    """
    __tablename__ = "units"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_units_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False)
    short_name = db.Column(db.String(16), nullable=True)

    allows_fractional = db.Column(db.Boolean, nullable=False, default=False)

    base_unit_id = db.Column(db.Integer, db.ForeignKey("units.id"), nullable=True, index=True)
    base_unit_multiplier = db.Column(quantity_type(), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    base_unit = db.relationship("Unit", remote_side=[id], backref=db.backref("sub_units", lazy=True))

    def __repr__(self) -> str:
        return f"<Unit id={self.id} name={self.name!r} base_unit_id={self.base_unit_id}>"

    @property
    def is_base(self) -> bool:
        return self.base_unit_id is None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "short_name": self.short_name,
            "allows_fractional": self.allows_fractional,
            "base_unit_id": self.base_unit_id,
            "base_unit_multiplier": (
                str(self.base_unit_multiplier) if self.base_unit_multiplier is not None else None
            ),
            "created_at": to_utc_z(self.created_at),
        }


class Variant(db.Model):
    """
    Stock-keeping variant of a product (size/colour/etc.).

    base_unit_id is the canonical unit every StockRecord quantity for this
    variant is expressed in.
    """
    __tablename__ = "variants"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_variants_sku"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)

    base_unit_id = db.Column(db.Integer, db.ForeignKey("units.id"), nullable=False, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    base_unit = db.relationship("Unit", foreign_keys=[base_unit_id])

    def __repr__(self) -> str:
        return f"<Variant id={self.id} sku={self.sku!r} base_unit_id={self.base_unit_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "base_unit_id": self.base_unit_id,
            "created_at": to_utc_z(self.created_at),
        }
