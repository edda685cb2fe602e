from __future__ import annotations

from ..extensions import db
from ..numeric import ZERO, quantity_type
from stockcore.time_utils import to_utc_z, utcnow


class StockRecord(db.Model):
    """
    On-hand quantity of one variant at one location, in the variant's base unit.

    Created lazily the first time a variant is stocked at a location, never
    deleted (only zeroed). version_id makes every write a compare-and-swap:
    a flush against a row that changed underneath raises StaleDataError.

    location_id is an opaque identifier owned by branch management.
    """
    __tablename__ = "stock_records"
    __table_args__ = (
        db.Index("ix_stock_records_location", "location_id"),
    )

    variant_id = db.Column(db.Integer, db.ForeignKey("variants.id"), primary_key=True)
    location_id = db.Column(db.Integer, primary_key=True, autoincrement=False)

    qty_available = db.Column(quantity_type(), nullable=False, default=ZERO)
    alert_threshold = db.Column(quantity_type(), nullable=False, default=ZERO)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    variant = db.relationship("Variant", backref=db.backref("stock_records", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return (
            f"<StockRecord variant_id={self.variant_id} location_id={self.location_id} "
            f"qty_available={self.qty_available}>"
        )

    def to_dict(self) -> dict:
        return {
            "variant_id": self.variant_id,
            "location_id": self.location_id,
            "qty_available": str(self.qty_available),
            "alert_threshold": str(self.alert_threshold),
            "version_id": self.version_id,
            "updated_at": to_utc_z(self.updated_at),
        }
