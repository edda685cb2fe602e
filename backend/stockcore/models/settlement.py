from __future__ import annotations

from ..extensions import db
from ..numeric import ZERO, money_type
from stockcore.time_utils import to_utc_z, utcnow


class Contact(db.Model):
    """
    Customer and/or supplier whose open transactions absorb payments.

    contact_type decides which side a payment settles: customers owe us
    (sales), we owe suppliers (purchases). A 'both' contact always needs the
    side spelled out by the caller.

    The row doubles as the per-contact settlement lock: settle_payment locks
    it and stamps last_settled_at, so racing settlements collide on
    version_id even where SELECT ... FOR UPDATE is a no-op (SQLite).
    """
    __tablename__ = "contacts"
    __table_args__ = (
        db.CheckConstraint(
            "contact_type IN ('customer', 'supplier', 'both')",
            name="ck_contacts_type",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    contact_type = db.Column(db.String(16), nullable=False, default="customer")

    last_settled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Contact id={self.id} name={self.name!r} type={self.contact_type}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "contact_type": self.contact_type,
            "last_settled_at": to_utc_z(self.last_settled_at) if self.last_settled_at else None,
            "version_id": self.version_id,
        }


class OutstandingTransaction(db.Model):
    """
    Sale or purchase whose payment is tracked against a contact.

    paid_amount is authoritative; payment_status is derived from it
    (due / partial / paid) and stored for filtering only.
    """
    __tablename__ = "outstanding_transactions"
    __table_args__ = (
        db.CheckConstraint("kind IN ('sale', 'purchase')", name="ck_outstanding_kind"),
        db.CheckConstraint(
            "paid_amount >= 0 AND paid_amount <= total_amount",
            name="ck_outstanding_paid_range",
        ),
        db.Index(
            "ix_outstanding_contact_kind_status",
            "contact_id", "kind", "payment_status",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    contact_id = db.Column(db.Integer, db.ForeignKey("contacts.id"), nullable=False, index=True)

    kind = db.Column(db.String(16), nullable=False)  # sale, purchase
    reference_no = db.Column(db.String(64), nullable=True)

    total_amount = db.Column(money_type(), nullable=False)
    paid_amount = db.Column(money_type(), nullable=False, default=ZERO)

    transaction_date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    payment_status = db.Column(db.String(16), nullable=False, default="due", index=True)  # due, partial, paid

    version_id = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    contact = db.relationship("Contact", backref=db.backref("transactions", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return (
            f"<OutstandingTransaction id={self.id} kind={self.kind} "
            f"paid={self.paid_amount}/{self.total_amount} status={self.payment_status}>"
        )

    @property
    def outstanding_amount(self):
        return self.total_amount - self.paid_amount

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "contact_id": self.contact_id,
            "kind": self.kind,
            "reference_no": self.reference_no,
            "total_amount": str(self.total_amount),
            "paid_amount": str(self.paid_amount),
            "outstanding_amount": str(self.outstanding_amount),
            "transaction_date": to_utc_z(self.transaction_date),
            "payment_status": self.payment_status,
            "version_id": self.version_id,
            "updated_at": to_utc_z(self.updated_at),
        }
