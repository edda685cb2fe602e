"""stock and settlement schema

Revision ID: 20261016_stock_settlement
Revises:
Create Date: 2026-10-16 09:00:00.000000

Creates the tables the stock and settlement core reads and writes:
- units: base units and direct sub-units (read-only to the core)
- variants: stock-keeping variants with their canonical base unit
- stock_records: on-hand quantity per (variant, location), versioned
- contacts: customers/suppliers, doubles as the settlement lock row
- outstanding_transactions: sales/purchases with authoritative paid_amount
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261016_stock_settlement"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "units",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=64), nullable=False),
        sa.Column("short_name", sa.String(length=16), nullable=True),
        sa.Column("allows_fractional", sa.Boolean(), nullable=False),
        sa.Column("base_unit_id", sa.Integer(), nullable=True),
        sa.Column("base_unit_multiplier", sa.Numeric(precision=18, scale=6), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["base_unit_id"], ["units.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name", name="uq_units_name"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_units_base_unit_id", "units", ["base_unit_id"])

    op.create_table(
        "variants",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("sku", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("base_unit_id", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["base_unit_id"], ["units.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("sku", name="uq_variants_sku"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_variants_base_unit_id", "variants", ["base_unit_id"])

    op.create_table(
        "stock_records",
        sa.Column("variant_id", sa.Integer(), nullable=False),
        sa.Column("location_id", sa.Integer(), nullable=False, autoincrement=False),
        sa.Column("qty_available", sa.Numeric(precision=18, scale=6), nullable=False),
        sa.Column("alert_threshold", sa.Numeric(precision=18, scale=6), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["variant_id"], ["variants.id"]),
        sa.PrimaryKeyConstraint("variant_id", "location_id"),
    )
    op.create_index("ix_stock_records_location", "stock_records", ["location_id"])

    op.create_table(
        "contacts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("contact_type", sa.String(length=16), nullable=False),
        sa.Column("last_settled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.CheckConstraint(
            "contact_type IN ('customer', 'supplier', 'both')",
            name="ck_contacts_type",
        ),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "outstanding_transactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("contact_id", sa.Integer(), nullable=False),
        sa.Column("kind", sa.String(length=16), nullable=False),
        sa.Column("reference_no", sa.String(length=64), nullable=True),
        sa.Column("total_amount", sa.Numeric(precision=18, scale=2), nullable=False),
        sa.Column("paid_amount", sa.Numeric(precision=18, scale=2), nullable=False),
        sa.Column("transaction_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("payment_status", sa.String(length=16), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("kind IN ('sale', 'purchase')", name="ck_outstanding_kind"),
        sa.CheckConstraint(
            "paid_amount >= 0 AND paid_amount <= total_amount",
            name="ck_outstanding_paid_range",
        ),
        sa.ForeignKeyConstraint(["contact_id"], ["contacts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_outstanding_transactions_contact_id", "outstanding_transactions", ["contact_id"])
    op.create_index("ix_outstanding_transactions_transaction_date", "outstanding_transactions", ["transaction_date"])
    op.create_index("ix_outstanding_transactions_payment_status", "outstanding_transactions", ["payment_status"])
    op.create_index(
        "ix_outstanding_contact_kind_status",
        "outstanding_transactions",
        ["contact_id", "kind", "payment_status"],
    )


def downgrade():
    op.drop_table("outstanding_transactions")
    op.drop_table("contacts")
    op.drop_table("stock_records")
    op.drop_table("variants")
    op.drop_table("units")
