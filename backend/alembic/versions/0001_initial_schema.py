"""initial schema: users, suppliers, inventory, purchase orders

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001_initial_schema"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Les colonnes Enum stockent le NOM du membre Python (draft, net_30...)
ROLE = sa.Enum("admin", "manager", "staff", name="role")
PAYMENT_TERMS = sa.Enum("net_15", "net_30", "net_45", "net_60", "due_on_receipt", "custom", name="payment_terms")
INVENTORY_CATEGORY = sa.Enum(
    "raw_material", "finished_goods", "components", "supplies", "food_beverage", "other",
    name="inventory_category",
)
PO_STATUS = sa.Enum("draft", "pending", "approved", "received", "cancelled", name="po_status")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def _user_fk(name: str, nullable: bool = True) -> sa.Column:
    return sa.Column(
        name,
        sa.String(24),
        sa.ForeignKey("users.id", ondelete="SET NULL" if nullable else "RESTRICT"),
        nullable=nullable,
    )


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(24), primary_key=True),
        sa.Column("name", sa.String(50), nullable=False),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("role", ROLE, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "suppliers",
        sa.Column("id", sa.String(24), primary_key=True),
        sa.Column("supplier_name", sa.String(100), nullable=False),
        sa.Column("contact_person", sa.String(50), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(32), nullable=False),
        sa.Column("street", sa.String(255)),
        sa.Column("city", sa.String(128)),
        sa.Column("state", sa.String(128)),
        sa.Column("country", sa.String(128)),
        sa.Column("postal_code", sa.String(32)),
        sa.Column("tax_id", sa.String(64), unique=True),
        sa.Column("payment_terms", PAYMENT_TERMS, nullable=False),
        sa.Column("rating", sa.Integer(), nullable=False),
        sa.Column("notes", sa.Text()),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        _user_fk("created_by"),
        _user_fk("updated_by"),
        *_timestamps(),
        sa.CheckConstraint("rating >= 1 AND rating <= 5", name="ck_supplier_rating_1_5"),
    )
    op.create_index("ix_suppliers_supplier_name", "suppliers", ["supplier_name"])
    op.create_index("ix_suppliers_email", "suppliers", ["email"])

    op.create_table(
        "inventory_items",
        sa.Column("id", sa.String(24), primary_key=True),
        sa.Column("item_name", sa.String(100), nullable=False),
        sa.Column("sku", sa.String(64), nullable=False, unique=True),
        sa.Column("description", sa.String(500)),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.Numeric(14, 2), nullable=False),
        sa.Column("category", INVENTORY_CATEGORY, nullable=False),
        sa.Column("reorder_level", sa.Integer(), nullable=False),
        sa.Column("supplier_id", sa.String(24), sa.ForeignKey("suppliers.id", ondelete="SET NULL")),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        _user_fk("created_by"),
        _user_fk("updated_by"),
        *_timestamps(),
        sa.CheckConstraint("quantity >= 0", name="ck_inventory_qty_nonneg"),
        sa.CheckConstraint("unit_price >= 0", name="ck_inventory_unit_price_nonneg"),
        sa.CheckConstraint("reorder_level >= 0", name="ck_inventory_reorder_level_nonneg"),
    )
    op.create_index("ix_inventory_items_item_name", "inventory_items", ["item_name"])
    op.create_index("ix_inventory_items_category", "inventory_items", ["category"])

    op.create_table(
        "purchase_orders",
        sa.Column("id", sa.String(24), primary_key=True),
        sa.Column("po_number", sa.String(32), nullable=False, unique=True),
        sa.Column(
            "supplier_id",
            sa.String(24),
            sa.ForeignKey("suppliers.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("status", PO_STATUS, nullable=False),
        sa.Column("total_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("order_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expected_delivery_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("actual_delivery_date", sa.DateTime(timezone=True)),
        sa.Column("notes", sa.Text()),
        _user_fk("created_by", nullable=False),
        _user_fk("updated_by"),
        _user_fk("approved_by"),
        _user_fk("received_by"),
        sa.Column("version", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("total_amount >= 0", name="ck_po_total_amount_nonneg"),
    )
    op.create_index("ix_purchase_orders_supplier_id", "purchase_orders", ["supplier_id"])
    op.create_index("ix_purchase_orders_status", "purchase_orders", ["status"])
    op.create_index("ix_purchase_orders_order_date", "purchase_orders", ["order_date"])

    op.create_table(
        "purchase_order_lines",
        sa.Column("id", sa.String(24), primary_key=True),
        sa.Column(
            "po_id",
            sa.String(24),
            sa.ForeignKey("purchase_orders.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column(
            "inventory_id",
            sa.String(24),
            sa.ForeignKey("inventory_items.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("item_name", sa.String(100), nullable=False),
        sa.Column("sku", sa.String(64), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.Numeric(14, 2), nullable=False),
        sa.Column("total_price", sa.Numeric(14, 2), nullable=False),
        sa.CheckConstraint("quantity >= 1", name="ck_po_line_qty_pos"),
        sa.CheckConstraint("unit_price >= 0", name="ck_po_line_unit_price_nonneg"),
    )
    op.create_index("ix_purchase_order_lines_po_id", "purchase_order_lines", ["po_id"])


def downgrade() -> None:
    op.drop_table("purchase_order_lines")
    op.drop_table("purchase_orders")
    op.drop_table("inventory_items")
    op.drop_table("suppliers")
    op.drop_table("users")

    bind = op.get_bind()
    for enum_type in (PO_STATUS, INVENTORY_CATEGORY, PAYMENT_TERMS, ROLE):
        enum_type.drop(bind, checkfirst=True)
