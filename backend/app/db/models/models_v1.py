from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    String,
    Integer,
    DateTime,
    Boolean,
    ForeignKey,
    Numeric,
    Text,
    Enum,
    Index,
    CheckConstraint,
)
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.app.db.base import Base, TimestampMixin, new_object_id, utcnow
from backend.app.db.models.core_types import (
    Role,
    InventoryCategory,
    PaymentTerms,
    POStatus,
)

ID_LENGTH = 24


def _pk() -> Mapped[str]:
    return mapped_column(String(ID_LENGTH), primary_key=True, default=new_object_id)


def _user_fk(nullable: bool = True) -> Mapped[str | None]:
    return mapped_column(ForeignKey("users.id", ondelete="SET NULL" if nullable else "RESTRICT"), nullable=nullable)


# ---------- AUTH ----------
class User(TimestampMixin, Base):
    __tablename__ = "users"
    id: Mapped[str] = _pk()
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[Role] = mapped_column(Enum(Role, name="role"), default=Role.staff, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


# ---------- MASTER DATA ----------
class Supplier(TimestampMixin, Base):
    __tablename__ = "suppliers"
    id: Mapped[str] = _pk()
    supplier_name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    contact_person: Mapped[str] = mapped_column(String(50), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    phone: Mapped[str] = mapped_column(String(32), nullable=False)

    # Adresse (sous-document côté API)
    street: Mapped[str | None] = mapped_column(String(255))
    city: Mapped[str | None] = mapped_column(String(128))
    state: Mapped[str | None] = mapped_column(String(128))
    country: Mapped[str | None] = mapped_column(String(128))
    postal_code: Mapped[str | None] = mapped_column(String(32))

    tax_id: Mapped[str | None] = mapped_column(String(64), unique=True)  # NULL multiples autorisés
    payment_terms: Mapped[PaymentTerms] = mapped_column(
        Enum(PaymentTerms, name="payment_terms"),
        default=PaymentTerms.net_30,
        nullable=False,
    )
    rating: Mapped[int] = mapped_column(Integer, default=3, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_by: Mapped[str | None] = _user_fk()
    updated_by: Mapped[str | None] = _user_fk()

    creator: Mapped[User | None] = relationship(foreign_keys=[created_by])
    updater: Mapped[User | None] = relationship(foreign_keys=[updated_by])

    __table_args__ = (CheckConstraint("rating >= 1 AND rating <= 5", name="ck_supplier_rating_1_5"),)


class InventoryItem(TimestampMixin, Base):
    __tablename__ = "inventory_items"
    id: Mapped[str] = _pk()
    item_name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    sku: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(String(500))
    quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    category: Mapped[InventoryCategory] = mapped_column(
        Enum(InventoryCategory, name="inventory_category"),
        default=InventoryCategory.other,
        nullable=False,
        index=True,
    )
    reorder_level: Mapped[int] = mapped_column(Integer, default=10, nullable=False)
    supplier_id: Mapped[str | None] = mapped_column(ForeignKey("suppliers.id", ondelete="SET NULL"))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_by: Mapped[str | None] = _user_fk()
    updated_by: Mapped[str | None] = _user_fk()

    supplier: Mapped[Supplier | None] = relationship()
    creator: Mapped[User | None] = relationship(foreign_keys=[created_by])
    updater: Mapped[User | None] = relationship(foreign_keys=[updated_by])

    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_inventory_qty_nonneg"),
        CheckConstraint("unit_price >= 0", name="ck_inventory_unit_price_nonneg"),
        CheckConstraint("reorder_level >= 0", name="ck_inventory_reorder_level_nonneg"),
    )

    @hybrid_property
    def is_low_stock(self) -> bool:
        return self.quantity <= self.reorder_level


# ---------- PROCUREMENT ----------
class PurchaseOrder(TimestampMixin, Base):
    __tablename__ = "purchase_orders"
    id: Mapped[str] = _pk()
    po_number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    supplier_id: Mapped[str] = mapped_column(ForeignKey("suppliers.id", ondelete="RESTRICT"), nullable=False, index=True)
    status: Mapped[POStatus] = mapped_column(
        Enum(POStatus, name="po_status"),
        default=POStatus.draft,
        nullable=False,
        index=True,
    )
    total_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=Decimal("0.00"), nullable=False)

    order_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    expected_delivery_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    actual_delivery_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    notes: Mapped[str | None] = mapped_column(Text)

    created_by: Mapped[str] = _user_fk(nullable=False)
    updated_by: Mapped[str | None] = _user_fk()
    approved_by: Mapped[str | None] = _user_fk()
    received_by: Mapped[str | None] = _user_fk()

    # Verrou optimiste : incrémenté à chaque UPDATE de la ligne PO
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    supplier: Mapped[Supplier] = relationship()
    lines: Mapped[list["PurchaseOrderLine"]] = relationship(
        back_populates="po",
        cascade="all, delete-orphan",
        order_by="PurchaseOrderLine.position",
    )
    creator: Mapped[User] = relationship(foreign_keys=[created_by])
    updater: Mapped[User | None] = relationship(foreign_keys=[updated_by])
    approver: Mapped[User | None] = relationship(foreign_keys=[approved_by])
    receiver: Mapped[User | None] = relationship(foreign_keys=[received_by])

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("total_amount >= 0", name="ck_po_total_amount_nonneg"),
        Index("ix_purchase_orders_order_date", "order_date"),
    )


class PurchaseOrderLine(Base):
    __tablename__ = "purchase_order_lines"
    id: Mapped[str] = _pk()
    po_id: Mapped[str] = mapped_column(
        ForeignKey("purchase_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    inventory_id: Mapped[str] = mapped_column(ForeignKey("inventory_items.id", ondelete="RESTRICT"), nullable=False)

    # Snapshot pris à la création de la ligne, jamais resynchronisé
    item_name: Mapped[str] = mapped_column(String(100), nullable=False)
    sku: Mapped[str] = mapped_column(String(64), nullable=False)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)

    po: Mapped[PurchaseOrder] = relationship(back_populates="lines")
    inventory: Mapped[InventoryItem] = relationship()

    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_po_line_qty_pos"),
        CheckConstraint("unit_price >= 0", name="ck_po_line_unit_price_nonneg"),
    )
