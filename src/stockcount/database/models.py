"""SQLAlchemy database models."""

import enum
from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InventoryStatus(str, enum.Enum):
    """Lifecycle states of a count session."""

    DRAFT = "DRAFT"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in (InventoryStatus.COMPLETED, InventoryStatus.CANCELLED)


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class Product(Base):
    """Catalog product with its live stock level."""

    __tablename__ = "products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False, index=True)
    sku: Mapped[str] = mapped_column(String, unique=True, nullable=False, index=True)
    barcode: Mapped[Optional[str]] = mapped_column(String, nullable=True, index=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    min_stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    category: Mapped[Optional[str]] = mapped_column(String, nullable=True, index=True)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=True
    )

    def __repr__(self) -> str:
        return f"<Product(id={self.id}, sku='{self.sku}', quantity={self.quantity})>"


class Inventory(Base):
    """Model for a physical count session."""

    __tablename__ = "inventories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    inventory_number: Mapped[Optional[str]] = mapped_column(String, unique=True, nullable=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String, nullable=False, default=InventoryStatus.DRAFT.value, index=True
    )
    created_by: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=True
    )

    # Relationships
    if TYPE_CHECKING:
        items: Mapped[list["InventoryItem"]]
    else:
        items = relationship(
            "InventoryItem",
            back_populates="inventory",
            cascade="all, delete-orphan",
            order_by="InventoryItem.id",
        )

    @property
    def state(self) -> InventoryStatus:
        return InventoryStatus(self.status)

    def __repr__(self) -> str:
        return f"<Inventory(id={self.id}, name='{self.name}', status='{self.status}')>"


class InventoryItem(Base):
    """One product line inside a count session.

    Product name, SKU and barcode are copied when the line is added so the
    count stays readable if the catalog changes later. ``counted_quantity``
    is NULL until the operator records a count.
    """

    __tablename__ = "inventory_items"
    __table_args__ = (
        UniqueConstraint("inventory_id", "product_id", name="uq_inventory_item_product"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    inventory_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("inventories.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    product_name: Mapped[str] = mapped_column(String, nullable=False)
    product_sku: Mapped[str] = mapped_column(String, nullable=False)
    product_barcode: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    expected_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    counted_quantity: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    counted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=True
    )

    # Relationships
    if TYPE_CHECKING:
        inventory: Mapped["Inventory"]
    else:
        inventory = relationship("Inventory", back_populates="items")

    def __repr__(self) -> str:
        return (
            f"<InventoryItem(id={self.id}, product_id={self.product_id}, "
            f"expected={self.expected_quantity}, counted={self.counted_quantity})>"
        )


class StockAdjustment(Base):
    """Stock delta applied to a product when a count session completes."""

    __tablename__ = "stock_adjustments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    inventory_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("inventories.id", ondelete="SET NULL"), nullable=True, index=True
    )
    product_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    delta: Mapped[int] = mapped_column(Integer, nullable=False)
    previous_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    new_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    applied_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    def __repr__(self) -> str:
        return f"<StockAdjustment(id={self.id}, product_id={self.product_id}, delta={self.delta})>"


class TransactionLog(Base):
    """Audit trail of count-session mutations."""

    __tablename__ = "transaction_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    operation: Mapped[str] = mapped_column(String, nullable=False)
    inventory_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    item_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    data: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="CONFIRMED")
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    def __repr__(self) -> str:
        return f"<TransactionLog(id={self.id}, operation='{self.operation}', status='{self.status}')>"
