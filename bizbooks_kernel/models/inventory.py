"""
Module: bizbooks_kernel.models.inventory
Responsibility: ORM persistence for products, stock lots and lot
    consumptions -- the state behind FIFO cost of goods sold.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - 0 <= remaining_quantity <= initial_quantity on every lot (CHECK).
    - remaining_quantity only decreases through consumption and only
      increases through restoration of a recorded consumption.
    - A consumption row records quantity and the lot's unit cost at the
      moment of consumption; total_cost = quantity * unit_cost.
    - A lot with remaining < initial is never deleted.

Audit relevance:
    Consumption rows are kept after restoration (restored_at is stamped), so
    the history of which lots fed which sale line survives voids.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bizbooks_kernel.db.base import OrgScopedBase, UUIDString


class LotSourceType(str, Enum):
    """How a stock lot came into existence."""

    PURCHASE = "PURCHASE"
    ADJUSTMENT = "ADJUSTMENT"
    OPENING = "OPENING"
    RETURN = "RETURN"


class ConsumerType(str, Enum):
    """What consumed stock from a lot."""

    SALE = "SALE"
    ADJUSTMENT = "ADJUSTMENT"
    PURCHASE_RETURN = "PURCHASE_RETURN"


class Product(OrgScopedBase):
    """
    Stock-keeping product.

    Products with ``track_inventory`` False (services) never touch lots.
    """

    __tablename__ = "products"

    __table_args__ = (
        UniqueConstraint("organization_id", "sku", name="uq_product_org_sku"),
    )

    sku: Mapped[str] = mapped_column(String(100), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    unit: Mapped[str] = mapped_column(String(20), nullable=False, default="unit")

    track_inventory: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    hsn_code: Mapped[str | None] = mapped_column(String(20), nullable=True)

    def __repr__(self) -> str:
        return f"<Product {self.sku}>"


class StockLot(OrgScopedBase):
    """
    One receipt of inventory at a fixed unit cost.

    ``receipt_seq`` is a per-organization monotonic counter that breaks ties
    between lots sharing a lot_date (oldest receipt first).
    """

    __tablename__ = "stock_lots"

    __table_args__ = (
        Index("idx_stock_lot_fifo", "product_id", "lot_date", "receipt_seq"),
        CheckConstraint(
            "remaining_quantity >= 0 AND remaining_quantity <= initial_quantity",
            name="ck_stock_lot_remaining",
        ),
        CheckConstraint("unit_cost >= 0", name="ck_stock_lot_unit_cost"),
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("products.id"),
        nullable=False,
    )

    source_type: Mapped[LotSourceType] = mapped_column(String(20), nullable=False)

    source_ref: Mapped[str | None] = mapped_column(String(100), nullable=True)

    lot_date: Mapped[date] = mapped_column(Date, nullable=False)

    receipt_seq: Mapped[int] = mapped_column(BigInteger, nullable=False)

    unit_cost: Mapped[Decimal] = mapped_column(nullable=False)

    initial_quantity: Mapped[Decimal] = mapped_column(nullable=False)

    remaining_quantity: Mapped[Decimal] = mapped_column(nullable=False)

    product: Mapped["Product"] = relationship()

    def __repr__(self) -> str:
        return (
            f"<StockLot {self.lot_date} {self.remaining_quantity}/"
            f"{self.initial_quantity} @ {self.unit_cost}>"
        )

    @property
    def is_untouched(self) -> bool:
        return self.remaining_quantity == self.initial_quantity


class StockLotConsumption(OrgScopedBase):
    """
    Quantity taken from one lot by one consuming line.

    ``consumer_ref`` is an opaque reference to the consuming line (e.g. an
    invoice line id); all rows for one consumer sum to its sold quantity
    and its cost of goods sold.
    """

    __tablename__ = "stock_lot_consumptions"

    __table_args__ = (
        Index("idx_consumption_consumer", "consumer_type", "consumer_ref"),
        Index("idx_consumption_lot", "stock_lot_id"),
        CheckConstraint("quantity > 0", name="ck_consumption_quantity"),
    )

    stock_lot_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("stock_lots.id"),
        nullable=False,
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("products.id"),
        nullable=False,
    )

    consumer_type: Mapped[ConsumerType] = mapped_column(String(20), nullable=False)

    consumer_ref: Mapped[str] = mapped_column(String(100), nullable=False)

    consumed_on: Mapped[date] = mapped_column(Date, nullable=False)

    quantity: Mapped[Decimal] = mapped_column(nullable=False)

    unit_cost: Mapped[Decimal] = mapped_column(nullable=False)

    total_cost: Mapped[Decimal] = mapped_column(nullable=False)

    restored_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    lot: Mapped["StockLot"] = relationship()

    @property
    def is_restored(self) -> bool:
        return self.restored_at is not None
