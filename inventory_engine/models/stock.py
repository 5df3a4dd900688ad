"""Stock models: StockLevel, StockMovement and StockTransfer."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    event,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, validates

from inventory_engine.db.base import Base
from inventory_engine.models.validators import non_negative, non_zero, positive

# batch_id stored for stock that is not batch-tracked; keeps the unique key
# (product, warehouse, batch) free of NULLs on every backend
NO_BATCH = 0


def batch_key(batch_id: Optional[int]) -> int:
    return NO_BATCH if batch_id is None else batch_id


class MovementType(str, Enum):
    """Why a stock level changed."""

    TRANSFER_IN = "transfer_in"
    TRANSFER_OUT = "transfer_out"
    ADJUSTMENT = "adjustment"
    PRODUCTION_CONSUME = "production_consume"
    PRODUCTION_YIELD = "production_yield"
    LOSS = "loss"


class ReferenceType(str, Enum):
    """Kind of record a movement points back to."""

    ADJUSTMENT = "adjustment"
    TRANSFER = "transfer"
    PRODUCTION_RUN = "production_run"


class StockLevel(Base):
    """Current stock per product, warehouse and batch."""

    __tablename__ = "stock_levels"
    __table_args__ = (
        UniqueConstraint("product_id", "warehouse_id", "batch_id", name="uq_stock_level_key"),
        CheckConstraint("quantity >= 0", name="ck_stock_level_quantity_non_negative"),
        CheckConstraint("reserved_quantity >= 0", name="ck_stock_level_reserved_non_negative"),
        CheckConstraint("reserved_quantity <= quantity", name="ck_stock_level_reserved_le_quantity"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id"), nullable=False, index=True
    )
    warehouse_id: Mapped[int] = mapped_column(
        ForeignKey("warehouses.id"), nullable=False, index=True
    )
    batch_id: Mapped[int] = mapped_column(Integer, default=NO_BATCH, server_default="0", nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(18, 4), default=0, nullable=False)
    reserved_quantity: Mapped[Decimal] = mapped_column(
        Numeric(18, 4), default=0, server_default="0", nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    @validates("quantity", "reserved_quantity")
    def _validate_non_negative(self, key, value):
        return non_negative(key, value)

    @property
    def available_quantity(self) -> Decimal:
        return (self.quantity or Decimal("0")) - (self.reserved_quantity or Decimal("0"))


class StockMovement(Base):
    """Append-only journal of every stock level change."""

    __tablename__ = "stock_movements"
    __table_args__ = (Index("ix_stock_movements_reference", "reference_type", "reference_id"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )
    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id"), nullable=False, index=True
    )
    warehouse_id: Mapped[int] = mapped_column(
        ForeignKey("warehouses.id"), nullable=False, index=True
    )
    batch_id: Mapped[int] = mapped_column(Integer, default=NO_BATCH, server_default="0", nullable=False)
    movement_type: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    quantity_delta: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False)
    resulting_quantity: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False)
    reference_type: Mapped[str] = mapped_column(String(30), nullable=False)
    reference_id: Mapped[int] = mapped_column(Integer, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    created_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    @validates("quantity_delta")
    def _validate_delta(self, key, value):
        return non_zero(key, value)

    @validates("resulting_quantity")
    def _validate_resulting(self, key, value):
        return non_negative(key, value)


@event.listens_for(StockMovement, "before_update")
def _refuse_movement_update(mapper, connection, target):
    raise ValueError(f"StockMovement {target.id} is immutable")


@event.listens_for(StockMovement, "before_delete")
def _refuse_movement_delete(mapper, connection, target):
    raise ValueError(f"StockMovement {target.id} cannot be deleted")


class StockTransfer(Base):
    """A warehouse-to-warehouse move; shared reference of its two movements."""

    __tablename__ = "stock_transfers"

    id: Mapped[int] = mapped_column(primary_key=True)
    transfer_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id"), nullable=False, index=True
    )
    from_warehouse_id: Mapped[int] = mapped_column(
        ForeignKey("warehouses.id"), nullable=False, index=True
    )
    to_warehouse_id: Mapped[int] = mapped_column(
        ForeignKey("warehouses.id"), nullable=False, index=True
    )
    batch_id: Mapped[int] = mapped_column(Integer, default=NO_BATCH, server_default="0", nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    created_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    @validates("quantity")
    def _validate_quantity(self, key, value):
        return positive(key, value)
