"""Inventory adjustment model (typed stock corrections with dual control)."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, validates

from inventory_engine.db.base import Base, TimestampMixin
from inventory_engine.models.stock import NO_BATCH
from inventory_engine.models.validators import non_zero


class AdjustmentType(str, Enum):
    LOSS = "loss"
    DRYING = "drying"  # moisture loss
    DAMAGE = "damage"
    EXPIRY = "expiry"
    COUNT_CORRECTION = "count_correction"
    THEFT = "theft"
    FOUND = "found"
    OTHER = "other"


class AdjustmentStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    APPLIED = "applied"


class InventoryAdjustment(Base, TimestampMixin):
    """A manual stock correction; its ledger effect happens once, on ``applied``."""

    __tablename__ = "inventory_adjustments"

    id: Mapped[int] = mapped_column(primary_key=True)
    adjustment_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id"), nullable=False, index=True
    )
    warehouse_id: Mapped[int] = mapped_column(
        ForeignKey("warehouses.id"), nullable=False, index=True
    )
    batch_id: Mapped[int] = mapped_column(Integer, default=NO_BATCH, server_default="0", nullable=False)
    adjustment_type: Mapped[str] = mapped_column(String(30), nullable=False)
    quantity_change: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False)
    # Snapshots taken when the delta hits the ledger
    quantity_before: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 4), nullable=True)
    quantity_after: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 4), nullable=True)
    reason: Mapped[str] = mapped_column(String(500), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), default=AdjustmentStatus.PENDING.value, nullable=False, index=True
    )
    created_by: Mapped[int] = mapped_column(Integer, nullable=False)
    approved_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    approval_notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    applied_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    movement_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("stock_movements.id"), nullable=True
    )

    @validates("quantity_change")
    def _validate_change(self, key, value):
        return non_zero(key, value)
