"""Inventory batches: lot numbers and expiry for batch-tracked stock.

Quantities per batch live in ``stock_levels`` keyed by ``batch_id``; this
table only identifies the lot. ``stock_levels.batch_id`` carries no foreign
key because ``NO_BATCH`` (0) marks stock that is not batch-tracked.
"""

from __future__ import annotations

from datetime import date, timedelta
from enum import Enum
from typing import Optional

from sqlalchemy import Date, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from inventory_engine.db.base import Base, TimestampMixin


class BatchStatus(str, Enum):
    ACTIVE = "active"
    DEPLETED = "depleted"
    EXPIRED = "expired"
    QUARANTINE = "quarantine"


class InventoryBatch(Base, TimestampMixin):
    """One production or receipt lot of a product."""

    __tablename__ = "inventory_batches"

    id: Mapped[int] = mapped_column(primary_key=True)
    batch_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id"), nullable=False, index=True)
    # Warehouse the lot was first received or produced in
    warehouse_id: Mapped[int] = mapped_column(ForeignKey("warehouses.id"), nullable=False)
    production_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    expiry_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True, index=True)
    status: Mapped[str] = mapped_column(String(20), default=BatchStatus.ACTIVE.value, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    def is_expired(self, on: Optional[date] = None) -> bool:
        return self.expiry_date is not None and self.expiry_date < (on or date.today())

    def expires_within(self, days: int, on: Optional[date] = None) -> bool:
        today = on or date.today()
        return (
            self.expiry_date is not None
            and today <= self.expiry_date <= today + timedelta(days=days)
        )
