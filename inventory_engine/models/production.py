"""Production run models: runs, their material lines and recorded losses."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import Date, DateTime, ForeignKey, Integer, Numeric, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from inventory_engine.db.base import Base, TimestampMixin
from inventory_engine.models.validators import non_negative, positive


class ProductionStatus(str, Enum):
    PLANNED = "planned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({ProductionStatus.COMPLETED.value, ProductionStatus.CANCELLED.value})


class LossType(str, Enum):
    SPILLAGE = "spillage"
    DAMAGE = "damage"
    QUALITY_REJECT = "quality_reject"
    OTHER = "other"


class ProductionRun(Base, TimestampMixin):
    """One manufacturing batch, planned from a formula and a target output."""

    __tablename__ = "production_runs"

    id: Mapped[int] = mapped_column(primary_key=True)
    production_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    formula_id: Mapped[int] = mapped_column(
        ForeignKey("formulas.id"), nullable=False, index=True
    )
    finished_product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id"), nullable=False, index=True
    )
    warehouse_id: Mapped[int] = mapped_column(
        ForeignKey("warehouses.id"), nullable=False, index=True
    )
    production_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    batch_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), default=ProductionStatus.PLANNED.value, nullable=False, index=True
    )

    target_quantity: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False)
    actual_output: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 4), nullable=True)
    wastage_quantity: Mapped[Decimal] = mapped_column(
        Numeric(18, 4), default=0, server_default="0", nullable=False
    )
    wastage_percentage: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 6), nullable=True)

    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    duration_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    started_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    completed_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    cancelled_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    items: Mapped[list["ProductionRunItem"]] = relationship(
        "ProductionRunItem",
        back_populates="run",
        cascade="all, delete-orphan",
        order_by="ProductionRunItem.id",
        lazy="selectin",
    )
    losses: Mapped[list["ProductionLoss"]] = relationship(
        "ProductionLoss",
        back_populates="run",
        cascade="all, delete-orphan",
        order_by="ProductionLoss.id",
        lazy="selectin",
    )

    @validates("target_quantity")
    def _validate_target(self, key, value):
        return positive(key, value)

    @validates("actual_output", "wastage_quantity")
    def _validate_outputs(self, key, value):
        return non_negative(key, value)

    @property
    def efficiency_percentage(self) -> Optional[Decimal]:
        """Actual output as a percentage of target; None until completed."""
        if self.actual_output is None or not self.target_quantity:
            return None
        return self.actual_output / self.target_quantity * 100

    def item_for(self, product_id: int) -> Optional["ProductionRunItem"]:
        for item in self.items:
            if item.product_id == product_id:
                return item
        return None


class ProductionRunItem(Base):
    """Planned vs. actual consumption of one input material."""

    __tablename__ = "production_run_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    production_run_id: Mapped[int] = mapped_column(
        ForeignKey("production_runs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id"), nullable=False, index=True
    )
    percentage: Mapped[Decimal] = mapped_column(Numeric(9, 4), nullable=False)
    # Full resolver precision; rounding happens only for display
    planned_quantity: Mapped[Decimal] = mapped_column(Numeric(24, 10), nullable=False)
    actual_quantity: Mapped[Decimal] = mapped_column(Numeric(18, 4), default=0, nullable=False)
    variance: Mapped[Decimal] = mapped_column(Numeric(18, 4), default=0, nullable=False)
    unit_of_measure: Mapped[str] = mapped_column(String(20), default="kg", nullable=False)

    run: Mapped["ProductionRun"] = relationship("ProductionRun", back_populates="items")

    @validates("planned_quantity", "actual_quantity")
    def _validate_quantities(self, key, value):
        return non_negative(key, value)


class ProductionLoss(Base):
    """Material lost during a run; posted to the ledger when the run completes."""

    __tablename__ = "production_losses"

    id: Mapped[int] = mapped_column(primary_key=True)
    production_run_id: Mapped[int] = mapped_column(
        ForeignKey("production_runs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id"), nullable=False, index=True
    )
    quantity: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False)
    loss_type: Mapped[str] = mapped_column(String(30), nullable=False)
    reason: Mapped[str] = mapped_column(String(500), nullable=False)
    recorded_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    run: Mapped["ProductionRun"] = relationship("ProductionRun", back_populates="losses")

    @validates("quantity")
    def _validate_quantity(self, key, value):
        return positive(key, value)
