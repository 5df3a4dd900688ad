"""Formula (percentage bill of materials) models."""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from inventory_engine.db.base import Base, TimestampMixin
from inventory_engine.models.validators import non_negative


class Formula(Base, TimestampMixin):
    """Recipe producing ``product_id``; items are percentages of the output quantity."""

    __tablename__ = "formulas"

    id: Mapped[int] = mapped_column(primary_key=True)
    formula_code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id"), nullable=False, index=True
    )
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    items: Mapped[list["FormulaItem"]] = relationship(
        "FormulaItem",
        back_populates="formula",
        cascade="all, delete-orphan",
        order_by="FormulaItem.sequence",
        lazy="selectin",
    )


class FormulaItem(Base):
    """One input material of a formula."""

    __tablename__ = "formula_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    formula_id: Mapped[int] = mapped_column(
        ForeignKey("formulas.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id"), nullable=False, index=True
    )
    percentage: Mapped[Decimal] = mapped_column(Numeric(9, 4), nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    formula: Mapped["Formula"] = relationship("Formula", back_populates="items")

    @validates("percentage")
    def _validate_percentage(self, key, value):
        return non_negative(key, value)
