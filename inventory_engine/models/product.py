"""Catalog models: Product and Warehouse.

The catalog is owned by the surrounding ERP; the engine only reads these
rows (unit of measure, track-inventory flag, thresholds, active flags).
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum

from sqlalchemy import Boolean, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from inventory_engine.db.base import Base, TimestampMixin


class InventoryType(str, Enum):
    """What a product is used for in manufacturing."""

    RAW_MATERIAL = "raw_material"
    FINISHED_GOOD = "finished_good"


class Product(Base, TimestampMixin):
    """Product in the catalog."""

    __tablename__ = "products"

    id: Mapped[int] = mapped_column(primary_key=True)
    sku: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    unit_of_measure: Mapped[str] = mapped_column(String(20), default="kg", nullable=False)  # kg, g, L, pcs
    inventory_type: Mapped[str] = mapped_column(
        String(20), default=InventoryType.RAW_MATERIAL.value, nullable=False
    )
    track_inventory: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    reorder_level: Mapped[Decimal] = mapped_column(Numeric(18, 4), default=0, nullable=False)
    critical_level: Mapped[Decimal] = mapped_column(Numeric(18, 4), default=0, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class Warehouse(Base, TimestampMixin):
    """Physical place holding stock."""

    __tablename__ = "warehouses"

    id: Mapped[int] = mapped_column(primary_key=True)
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
