"""Stock level persistence: keyed lookups, row locks and conditional updates.

Every write to ``stock_levels.quantity`` or ``reserved_quantity`` goes
through a single conditional UPDATE whose WHERE clause carries the
invariant, so two writers can never both pass a check that only one of
them should. The caller learns the outcome from the RETURNING row: no row
means the guard refused the change.
"""

import logging
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from inventory_engine.models.product import Product
from inventory_engine.models.stock import StockLevel

logger = logging.getLogger(__name__)

StockKey = Tuple[int, int, int]


def sorted_keys(keys: Iterable[StockKey]) -> List[StockKey]:
    """Deduplicate and order keys by (product_id, warehouse_id, batch_id)."""
    return sorted(set(keys))


class StockLevelRepository:
    def __init__(self, db: Session):
        self.db = db

    def _key_filter(self, product_id: int, warehouse_id: int, batch_id: int):
        return (
            StockLevel.product_id == product_id,
            StockLevel.warehouse_id == warehouse_id,
            StockLevel.batch_id == batch_id,
        )

    def get(self, product_id: int, warehouse_id: int, batch_id: int) -> Optional[StockLevel]:
        stmt = (
            select(StockLevel)
            .where(*self._key_filter(product_id, warehouse_id, batch_id))
            .execution_options(populate_existing=True)
        )
        return self.db.scalars(stmt).first()

    def lock(self, keys: Iterable[StockKey]) -> List[StockLevel]:
        """SELECT ... FOR UPDATE every existing row for *keys*, in key order.

        Keys without a row are skipped; their first writer creates them.
        Dialects without row locks (SQLite) drop the FOR UPDATE clause.
        """
        locked = []
        for product_id, warehouse_id, batch_id in sorted_keys(keys):
            stmt = (
                select(StockLevel)
                .where(*self._key_filter(product_id, warehouse_id, batch_id))
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            level = self.db.scalars(stmt).first()
            if level is not None:
                locked.append(level)
        return locked

    def ensure_row(self, product_id: int, warehouse_id: int, batch_id: int) -> None:
        """Create a zero row for the key unless one already exists."""
        values = dict(
            product_id=product_id,
            warehouse_id=warehouse_id,
            batch_id=batch_id,
            quantity=Decimal("0"),
            reserved_quantity=Decimal("0"),
        )
        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        elif dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert
        else:
            if self.get(product_id, warehouse_id, batch_id) is None:
                self.db.add(StockLevel(**values))
                self.db.flush()
            return

        stmt = insert(StockLevel).values(**values).on_conflict_do_nothing(
            index_elements=["product_id", "warehouse_id", "batch_id"]
        )
        self.db.execute(stmt)

    def add_quantity(
        self, product_id: int, warehouse_id: int, batch_id: int, delta: Decimal
    ) -> Optional[Decimal]:
        """Atomically add *delta* unless on-hand would drop below reserved.

        Returns the new quantity, or None when the row is missing or the
        guard refused the change.
        """
        stmt = (
            update(StockLevel)
            .where(
                *self._key_filter(product_id, warehouse_id, batch_id),
                StockLevel.quantity + delta >= StockLevel.reserved_quantity,
            )
            .values(quantity=StockLevel.quantity + delta)
            .returning(StockLevel.quantity)
            .execution_options(synchronize_session="fetch")
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def add_reserved(
        self, product_id: int, warehouse_id: int, batch_id: int, delta: Decimal
    ) -> Optional[Decimal]:
        """Atomically move ``reserved_quantity`` by *delta* within [0, quantity]."""
        new_reserved = StockLevel.reserved_quantity + delta
        stmt = (
            update(StockLevel)
            .where(
                *self._key_filter(product_id, warehouse_id, batch_id),
                new_reserved >= 0,
                new_reserved <= StockLevel.quantity,
            )
            .values(reserved_quantity=new_reserved)
            .returning(StockLevel.reserved_quantity)
            .execution_options(synchronize_session="fetch")
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def available(self, product_id: int, warehouse_id: int, batch_id: Optional[int]) -> Decimal:
        """On-hand minus reserved; ``batch_id=None`` sums every batch."""
        stmt = select(
            func.coalesce(func.sum(StockLevel.quantity - StockLevel.reserved_quantity), 0)
        ).where(
            StockLevel.product_id == product_id,
            StockLevel.warehouse_id == warehouse_id,
        )
        if batch_id is not None:
            stmt = stmt.where(StockLevel.batch_id == batch_id)
        return Decimal(str(self.db.execute(stmt).scalar_one()))

    def total_for_product(self, product_id: int) -> Decimal:
        stmt = select(func.coalesce(func.sum(StockLevel.quantity), 0)).where(
            StockLevel.product_id == product_id
        )
        return Decimal(str(self.db.execute(stmt).scalar_one()))

    def quantities_by_key(self, product_id: Optional[int] = None) -> Dict[StockKey, Decimal]:
        query = self.db.query(StockLevel)
        if product_id is not None:
            query = query.filter(StockLevel.product_id == product_id)
        return {
            (level.product_id, level.warehouse_id, level.batch_id): level.quantity
            for level in query.all()
        }

    def totals_with_thresholds(self, warehouse_id: Optional[int] = None):
        """Per (product, warehouse) on-hand totals joined with product thresholds."""
        query = (
            self.db.query(
                StockLevel.product_id,
                StockLevel.warehouse_id,
                func.sum(StockLevel.quantity).label("quantity"),
                Product.reorder_level,
                Product.critical_level,
            )
            .join(Product, Product.id == StockLevel.product_id)
            .filter(Product.track_inventory.is_(True), Product.active.is_(True))
            .group_by(
                StockLevel.product_id,
                StockLevel.warehouse_id,
                Product.reorder_level,
                Product.critical_level,
            )
            .order_by(StockLevel.product_id, StockLevel.warehouse_id)
        )
        if warehouse_id is not None:
            query = query.filter(StockLevel.warehouse_id == warehouse_id)
        return query.all()
