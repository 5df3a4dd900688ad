"""Stock Ledger - the only writer of stock levels and the movement journal.

Every quantity change goes through ``apply_delta``:

1. Conditional UPDATE of the stock level (``quantity + delta >= reserved``),
   returning the new quantity. No movement type may take stock negative.
2. A missing row is created at zero for increments, then the update is
   retried. A decrement against a missing row is a shortage.
3. A StockMovement row is inserted in the same transaction, carrying the
   resulting quantity and a reference to the document that caused it.

Multi-key workflows (transfers, production completion) call ``lock_keys``
first so rows are always locked in (product, warehouse, batch) order.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from inventory_engine.core.config import settings
from inventory_engine.core.exceptions import InsufficientStockError, InvalidInputError
from inventory_engine.core.quantities import (
    require_choice,
    require_non_zero,
    require_positive,
)
from inventory_engine.db.unit_of_work import unit_of_work
from inventory_engine.models.stock import (
    MovementType,
    ReferenceType,
    StockLevel,
    StockMovement,
    batch_key,
)
from inventory_engine.repositories.movement_repository import MovementRepository, MovementStream
from inventory_engine.repositories.stock_repository import StockKey, StockLevelRepository
from inventory_engine.schemas.stock import LedgerDiscrepancy, LedgerEntry, StockAlert

logger = logging.getLogger(__name__)


class StockLedgerService:
    """Atomic stock level mutations mirrored into the movement journal."""

    def __init__(self, db: Session, page_size: Optional[int] = None):
        self.db = db
        self.levels = StockLevelRepository(db)
        self.movements = MovementRepository(db)
        self.page_size = page_size or settings.movement_page_size

    # ===== MUTATIONS =====

    def apply_delta(
        self,
        product_id: int,
        warehouse_id: int,
        delta,
        movement_type,
        reference_type,
        reference_id: int,
        actor_id: Optional[int],
        batch_id: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> LedgerEntry:
        """
        Change one stock level by ``delta`` and journal the change.

        Args:
            delta: Signed, non-zero quantity with at most four decimal places
            movement_type: MovementType (or its value)
            reference_type/reference_id: Document that caused the change
            batch_id: None for stock that is not batch-tracked

        Returns:
            LedgerEntry with the resulting quantity and the new movement id

        Raises:
            InvalidInputError: zero delta, a delta finer than the stored
                scale, or unknown movement/reference type
            InsufficientStockError: the decrement would leave the level
                below zero (or below its reserved quantity)
        """
        delta = require_non_zero(delta, "delta")
        movement_type = require_choice(MovementType, movement_type, "movement_type")
        reference_type = require_choice(ReferenceType, reference_type, "reference_type")
        batch = batch_key(batch_id)

        with unit_of_work(self.db):
            new_quantity = self.levels.add_quantity(product_id, warehouse_id, batch, delta)
            if new_quantity is None and delta > 0:
                self.levels.ensure_row(product_id, warehouse_id, batch)
                new_quantity = self.levels.add_quantity(product_id, warehouse_id, batch, delta)

            if new_quantity is None:
                level = self.levels.get(product_id, warehouse_id, batch)
                available = level.available_quantity if level is not None else Decimal("0")
                logger.warning(
                    f"Refused {movement_type.value} of {delta} for product {product_id} "
                    f"in warehouse {warehouse_id}: available {available}"
                )
                raise InsufficientStockError(
                    product_id, warehouse_id, -delta, available, batch_id=batch_id
                )

            movement = self.movements.add(
                StockMovement(
                    created_at=datetime.now(timezone.utc),
                    product_id=product_id,
                    warehouse_id=warehouse_id,
                    batch_id=batch,
                    movement_type=movement_type.value,
                    quantity_delta=delta,
                    resulting_quantity=new_quantity,
                    reference_type=reference_type.value,
                    reference_id=reference_id,
                    notes=notes,
                    created_by=actor_id,
                )
            )

        logger.debug(
            f"Movement {movement.id}: {movement_type.value} {delta} product {product_id} "
            f"warehouse {warehouse_id} batch {batch} -> {new_quantity}"
        )
        return LedgerEntry(new_quantity=new_quantity, movement_id=movement.id)

    def lock_keys(self, keys: Iterable[StockKey]) -> List[StockLevel]:
        """Lock the stock rows for *keys* in deterministic order.

        Keys may carry ``None`` as batch id; it is normalised first.
        """
        normalized = [(p, w, batch_key(b)) for p, w, b in keys]
        return self.levels.lock(normalized)

    def reserve(
        self,
        product_id: int,
        warehouse_id: int,
        quantity,
        batch_id: Optional[int] = None,
    ) -> Decimal:
        """Earmark stock; on-hand does not change so no movement is written."""
        quantity = require_positive(quantity, "quantity")
        batch = batch_key(batch_id)
        with unit_of_work(self.db):
            reserved = self.levels.add_reserved(product_id, warehouse_id, batch, quantity)
            if reserved is None:
                available = self.levels.available(product_id, warehouse_id, batch)
                logger.warning(
                    f"Cannot reserve {quantity} of product {product_id} "
                    f"in warehouse {warehouse_id}: available {available}"
                )
                raise InsufficientStockError(
                    product_id, warehouse_id, quantity, available, batch_id=batch_id
                )
        logger.info(f"Reserved {quantity} of product {product_id} in warehouse {warehouse_id}")
        return reserved

    def release(
        self,
        product_id: int,
        warehouse_id: int,
        quantity,
        batch_id: Optional[int] = None,
    ) -> Decimal:
        """Release a reservation; releasing more than is reserved is an input error."""
        quantity = require_positive(quantity, "quantity")
        batch = batch_key(batch_id)
        with unit_of_work(self.db):
            reserved = self.levels.add_reserved(product_id, warehouse_id, batch, -quantity)
            if reserved is None:
                level = self.levels.get(product_id, warehouse_id, batch)
                held = level.reserved_quantity if level is not None else Decimal("0")
                raise InvalidInputError(
                    f"Cannot release {quantity}: only {held} reserved for product "
                    f"{product_id} in warehouse {warehouse_id}",
                    field="quantity",
                )
        logger.info(f"Released {quantity} of product {product_id} in warehouse {warehouse_id}")
        return reserved

    # ===== QUERIES =====

    def get_available(
        self, product_id: int, warehouse_id: int, batch_id: Optional[int] = None
    ) -> Decimal:
        """Quantity minus reserved; with no ``batch_id`` every batch is summed."""
        return self.levels.available(product_id, warehouse_id, batch_id)

    def get_stock_level(
        self, product_id: int, warehouse_id: int, batch_id: Optional[int] = None
    ) -> Optional[StockLevel]:
        return self.levels.get(product_id, warehouse_id, batch_key(batch_id))

    def get_total_stock(self, product_id: int) -> Decimal:
        """On-hand across all warehouses and batches."""
        return self.levels.total_for_product(product_id)

    def list_movements(
        self,
        product_id: int,
        warehouse_id: Optional[int] = None,
        movement_type=None,
        batch_id: Optional[int] = None,
        reference_type=None,
        reference_id: Optional[int] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> MovementStream:
        if movement_type is not None:
            movement_type = require_choice(MovementType, movement_type, "movement_type").value
        if reference_type is not None:
            reference_type = require_choice(ReferenceType, reference_type, "reference_type").value
        return self.movements.stream(
            self.page_size,
            product_id=product_id,
            warehouse_id=warehouse_id,
            batch_id=batch_id,
            movement_type=movement_type,
            reference_type=reference_type,
            reference_id=reference_id,
            start=start,
            end=end,
        )

    def list_low_stock(self, warehouse_id: Optional[int] = None) -> List[StockAlert]:
        """At or below reorder level but still above critical level."""
        return [
            alert
            for alert in self._alerts(warehouse_id)
            if alert.reorder_level > 0
            and alert.quantity <= alert.reorder_level
            and not self._is_critical(alert)
        ]

    def list_critical_stock(self, warehouse_id: Optional[int] = None) -> List[StockAlert]:
        return [alert for alert in self._alerts(warehouse_id) if self._is_critical(alert)]

    @staticmethod
    def _is_critical(alert: StockAlert) -> bool:
        return alert.critical_level > 0 and alert.quantity <= alert.critical_level

    def _alerts(self, warehouse_id: Optional[int]) -> List[StockAlert]:
        return [
            StockAlert(
                product_id=row.product_id,
                warehouse_id=row.warehouse_id,
                quantity=Decimal(str(row.quantity)),
                reorder_level=row.reorder_level,
                critical_level=row.critical_level,
            )
            for row in self.levels.totals_with_thresholds(warehouse_id)
        ]

    def reconcile(self, product_id: Optional[int] = None) -> List[LedgerDiscrepancy]:
        """Stock keys whose level differs from the replay of their movements."""
        levels = self.levels.quantities_by_key(product_id)
        journal = self.movements.sums_by_key(product_id)
        discrepancies = []
        for key in sorted(levels.keys() | journal.keys()):
            quantity = levels.get(key, Decimal("0"))
            replayed = journal.get(key, Decimal("0"))
            if quantity != replayed:
                product, warehouse, batch = key
                discrepancies.append(
                    LedgerDiscrepancy(
                        product_id=product,
                        warehouse_id=warehouse,
                        batch_id=batch,
                        quantity=quantity,
                        journal_quantity=replayed,
                    )
                )
        if discrepancies:
            logger.warning(f"Ledger reconciliation found {len(discrepancies)} discrepancies")
        return discrepancies
