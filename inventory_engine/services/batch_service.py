"""Batch registry: lots that batch-tracked stock is booked against.

A batch only names a lot (number, product, dates). Its stock is held in
``stock_levels`` under the batch id and moved through the ledger like any
other stock.
"""

import logging
from datetime import date
from typing import List, Optional

from sqlalchemy.orm import Session

from inventory_engine.core.exceptions import InvalidInputError
from inventory_engine.core.quantities import require_choice
from inventory_engine.db.unit_of_work import unit_of_work
from inventory_engine.models.batch import BatchStatus, InventoryBatch
from inventory_engine.repositories.batch_repository import BatchRepository
from inventory_engine.repositories.catalog_repository import CatalogRepository
from inventory_engine.repositories.numbering import next_document_number

logger = logging.getLogger(__name__)


class BatchService:
    def __init__(self, db: Session):
        self.db = db
        self.catalog = CatalogRepository(db)
        self.batches = BatchRepository(db)

    def create_batch(
        self,
        product_id: int,
        warehouse_id: int,
        actor_id: Optional[int],
        production_date: Optional[date] = None,
        expiry_date: Optional[date] = None,
        notes: Optional[str] = None,
    ) -> InventoryBatch:
        """
        Register a new lot with a ``BAT{YYYYMMDD}{seq}`` number

        Raises:
            NotFoundError: unknown product or warehouse
            InvalidInputError: inactive warehouse, or expiry before production
        """
        self.catalog.get_product(product_id)
        self.catalog.get_active_warehouse(warehouse_id)
        if production_date and expiry_date and expiry_date < production_date:
            raise InvalidInputError(
                "expiry_date cannot be before production_date", field="expiry_date"
            )

        with unit_of_work(self.db):
            batch = self.batches.add(
                InventoryBatch(
                    batch_number=next_document_number(
                        self.db, InventoryBatch.batch_number, "BAT"
                    ),
                    product_id=product_id,
                    warehouse_id=warehouse_id,
                    production_date=production_date,
                    expiry_date=expiry_date,
                    status=BatchStatus.ACTIVE.value,
                    notes=notes,
                    created_by=actor_id,
                )
            )

        logger.info(f"Created batch {batch.batch_number} for product {product_id}")
        return batch

    def get_batch(self, batch_id: int, product_id: int) -> InventoryBatch:
        return self.catalog.get_batch(batch_id, product_id)

    def list_batches(
        self,
        product_id: Optional[int] = None,
        warehouse_id: Optional[int] = None,
        status: Optional[str] = None,
    ) -> List[InventoryBatch]:
        if status is not None:
            status = require_choice(BatchStatus, status, "status").value
        return self.batches.list(product_id=product_id, warehouse_id=warehouse_id, status=status)

    def list_expiring(self, days: int = 30, today: Optional[date] = None) -> List[InventoryBatch]:
        """Active batches whose expiry falls within the next *days* days."""
        return self.batches.expiring(today or date.today(), days)
