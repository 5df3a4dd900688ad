from datetime import date, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from inventory_engine.models.batch import BatchStatus, InventoryBatch


class BatchRepository:
    def __init__(self, db: Session):
        self.db = db

    def add(self, batch: InventoryBatch) -> InventoryBatch:
        self.db.add(batch)
        self.db.flush()
        return batch

    def list(
        self,
        product_id: Optional[int] = None,
        warehouse_id: Optional[int] = None,
        status: Optional[str] = None,
    ) -> List[InventoryBatch]:
        query = self.db.query(InventoryBatch)
        if product_id is not None:
            query = query.filter(InventoryBatch.product_id == product_id)
        if warehouse_id is not None:
            query = query.filter(InventoryBatch.warehouse_id == warehouse_id)
        if status is not None:
            query = query.filter(InventoryBatch.status == status)
        return query.order_by(InventoryBatch.id.desc()).all()

    def expiring(self, today: date, days: int) -> List[InventoryBatch]:
        """Active batches expiring between *today* and *today* + *days*."""
        return (
            self.db.query(InventoryBatch)
            .filter(
                InventoryBatch.status == BatchStatus.ACTIVE.value,
                InventoryBatch.expiry_date >= today,
                InventoryBatch.expiry_date <= today + timedelta(days=days),
            )
            .order_by(InventoryBatch.expiry_date, InventoryBatch.id)
            .all()
        )
