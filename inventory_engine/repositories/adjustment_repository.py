from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from inventory_engine.models.adjustment import AdjustmentStatus, InventoryAdjustment


class AdjustmentRepository:
    def __init__(self, db: Session):
        self.db = db

    def add(self, adjustment: InventoryAdjustment) -> InventoryAdjustment:
        self.db.add(adjustment)
        self.db.flush()
        return adjustment

    def get(self, adjustment_id: int) -> Optional[InventoryAdjustment]:
        return self.db.get(InventoryAdjustment, adjustment_id)

    def lock(self, adjustment_id: int) -> Optional[InventoryAdjustment]:
        """Re-read the row from the database, FOR UPDATE where supported."""
        stmt = (
            select(InventoryAdjustment)
            .where(InventoryAdjustment.id == adjustment_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self.db.scalars(stmt).one_or_none()

    def transition(self, adjustment_id: int, expected: Iterable[str], status: str) -> bool:
        """Move to *status* only if the stored status is one of *expected*."""
        stmt = (
            update(InventoryAdjustment)
            .where(
                InventoryAdjustment.id == adjustment_id,
                InventoryAdjustment.status.in_(list(expected)),
            )
            .values(status=status)
            .returning(InventoryAdjustment.id)
            .execution_options(synchronize_session="fetch")
        )
        return self.db.execute(stmt).scalar_one_or_none() is not None

    def list(
        self,
        status: Optional[str] = None,
        product_id: Optional[int] = None,
        warehouse_id: Optional[int] = None,
        adjustment_type: Optional[str] = None,
        created_by: Optional[int] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[InventoryAdjustment]:
        query = self.db.query(InventoryAdjustment)
        if status is not None:
            query = query.filter(InventoryAdjustment.status == status)
        if product_id is not None:
            query = query.filter(InventoryAdjustment.product_id == product_id)
        if warehouse_id is not None:
            query = query.filter(InventoryAdjustment.warehouse_id == warehouse_id)
        if adjustment_type is not None:
            query = query.filter(InventoryAdjustment.adjustment_type == adjustment_type)
        if created_by is not None:
            query = query.filter(InventoryAdjustment.created_by == created_by)
        if start is not None:
            query = query.filter(InventoryAdjustment.created_at >= start)
        if end is not None:
            query = query.filter(InventoryAdjustment.created_at <= end)
        return (
            query.order_by(InventoryAdjustment.id.desc()).offset(skip).limit(limit).all()
        )

    def pending(self, warehouse_id: Optional[int] = None) -> List[InventoryAdjustment]:
        query = self.db.query(InventoryAdjustment).filter(
            InventoryAdjustment.status == AdjustmentStatus.PENDING.value
        )
        if warehouse_id is not None:
            query = query.filter(InventoryAdjustment.warehouse_id == warehouse_id)
        return query.order_by(InventoryAdjustment.id).all()
