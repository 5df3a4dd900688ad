from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from inventory_engine.models.stock import StockTransfer


class TransferRepository:
    def __init__(self, db: Session):
        self.db = db

    def add(self, transfer: StockTransfer) -> StockTransfer:
        self.db.add(transfer)
        self.db.flush()
        return transfer

    def get(self, transfer_id: int) -> Optional[StockTransfer]:
        return self.db.get(StockTransfer, transfer_id)

    def list(
        self,
        product_id: Optional[int] = None,
        warehouse_id: Optional[int] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[StockTransfer]:
        """Transfers touching *warehouse_id* on either side, newest first."""
        query = self.db.query(StockTransfer)
        if product_id is not None:
            query = query.filter(StockTransfer.product_id == product_id)
        if warehouse_id is not None:
            query = query.filter(
                or_(
                    StockTransfer.from_warehouse_id == warehouse_id,
                    StockTransfer.to_warehouse_id == warehouse_id,
                )
            )
        return query.order_by(StockTransfer.id.desc()).offset(skip).limit(limit).all()
