"""Movement journal persistence and the paged movement stream."""

from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterator, List, Optional

from sqlalchemy import and_, func, or_, select
from sqlalchemy.orm import Session

from inventory_engine.models.stock import StockMovement
from inventory_engine.repositories.stock_repository import StockKey


class MovementStream:
    """Lazy, restartable view over matching movements, newest first.

    Rows are fetched ``page_size`` at a time with keyset pagination on
    (created_at, id). Each ``iter()`` starts again from the newest row;
    rows written while a pass is running are never revisited by it.
    """

    def __init__(self, db: Session, criteria: List, page_size: int):
        self.db = db
        self.criteria = list(criteria)
        self.page_size = page_size

    def _page(self, after: Optional[StockMovement]) -> List[StockMovement]:
        stmt = select(StockMovement).where(*self.criteria)
        if after is not None:
            stmt = stmt.where(
                or_(
                    StockMovement.created_at < after.created_at,
                    and_(
                        StockMovement.created_at == after.created_at,
                        StockMovement.id < after.id,
                    ),
                )
            )
        stmt = stmt.order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        return list(self.db.scalars(stmt.limit(self.page_size)).all())

    def __iter__(self) -> Iterator[StockMovement]:
        last = None
        while True:
            page = self._page(last)
            yield from page
            if len(page) < self.page_size:
                return
            last = page[-1]

    def first(self) -> Optional[StockMovement]:
        return next(iter(self), None)

    def count(self) -> int:
        stmt = select(func.count(StockMovement.id)).where(*self.criteria)
        return self.db.execute(stmt).scalar_one()


class MovementRepository:
    def __init__(self, db: Session):
        self.db = db

    def add(self, movement: StockMovement) -> StockMovement:
        self.db.add(movement)
        self.db.flush()
        return movement

    def stream(
        self,
        page_size: int,
        product_id: Optional[int] = None,
        warehouse_id: Optional[int] = None,
        batch_id: Optional[int] = None,
        movement_type: Optional[str] = None,
        reference_type: Optional[str] = None,
        reference_id: Optional[int] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> MovementStream:
        criteria = []
        if product_id is not None:
            criteria.append(StockMovement.product_id == product_id)
        if warehouse_id is not None:
            criteria.append(StockMovement.warehouse_id == warehouse_id)
        if batch_id is not None:
            criteria.append(StockMovement.batch_id == batch_id)
        if movement_type is not None:
            criteria.append(StockMovement.movement_type == movement_type)
        if reference_type is not None:
            criteria.append(StockMovement.reference_type == reference_type)
        if reference_id is not None:
            criteria.append(StockMovement.reference_id == reference_id)
        if start is not None:
            criteria.append(StockMovement.created_at >= start)
        if end is not None:
            criteria.append(StockMovement.created_at <= end)
        return MovementStream(self.db, criteria, page_size)

    def sums_by_key(self, product_id: Optional[int] = None) -> Dict[StockKey, Decimal]:
        """Sum of ``quantity_delta`` per stock key, i.e. the replayed level."""
        query = self.db.query(
            StockMovement.product_id,
            StockMovement.warehouse_id,
            StockMovement.batch_id,
            func.sum(StockMovement.quantity_delta),
        ).group_by(
            StockMovement.product_id, StockMovement.warehouse_id, StockMovement.batch_id
        )
        if product_id is not None:
            query = query.filter(StockMovement.product_id == product_id)
        return {
            (pid, wid, bid): Decimal(str(total)) for pid, wid, bid, total in query.all()
        }
