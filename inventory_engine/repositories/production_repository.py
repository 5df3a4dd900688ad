from datetime import date
from typing import Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from inventory_engine.models.production import ProductionLoss, ProductionRun


class ProductionRunRepository:
    def __init__(self, db: Session):
        self.db = db

    def add(self, run: ProductionRun) -> ProductionRun:
        self.db.add(run)
        self.db.flush()
        return run

    def get(self, run_id: int) -> Optional[ProductionRun]:
        return self.db.get(ProductionRun, run_id)

    def lock(self, run_id: int) -> Optional[ProductionRun]:
        """Re-read the run from the database, FOR UPDATE where supported."""
        stmt = (
            select(ProductionRun)
            .where(ProductionRun.id == run_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self.db.scalars(stmt).one_or_none()

    def transition(self, run_id: int, expected: Iterable[str], status: str) -> bool:
        """Move to *status* only if the stored status is one of *expected*.

        Two writers that both read the run in an older status cannot both
        win: the second UPDATE matches no row.
        """
        stmt = (
            update(ProductionRun)
            .where(ProductionRun.id == run_id, ProductionRun.status.in_(list(expected)))
            .values(status=status)
            .returning(ProductionRun.id)
            .execution_options(synchronize_session="fetch")
        )
        return self.db.execute(stmt).scalar_one_or_none() is not None

    def delete(self, run: ProductionRun) -> None:
        self.db.delete(run)
        self.db.flush()

    def add_loss(self, loss: ProductionLoss) -> ProductionLoss:
        self.db.add(loss)
        self.db.flush()
        return loss

    def list(
        self,
        status: Optional[str] = None,
        warehouse_id: Optional[int] = None,
        product_id: Optional[int] = None,
        formula_id: Optional[int] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[ProductionRun]:
        query = self._filtered(status, warehouse_id, product_id, formula_id, start, end)
        return (
            query.order_by(ProductionRun.production_date.desc(), ProductionRun.id.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    def in_period(self, start: Optional[date] = None, end: Optional[date] = None) -> List[ProductionRun]:
        return self._filtered(start=start, end=end).all()

    def _filtered(
        self,
        status: Optional[str] = None,
        warehouse_id: Optional[int] = None,
        product_id: Optional[int] = None,
        formula_id: Optional[int] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ):
        query = self.db.query(ProductionRun)
        if status is not None:
            query = query.filter(ProductionRun.status == status)
        if warehouse_id is not None:
            query = query.filter(ProductionRun.warehouse_id == warehouse_id)
        if product_id is not None:
            query = query.filter(ProductionRun.finished_product_id == product_id)
        if formula_id is not None:
            query = query.filter(ProductionRun.formula_id == formula_id)
        if start is not None:
            query = query.filter(ProductionRun.production_date >= start)
        if end is not None:
            query = query.filter(ProductionRun.production_date <= end)
        return query
