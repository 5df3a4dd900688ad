"""Read-only lookups into the product, warehouse, batch and formula catalog."""

from typing import Dict, Iterable, Optional

from sqlalchemy.orm import Session

from inventory_engine.core.exceptions import InvalidInputError, NotFoundError
from inventory_engine.models.batch import InventoryBatch
from inventory_engine.models.formula import Formula
from inventory_engine.models.product import Product, Warehouse


class CatalogRepository:
    """Product, warehouse, batch and formula lookups; misses raise NotFoundError."""

    def __init__(self, db: Session):
        self.db = db

    def get_product(self, product_id: int) -> Product:
        product = self.db.get(Product, product_id)
        if product is None:
            raise NotFoundError("Product", product_id)
        return product

    def get_products(self, product_ids: Iterable[int]) -> Dict[int, Product]:
        """Load several products at once; every id must exist."""
        wanted = set(product_ids)
        if not wanted:
            return {}
        found = {
            p.id: p
            for p in self.db.query(Product).filter(Product.id.in_(wanted)).all()
        }
        missing = sorted(wanted - found.keys())
        if missing:
            raise NotFoundError("Product", missing[0])
        return found

    def get_warehouse(self, warehouse_id: int) -> Warehouse:
        warehouse = self.db.get(Warehouse, warehouse_id)
        if warehouse is None:
            raise NotFoundError("Warehouse", warehouse_id)
        return warehouse

    def get_active_warehouse(self, warehouse_id: int) -> Warehouse:
        warehouse = self.get_warehouse(warehouse_id)
        if not warehouse.active:
            raise InvalidInputError(
                f"Warehouse {warehouse_id} is inactive", field="warehouse_id"
            )
        return warehouse

    def get_formula(self, formula_id: int) -> Formula:
        formula = self.db.get(Formula, formula_id)
        if formula is None:
            raise NotFoundError("Formula", formula_id)
        return formula

    def get_batch(self, batch_id: Optional[int], product_id: int) -> Optional[InventoryBatch]:
        """Resolve an optional batch id; it must exist and belong to the product."""
        if batch_id is None:
            return None
        batch = self.db.get(InventoryBatch, batch_id)
        if batch is None:
            raise NotFoundError("InventoryBatch", batch_id)
        if batch.product_id != product_id:
            raise InvalidInputError(
                f"Batch {batch.batch_number} belongs to product {batch.product_id}, not {product_id}",
                field="batch_id",
            )
        return batch
