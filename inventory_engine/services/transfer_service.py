"""Transfer Engine - moves stock between two warehouses as one unit.

Both legs (``transfer_out`` at the source, ``transfer_in`` at the
destination) and the StockTransfer row they reference are written in one
transaction; a failure on either leg leaves no trace of the other.
"""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from inventory_engine.core.exceptions import InvalidInputError, NotFoundError
from inventory_engine.core.quantities import require_positive
from inventory_engine.db.unit_of_work import unit_of_work
from inventory_engine.models.stock import MovementType, ReferenceType, StockTransfer, batch_key
from inventory_engine.repositories.catalog_repository import CatalogRepository
from inventory_engine.repositories.numbering import next_document_number
from inventory_engine.repositories.transfer_repository import TransferRepository
from inventory_engine.schemas.stock import StockTransferResponse, TransferResult
from inventory_engine.services.stock_ledger_service import StockLedgerService

logger = logging.getLogger(__name__)


class TransferService:
    """Warehouse-to-warehouse stock transfers."""

    def __init__(self, db: Session, ledger: Optional[StockLedgerService] = None):
        self.db = db
        self.catalog = CatalogRepository(db)
        self.transfers = TransferRepository(db)
        self.ledger = ledger or StockLedgerService(db)

    def transfer(
        self,
        product_id: int,
        from_warehouse_id: int,
        to_warehouse_id: int,
        quantity,
        reason: Optional[str],
        actor_id: Optional[int],
        batch_id: Optional[int] = None,
    ) -> TransferResult:
        """
        Move ``quantity`` of a product from one warehouse to another.

        Raises:
            InvalidInputError: same warehouse on both sides, non-positive
                quantity or an inactive warehouse
            NotFoundError: unknown product, warehouse or batch
            InsufficientStockError: the source cannot cover the quantity
        """
        if from_warehouse_id == to_warehouse_id:
            raise InvalidInputError(
                "Source and destination warehouse must differ", field="to_warehouse_id"
            )
        quantity = require_positive(quantity, "quantity")
        product = self.catalog.get_product(product_id)
        self.catalog.get_active_warehouse(from_warehouse_id)
        self.catalog.get_active_warehouse(to_warehouse_id)
        self.catalog.get_batch(batch_id, product_id)

        batch = batch_key(batch_id)
        with unit_of_work(self.db):
            transfer = self.transfers.add(
                StockTransfer(
                    transfer_number=next_document_number(
                        self.db, StockTransfer.transfer_number, "TRF"
                    ),
                    product_id=product_id,
                    from_warehouse_id=from_warehouse_id,
                    to_warehouse_id=to_warehouse_id,
                    batch_id=batch,
                    quantity=quantity,
                    reason=reason,
                    created_by=actor_id,
                )
            )
            self.ledger.lock_keys(
                [(product_id, from_warehouse_id, batch), (product_id, to_warehouse_id, batch)]
            )
            out_entry = self.ledger.apply_delta(
                product_id,
                from_warehouse_id,
                -quantity,
                MovementType.TRANSFER_OUT,
                ReferenceType.TRANSFER,
                transfer.id,
                actor_id,
                batch_id=batch_id,
                notes=reason,
            )
            in_entry = self.ledger.apply_delta(
                product_id,
                to_warehouse_id,
                quantity,
                MovementType.TRANSFER_IN,
                ReferenceType.TRANSFER,
                transfer.id,
                actor_id,
                batch_id=batch_id,
                notes=reason,
            )

        logger.info(
            f"Transfer {transfer.transfer_number}: {quantity} {product.unit_of_measure} of "
            f"product {product_id} from warehouse {from_warehouse_id} to {to_warehouse_id}"
        )
        return TransferResult(
            transfer=StockTransferResponse.model_validate(transfer),
            out_movement_id=out_entry.movement_id,
            in_movement_id=in_entry.movement_id,
            source_quantity=out_entry.new_quantity,
            destination_quantity=in_entry.new_quantity,
        )

    def get_transfer(self, transfer_id: int) -> StockTransfer:
        transfer = self.transfers.get(transfer_id)
        if transfer is None:
            raise NotFoundError("StockTransfer", transfer_id)
        return transfer

    def list_transfers(
        self,
        product_id: Optional[int] = None,
        warehouse_id: Optional[int] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[StockTransfer]:
        return self.transfers.list(
            product_id=product_id, warehouse_id=warehouse_id, skip=skip, limit=limit
        )
