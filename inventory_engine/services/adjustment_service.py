"""Adjustment Workflow - manual stock corrections under dual control.

Status flow::

    pending --approve--> approved --(ledger apply)--> applied
    pending --reject---> rejected

Small adjustments (below the approval threshold, or with approval turned
off in the ``approvals`` settings group) are applied as soon as they are
created. The ledger effect happens exactly once, when the status becomes
``applied``; applied and rejected adjustments never change again.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.orm import Session

from inventory_engine.core.exceptions import (
    InsufficientStockError,
    InvalidStateError,
    NotFoundError,
    RoleSeparationError,
)
from inventory_engine.core.quantities import require_choice, require_non_zero, require_text
from inventory_engine.db.unit_of_work import unit_of_work
from inventory_engine.models.adjustment import (
    AdjustmentStatus,
    AdjustmentType,
    InventoryAdjustment,
)
from inventory_engine.models.stock import MovementType, ReferenceType, batch_key
from inventory_engine.repositories.adjustment_repository import AdjustmentRepository
from inventory_engine.repositories.catalog_repository import CatalogRepository
from inventory_engine.repositories.numbering import next_document_number
from inventory_engine.services.settings_service import (
    ApprovalPolicy,
    DatabaseSettingsProvider,
    SettingsProvider,
    load_approval_policy,
)
from inventory_engine.services.stock_ledger_service import StockLedgerService

logger = logging.getLogger(__name__)


class AdjustmentService:
    """Create, approve and reject inventory adjustments."""

    def __init__(
        self,
        db: Session,
        settings_provider: Optional[SettingsProvider] = None,
        ledger: Optional[StockLedgerService] = None,
    ):
        self.db = db
        self.catalog = CatalogRepository(db)
        self.adjustments = AdjustmentRepository(db)
        self.ledger = ledger or StockLedgerService(db)
        self.settings_provider = settings_provider or DatabaseSettingsProvider(db)

    @property
    def policy(self) -> ApprovalPolicy:
        return load_approval_policy(self.settings_provider)

    def create_adjustment(
        self,
        product_id: int,
        warehouse_id: int,
        adjustment_type,
        quantity_change,
        reason: str,
        actor_id: int,
        batch_id: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> InventoryAdjustment:
        """
        Record a stock correction.

        The adjustment is applied immediately unless the approval policy
        requires a second person, in which case it stays ``pending``.

        Raises:
            InvalidInputError: unknown type, blank reason, zero change or an
                inactive warehouse
            NotFoundError: unknown product, warehouse or batch
            InsufficientStockError: a decrease larger than what is available
        """
        adjustment_type = require_choice(AdjustmentType, adjustment_type, "adjustment_type")
        quantity_change = require_non_zero(quantity_change, "quantity_change")
        reason = require_text(reason, "reason")
        self.catalog.get_product(product_id)
        self.catalog.get_active_warehouse(warehouse_id)
        self.catalog.get_batch(batch_id, product_id)

        batch = batch_key(batch_id)
        if quantity_change < 0:
            available = self.ledger.get_available(product_id, warehouse_id, batch)
            if available + quantity_change < 0:
                logger.warning(
                    f"Adjustment of {quantity_change} refused for product {product_id} "
                    f"in warehouse {warehouse_id}: available {available}"
                )
                raise InsufficientStockError(
                    product_id, warehouse_id, -quantity_change, available, batch_id=batch_id
                )

        needs_approval = self.policy.needs_approval(quantity_change)
        with unit_of_work(self.db):
            adjustment = self.adjustments.add(
                InventoryAdjustment(
                    adjustment_number=next_document_number(
                        self.db, InventoryAdjustment.adjustment_number, "ADJ"
                    ),
                    product_id=product_id,
                    warehouse_id=warehouse_id,
                    batch_id=batch,
                    adjustment_type=adjustment_type.value,
                    quantity_change=quantity_change,
                    reason=reason,
                    notes=notes,
                    status=AdjustmentStatus.PENDING.value,
                    created_by=actor_id,
                )
            )
            if not needs_approval:
                self._apply(adjustment, actor_id)

        if needs_approval:
            logger.info(
                f"Adjustment {adjustment.adjustment_number} ({quantity_change}) awaits approval"
            )
        return adjustment

    def approve(
        self, adjustment_id: int, approver_id: int, notes: Optional[str] = None
    ) -> InventoryAdjustment:
        """
        Approve a pending adjustment and apply it to the ledger.

        The row is re-read inside the transaction and the pending -> approved
        flip is a conditional UPDATE, so a stale copy or a concurrent
        approver can never apply the same adjustment twice.

        Raises:
            InvalidStateError: the adjustment is not pending
            RoleSeparationError: the approver created the adjustment
            InsufficientStockError: stock moved since creation and the
                decrease no longer fits; the adjustment stays pending
        """
        with unit_of_work(self.db):
            adjustment = self._lock_pending(adjustment_id, "approve")
            if self.policy.creator_cannot_approve and approver_id == adjustment.created_by:
                logger.warning(
                    f"User {approver_id} tried to approve own adjustment {adjustment.adjustment_number}"
                )
                raise RoleSeparationError(
                    f"Adjustment {adjustment.adjustment_number} cannot be approved by its creator",
                    actor_id=approver_id,
                )

            self._claim(adjustment, AdjustmentStatus.APPROVED, "approve")
            adjustment.approved_by = approver_id
            adjustment.approved_at = datetime.now(timezone.utc)
            adjustment.approval_notes = notes
            self.db.flush()
            self._apply(adjustment, approver_id)

        return adjustment

    def reject(self, adjustment_id: int, approver_id: int, notes: str) -> InventoryAdjustment:
        """Reject a pending adjustment; it never touches the ledger."""
        notes = require_text(notes, "notes")

        with unit_of_work(self.db):
            adjustment = self._lock_pending(adjustment_id, "reject")
            self._claim(adjustment, AdjustmentStatus.REJECTED, "reject")
            adjustment.approved_by = approver_id
            adjustment.approved_at = datetime.now(timezone.utc)
            adjustment.approval_notes = notes

        logger.info(f"Adjustment {adjustment.adjustment_number} rejected by user {approver_id}")
        return adjustment

    def _lock_pending(self, adjustment_id: int, attempted: str) -> InventoryAdjustment:
        adjustment = self.adjustments.lock(adjustment_id)
        if adjustment is None:
            raise NotFoundError("InventoryAdjustment", adjustment_id)
        self._require_pending(adjustment, attempted)
        return adjustment

    def _claim(
        self, adjustment: InventoryAdjustment, status: AdjustmentStatus, attempted: str
    ) -> None:
        if not self.adjustments.transition(
            adjustment.id, [AdjustmentStatus.PENDING.value], status.value
        ):
            # Another writer got there first
            self.db.refresh(adjustment)
            raise InvalidStateError("InventoryAdjustment", adjustment.id, adjustment.status, attempted)

    def _require_pending(self, adjustment: InventoryAdjustment, attempted: str) -> None:
        if adjustment.status != AdjustmentStatus.PENDING.value:
            logger.warning(
                f"Cannot {attempted} adjustment {adjustment.adjustment_number} "
                f"in status {adjustment.status}"
            )
            raise InvalidStateError(
                "InventoryAdjustment", adjustment.id, adjustment.status, attempted
            )

    def _apply(self, adjustment: InventoryAdjustment, actor_id: int) -> None:
        entry = self.ledger.apply_delta(
            adjustment.product_id,
            adjustment.warehouse_id,
            adjustment.quantity_change,
            MovementType.ADJUSTMENT,
            ReferenceType.ADJUSTMENT,
            adjustment.id,
            actor_id,
            batch_id=adjustment.batch_id,
            notes=f"{adjustment.adjustment_type}: {adjustment.reason}",
        )
        adjustment.quantity_after = entry.new_quantity
        adjustment.quantity_before = entry.new_quantity - adjustment.quantity_change
        adjustment.movement_id = entry.movement_id
        adjustment.applied_at = datetime.now(timezone.utc)
        adjustment.status = AdjustmentStatus.APPLIED.value
        self.db.flush()
        logger.info(
            f"Adjustment {adjustment.adjustment_number} applied: product {adjustment.product_id} "
            f"{adjustment.quantity_before} -> {adjustment.quantity_after}"
        )

    # ===== QUERIES =====

    def get_adjustment(self, adjustment_id: int) -> InventoryAdjustment:
        adjustment = self.adjustments.get(adjustment_id)
        if adjustment is None:
            raise NotFoundError("InventoryAdjustment", adjustment_id)
        return adjustment

    def list_pending(self, warehouse_id: Optional[int] = None) -> List[InventoryAdjustment]:
        return self.adjustments.pending(warehouse_id)

    def list_adjustments(
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
        if status is not None:
            status = require_choice(AdjustmentStatus, status, "status").value
        if adjustment_type is not None:
            adjustment_type = require_choice(AdjustmentType, adjustment_type, "adjustment_type").value
        return self.adjustments.list(
            status=status,
            product_id=product_id,
            warehouse_id=warehouse_id,
            adjustment_type=adjustment_type,
            created_by=created_by,
            start=start,
            end=end,
            skip=skip,
            limit=limit,
        )
