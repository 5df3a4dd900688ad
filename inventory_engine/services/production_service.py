"""
Production Module Service
Manages production runs from planning through material consumption
and finished-goods receipt.

Lifecycle::

    planned --start--> in_progress --complete--> completed
    planned | in_progress --cancel--> cancelled

Nothing touches the ledger before ``complete_run``; that call posts every
consumption, the finished-goods yield and the recorded losses in one
transaction, or none of them.
"""

import logging
from collections import defaultdict
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError
from sqlalchemy.orm import Session

from inventory_engine.core.exceptions import (
    InsufficientMaterialsError,
    InsufficientStockError,
    InvalidInputError,
    InvalidStateError,
    InvalidTargetError,
    NotFoundError,
    Shortage,
)
from inventory_engine.core.quantities import (
    require_choice,
    require_non_negative,
    require_positive,
    require_scale,
    require_text,
    to_decimal,
)
from inventory_engine.db.unit_of_work import unit_of_work
from inventory_engine.models.formula import Formula
from inventory_engine.models.product import Product
from inventory_engine.models.production import (
    TERMINAL_STATUSES,
    LossType,
    ProductionLoss,
    ProductionRun,
    ProductionRunItem,
    ProductionStatus,
)
from inventory_engine.models.stock import NO_BATCH, MovementType, ReferenceType
from inventory_engine.repositories.catalog_repository import CatalogRepository
from inventory_engine.repositories.numbering import next_document_number
from inventory_engine.repositories.production_repository import ProductionRunRepository
from inventory_engine.schemas.production import (
    ItemUsage,
    MaterialCheck,
    MaterialLine,
    ProductionSummary,
)
from inventory_engine.services.formula_service import FormulaService
from inventory_engine.services.stock_ledger_service import StockLedgerService

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


def _utc(moment: datetime) -> datetime:
    # SQLite hands timestamps back without tzinfo
    return moment if moment.tzinfo else moment.replace(tzinfo=timezone.utc)


class ProductionService:
    """Service for planning, running and completing production runs"""

    def __init__(
        self,
        db: Session,
        ledger: Optional[StockLedgerService] = None,
        formulas: Optional[FormulaService] = None,
    ):
        self.db = db
        self.catalog = CatalogRepository(db)
        self.runs = ProductionRunRepository(db)
        self.ledger = ledger or StockLedgerService(db)
        self.formulas = formulas or FormulaService(db)

    # ==================== PLANNING ====================

    def create_run(
        self,
        formula_id: int,
        warehouse_id: int,
        target_quantity,
        actor_id: Optional[int],
        production_date: Optional[date] = None,
        batch_number: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> ProductionRun:
        """
        Plan a production run

        Args:
            formula_id: Formula describing the inputs
            warehouse_id: Warehouse the materials come from and the output goes to
            target_quantity: Planned output; must be > 0
            production_date: Defaults to today

        Raises:
            InvalidTargetError: target_quantity <= 0
            NotFoundError: unknown formula or warehouse
            InvalidInputError: inactive formula or warehouse
        """
        target = self._require_target(target_quantity)
        formula = self.catalog.get_formula(formula_id)
        if not formula.is_active:
            raise InvalidInputError(f"Formula {formula.formula_code} is inactive", field="formula_id")
        self.catalog.get_active_warehouse(warehouse_id)

        with unit_of_work(self.db):
            run = ProductionRun(
                production_number=next_document_number(
                    self.db, ProductionRun.production_number, "PRD"
                ),
                formula_id=formula.id,
                finished_product_id=formula.product_id,
                warehouse_id=warehouse_id,
                production_date=production_date or date.today(),
                batch_number=batch_number,
                status=ProductionStatus.PLANNED.value,
                target_quantity=target,
                wastage_quantity=Decimal("0"),
                notes=notes,
                created_by=actor_id,
            )
            self._plan_items(run, formula, target)
            self.runs.add(run)

        logger.info(
            f"Planned production run {run.production_number}: {target} of product "
            f"{run.finished_product_id} in warehouse {warehouse_id}"
        )
        return run

    def update_planned_run(
        self,
        run_id: int,
        target_quantity=None,
        production_date: Optional[date] = None,
        batch_number: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> ProductionRun:
        """Edit a run that has not started; a new target re-sizes every item."""
        target = self._require_target(target_quantity) if target_quantity is not None else None

        with unit_of_work(self.db):
            run = self._lock_run(run_id, ProductionStatus.PLANNED, "update")
            if target is not None and target != run.target_quantity:
                formula = self.catalog.get_formula(run.formula_id)
                run.target_quantity = target
                run.items.clear()
                self.db.flush()
                self._plan_items(run, formula, target)
            if production_date is not None:
                run.production_date = production_date
            if batch_number is not None:
                run.batch_number = batch_number
            if notes is not None:
                run.notes = notes
            self.db.flush()

        return run

    def delete_planned_run(self, run_id: int) -> None:
        """Remove a run that never started; nothing was journaled for it."""
        with unit_of_work(self.db):
            run = self._lock_run(run_id, ProductionStatus.PLANNED, "delete")
            number = run.production_number
            self.runs.delete(run)
        logger.info(f"Deleted planned production run {number}")

    def _plan_items(self, run: ProductionRun, formula: Formula, target: Decimal) -> None:
        requirements = self.formulas.resolve(formula, target)
        products = self.catalog.get_products(r.product_id for r in requirements)
        for requirement in requirements:
            run.items.append(
                ProductionRunItem(
                    product_id=requirement.product_id,
                    percentage=requirement.percentage,
                    planned_quantity=requirement.required_quantity,
                    actual_quantity=Decimal("0"),
                    variance=Decimal("0"),
                    unit_of_measure=products[requirement.product_id].unit_of_measure,
                )
            )

    # ==================== MATERIAL CHECKS ====================

    def check_materials(self, run_id: int) -> MaterialCheck:
        """Required vs. available for every item; read-only"""
        run = self.get_run(run_id)
        products = self._products_for(run)
        lines = []
        for item in run.items:
            tracked = products[item.product_id].track_inventory
            available = self._available(item.product_id, run.warehouse_id) if tracked else None
            lines.append(
                MaterialLine(
                    product_id=item.product_id,
                    required=item.planned_quantity,
                    available=available,
                    sufficient=not tracked or available >= item.planned_quantity,
                    tracked=tracked,
                )
            )
        return MaterialCheck(
            run_id=run.id,
            warehouse_id=run.warehouse_id,
            items=lines,
            all_sufficient=all(line.sufficient for line in lines),
        )

    def _available(self, product_id: int, warehouse_id: int) -> Decimal:
        return self.ledger.get_available(product_id, warehouse_id, NO_BATCH)

    def _shortages(
        self, run: ProductionRun, required: Dict[int, Decimal], products: Dict[int, Product]
    ) -> List[Shortage]:
        shortages = []
        for product_id in sorted(required):
            needed = required[product_id]
            if needed <= 0 or not products[product_id].track_inventory:
                continue
            available = self._available(product_id, run.warehouse_id)
            if available < needed:
                shortages.append(Shortage(product_id=product_id, required=needed, available=available))
        return shortages

    def _products_for(self, run: ProductionRun) -> Dict[int, Product]:
        ids = {item.product_id for item in run.items}
        ids.add(run.finished_product_id)
        return self.catalog.get_products(ids)

    # ==================== LIFECYCLE ====================

    def start_run(self, run_id: int, actor_id: Optional[int]) -> ProductionRun:
        """
        Start a planned run once every input is available

        Raises:
            InvalidStateError: run is not planned
            InsufficientMaterialsError: lists every input that falls short;
                the run stays planned and nothing is written
        """
        with unit_of_work(self.db):
            run = self._lock_run(run_id, ProductionStatus.PLANNED, "start")

            required: Dict[int, Decimal] = defaultdict(Decimal)
            for item in run.items:
                required[item.product_id] += item.planned_quantity
            shortages = self._shortages(run, required, self._products_for(run))
            if shortages:
                logger.warning(
                    f"Production run {run.production_number} cannot start: "
                    f"{len(shortages)} material(s) short"
                )
                raise InsufficientMaterialsError(shortages, run_id=run.id)

            self._claim(run, [ProductionStatus.PLANNED], ProductionStatus.IN_PROGRESS, "start")
            run.started_at = datetime.now(timezone.utc)
            run.started_by = actor_id

        logger.info(f"Production run {run.production_number} started by user {actor_id}")
        return run

    def record_loss(
        self,
        run_id: int,
        product_id: int,
        quantity,
        loss_type,
        reason: str,
        actor_id: Optional[int],
    ) -> ProductionLoss:
        """Note material lost during an in-progress run; posted at completion."""
        quantity = require_positive(quantity, "quantity")
        loss_type = require_choice(LossType, loss_type, "loss_type")
        reason = require_text(reason, "reason")

        with unit_of_work(self.db):
            run = self._lock_run(run_id, ProductionStatus.IN_PROGRESS, "record loss on")
            if product_id != run.finished_product_id and run.item_for(product_id) is None:
                raise InvalidInputError(
                    f"Product {product_id} is not used or produced by run {run.production_number}",
                    field="product_id",
                )
            loss = self.runs.add_loss(
                ProductionLoss(
                    production_run_id=run.id,
                    product_id=product_id,
                    quantity=quantity,
                    loss_type=loss_type.value,
                    reason=reason,
                    recorded_by=actor_id,
                )
            )
            run.losses.append(loss)

        logger.info(
            f"Recorded {loss_type.value} loss of {quantity} for product {product_id} "
            f"on run {run.production_number}"
        )
        return loss

    def complete_run(
        self,
        run_id: int,
        actual_output,
        usages: List[Union[ItemUsage, Dict[str, Any]]],
        actor_id: Optional[int],
        wastage_quantity=0,
        notes: Optional[str] = None,
    ) -> ProductionRun:
        """
        Complete an in-progress run

        In one transaction: consume each submitted usage, receive the
        finished output, post recorded losses, and mark the run completed.
        The in_progress -> completed flip is a conditional UPDATE, so a run
        is completed, and its stock posted, exactly once.

        Args:
            actual_output: Finished quantity produced (>= 0)
            usages: ``{product_id, quantity_used}`` per consumed run item
            wastage_quantity: Output wasted; drives wastage_percentage

        Raises:
            InvalidStateError: run is not in progress
            InvalidInputError: negative quantities, more decimal places than
                stock is kept in, or a usage for a product that is not a run item
            InsufficientMaterialsError: stock cannot cover the consumption;
                the run stays in progress and nothing is written
        """
        output = require_non_negative(actual_output, "actual_output")
        wastage = require_non_negative(wastage_quantity, "wastage_quantity")

        try:
            with unit_of_work(self.db):
                run = self._lock_run(run_id, ProductionStatus.IN_PROGRESS, "complete")
                parsed = self._parse_usages(run, usages)
                products = self._products_for(run)

                # Net stock change per product at the run's warehouse
                net: Dict[int, Decimal] = defaultdict(Decimal)
                for usage in parsed:
                    net[usage.product_id] -= usage.quantity_used
                for loss in run.losses:
                    net[loss.product_id] -= loss.quantity
                net[run.finished_product_id] += output

                self._claim(run, [ProductionStatus.IN_PROGRESS], ProductionStatus.COMPLETED, "complete")

                tracked = sorted(pid for pid in net if products[pid].track_inventory)
                self.ledger.lock_keys((pid, run.warehouse_id, NO_BATCH) for pid in tracked)
                shortages = self._shortages(
                    run, {pid: -net[pid] for pid in tracked}, products
                )
                if shortages:
                    raise InsufficientMaterialsError(shortages, run_id=run.id)

                for usage in sorted(parsed, key=lambda u: u.product_id):
                    item = run.item_for(usage.product_id)
                    item.actual_quantity = usage.quantity_used
                    item.variance = usage.quantity_used - item.planned_quantity
                    if usage.quantity_used > 0 and products[usage.product_id].track_inventory:
                        self._post(run, usage.product_id, -usage.quantity_used,
                                   MovementType.PRODUCTION_CONSUME, actor_id)

                if output > 0 and products[run.finished_product_id].track_inventory:
                    self._post(run, run.finished_product_id, output,
                               MovementType.PRODUCTION_YIELD, actor_id)

                for loss in run.losses:
                    if products[loss.product_id].track_inventory:
                        self._post(run, loss.product_id, -loss.quantity, MovementType.LOSS,
                                   actor_id, notes=f"{loss.loss_type}: {loss.reason}")

                now = datetime.now(timezone.utc)
                run.actual_output = output
                run.wastage_quantity = wastage
                run.wastage_percentage = wastage / run.target_quantity * HUNDRED
                run.completed_at = now
                run.completed_by = actor_id
                if run.started_at is not None:
                    run.duration_minutes = int((now - _utc(run.started_at)).total_seconds() // 60)
                if notes:
                    run.notes = f"{run.notes}\n{notes}" if run.notes else notes
                self.db.flush()
        except InsufficientMaterialsError:
            logger.warning(f"Production run {run_id} cannot complete: materials short")
            raise
        except InsufficientStockError as e:
            logger.warning(f"Production run {run_id} cannot complete: {e.detail}")
            raise InsufficientMaterialsError(
                [Shortage(product_id=e.product_id, required=e.requested, available=e.available)],
                run_id=run_id,
            ) from e

        logger.info(
            f"Production run {run.production_number} completed: output {output}, "
            f"wastage {run.wastage_percentage:.2f}%"
        )
        return run

    def _post(
        self,
        run: ProductionRun,
        product_id: int,
        delta: Decimal,
        movement_type: MovementType,
        actor_id: Optional[int],
        notes: Optional[str] = None,
    ) -> None:
        self.ledger.apply_delta(
            product_id,
            run.warehouse_id,
            delta,
            movement_type,
            ReferenceType.PRODUCTION_RUN,
            run.id,
            actor_id,
            notes=notes or run.production_number,
        )

    def _parse_usages(self, run: ProductionRun, usages) -> List[ItemUsage]:
        parsed = []
        seen = set()
        for raw in usages or []:
            try:
                usage = raw if isinstance(raw, ItemUsage) else ItemUsage.model_validate(raw)
            except ValidationError as e:
                raise InvalidInputError(f"Invalid item usage {raw!r}: {e}", field="usages")
            quantity = require_non_negative(usage.quantity_used, "quantity_used")
            if run.item_for(usage.product_id) is None:
                raise InvalidInputError(
                    f"Product {usage.product_id} is not an item of run {run.production_number}",
                    field="usages",
                )
            if usage.product_id in seen:
                raise InvalidInputError(
                    f"Product {usage.product_id} is listed twice", field="usages"
                )
            seen.add(usage.product_id)
            parsed.append(ItemUsage(product_id=usage.product_id, quantity_used=quantity))
        return parsed

    def cancel_run(self, run_id: int, reason: str, actor_id: Optional[int]) -> ProductionRun:
        """Cancel a planned or in-progress run; no stock was consumed yet."""
        with unit_of_work(self.db):
            run = self._lock_run(run_id)
            if run.status in TERMINAL_STATUSES:
                logger.warning(
                    f"Cannot cancel production run {run.production_number} in status {run.status}"
                )
                raise InvalidStateError("ProductionRun", run.id, run.status, "cancel")
            reason = require_text(reason, "reason")

            self._claim(
                run,
                [ProductionStatus.PLANNED, ProductionStatus.IN_PROGRESS],
                ProductionStatus.CANCELLED,
                "cancel",
            )
            line = f"Cancellation reason: {reason}"
            run.notes = f"{run.notes}\n{line}" if run.notes else line
            run.cancelled_at = datetime.now(timezone.utc)
            run.cancelled_by = actor_id

        logger.info(f"Production run {run.production_number} cancelled by user {actor_id}")
        return run

    # ==================== QUERIES ====================

    def get_run(self, run_id: int) -> ProductionRun:
        run = self.runs.get(run_id)
        if run is None:
            raise NotFoundError("ProductionRun", run_id)
        return run

    def list_runs(
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
        if status is not None:
            status = require_choice(ProductionStatus, status, "status").value
        return self.runs.list(
            status=status,
            warehouse_id=warehouse_id,
            product_id=product_id,
            formula_id=formula_id,
            start=start,
            end=end,
            skip=skip,
            limit=limit,
        )

    def efficiency(self, run_id: int) -> Optional[Decimal]:
        """actual_output / target * 100; None before completion"""
        return self.get_run(run_id).efficiency_percentage

    def get_summary(
        self, start: Optional[date] = None, end: Optional[date] = None
    ) -> ProductionSummary:
        """Run counts, output, wastage and average efficiency for a period"""
        runs = self.runs.in_period(start, end)
        by_status = {status.value: 0 for status in ProductionStatus}
        for run in runs:
            by_status[run.status] = by_status.get(run.status, 0) + 1

        completed = [r for r in runs if r.status == ProductionStatus.COMPLETED.value]
        efficiencies = [
            r.efficiency_percentage for r in completed if r.efficiency_percentage is not None
        ]
        return ProductionSummary(
            total_runs=len(runs),
            completed_runs=len(completed),
            planned_runs=by_status[ProductionStatus.PLANNED.value],
            in_progress_runs=by_status[ProductionStatus.IN_PROGRESS.value],
            total_output=sum((to_decimal(r.actual_output or 0, "actual_output") for r in completed), Decimal("0")),
            total_wastage=sum((to_decimal(r.wastage_quantity, "wastage_quantity") for r in completed), Decimal("0")),
            average_efficiency=(
                sum(efficiencies, Decimal("0")) / len(efficiencies) if efficiencies else None
            ),
            by_status=by_status,
        )

    # ==================== HELPERS ====================

    def _require_target(self, target_quantity) -> Decimal:
        target = to_decimal(target_quantity, "target_quantity")
        if target <= 0:
            raise InvalidTargetError(target_quantity)
        return require_scale(target, "target_quantity")

    def _lock_run(
        self,
        run_id: int,
        status: Optional[ProductionStatus] = None,
        attempted: str = "",
    ) -> ProductionRun:
        # Fresh copy of the row; the identity map may hold an older status
        run = self.runs.lock(run_id)
        if run is None:
            raise NotFoundError("ProductionRun", run_id)
        if status is not None:
            self._require_status(run, status, attempted)
        return run

    def _claim(
        self,
        run: ProductionRun,
        expected: List[ProductionStatus],
        status: ProductionStatus,
        attempted: str,
    ) -> None:
        if not self.runs.transition(run.id, [s.value for s in expected], status.value):
            # Another writer moved the run first
            self.db.refresh(run)
            logger.warning(
                f"Cannot {attempted} production run {run.production_number}: "
                f"status changed to {run.status}"
            )
            raise InvalidStateError("ProductionRun", run.id, run.status, attempted)

    def _require_status(self, run: ProductionRun, status: ProductionStatus, attempted: str) -> None:
        if run.status != status.value:
            logger.warning(
                f"Cannot {attempted} production run {run.production_number} in status {run.status}"
            )
            raise InvalidStateError("ProductionRun", run.id, run.status, attempted)
