"""Tests for the production run lifecycle."""

from datetime import date
from decimal import Decimal

import pytest

from inventory_engine.core.exceptions import (
    InsufficientMaterialsError,
    InvalidInputError,
    InvalidStateError,
    InvalidTargetError,
    NotFoundError,
)
from inventory_engine.models.formula import Formula, FormulaItem
from inventory_engine.models.product import InventoryType, Product, Warehouse
from inventory_engine.models.production import ProductionRun, ProductionStatus
from inventory_engine.models.stock import MovementType, ReferenceType, StockMovement
from inventory_engine.schemas.production import ItemUsage, ProductionRunResponse
from inventory_engine.services.production_service import ProductionService
from inventory_engine.services.stock_ledger_service import StockLedgerService

PLANNER_ID = 5
OPERATOR_ID = 6


@pytest.fixture
def half_formula(db_session, feed, maize):
    """Single input: 50% maize."""
    formula = Formula(formula_code="FRM-HALF", name="Half", product_id=feed.id)
    formula.items.append(FormulaItem(product_id=maize.id, percentage=Decimal("50"), sequence=1))
    db_session.add(formula)
    db_session.commit()
    return formula


def _movements(db, run):
    return db.query(StockMovement).filter(
        StockMovement.reference_type == "production_run",
        StockMovement.reference_id == run.id,
    ).order_by(StockMovement.id).all()


# ============== Scenarios ==============

class TestProductionScenarios:
    def test_sufficient_stock_full_cycle(self, db_session, production_service, ledger, receive_stock,
                                         half_formula, maize, feed, main_warehouse):
        receive_stock(maize, main_warehouse, 100)

        run = production_service.create_run(half_formula.id, main_warehouse.id, 100, PLANNER_ID)
        assert run.status == ProductionStatus.PLANNED.value
        assert run.items[0].planned_quantity == Decimal("50")

        production_service.start_run(run.id, OPERATOR_ID)
        assert run.status == ProductionStatus.IN_PROGRESS.value
        assert run.started_by == OPERATOR_ID

        completed = production_service.complete_run(
            run.id,
            actual_output=95,
            usages=[{"product_id": maize.id, "quantity_used": 52}],
            actor_id=OPERATOR_ID,
            wastage_quantity=5,
        )

        assert completed.status == ProductionStatus.COMPLETED.value
        assert ledger.get_available(maize.id, main_warehouse.id) == Decimal("48")
        assert ledger.get_available(feed.id, main_warehouse.id) == Decimal("95")
        assert completed.wastage_percentage == Decimal("5")
        assert completed.actual_output == Decimal("95")
        assert completed.completed_by == OPERATOR_ID
        assert completed.duration_minutes is not None

        item = completed.items[0]
        assert item.actual_quantity == Decimal("52")
        assert item.variance == Decimal("2")

        movements = _movements(db_session, run)
        assert [(m.movement_type, m.quantity_delta) for m in movements] == [
            ("production_consume", Decimal("-52")),
            ("production_yield", Decimal("95")),
        ]
        assert ledger.reconcile() == []

        with pytest.raises(InvalidStateError):
            production_service.complete_run(
                run.id, 95, [{"product_id": maize.id, "quantity_used": 52}], OPERATOR_ID
            )
        assert len(_movements(db_session, run)) == 2

    def test_start_with_shortage_lists_material(self, db_session, production_service, ledger,
                                                receive_stock, half_formula, maize, main_warehouse):
        receive_stock(maize, main_warehouse, 30)
        run = production_service.create_run(half_formula.id, main_warehouse.id, 100, PLANNER_ID)

        with pytest.raises(InsufficientMaterialsError) as exc:
            production_service.start_run(run.id, OPERATOR_ID)

        shortage, = exc.value.shortages
        assert shortage.product_id == maize.id
        assert shortage.required == Decimal("50")
        assert shortage.available == Decimal("30")
        assert exc.value.to_dict()["shortages"][0]["required"] == str(shortage.required)
        assert production_service.get_run(run.id).status == ProductionStatus.PLANNED.value
        assert ledger.get_available(maize.id, main_warehouse.id) == Decimal("30")


# ============== Lifecycle rules ==============

class TestCreateRun:
    def test_items_follow_formula(self, production_service, feed_formula, maize, soya, feed, main_warehouse):
        run = production_service.create_run(
            feed_formula.id, main_warehouse.id, Decimal("250"), PLANNER_ID,
            production_date=date(2026, 3, 1), batch_number="B-17",
        )
        assert run.finished_product_id == feed.id
        assert run.production_number.startswith("PRD")
        assert {i.product_id: i.planned_quantity for i in run.items} == {
            maize.id: Decimal("150"),
            soya.id: Decimal("100"),
        }
        assert all(i.actual_quantity == 0 and i.variance == 0 for i in run.items)

    @pytest.mark.parametrize("target", [0, -10])
    def test_invalid_target(self, db_session, production_service, feed_formula, main_warehouse, target):
        with pytest.raises(InvalidTargetError):
            production_service.create_run(feed_formula.id, main_warehouse.id, target, PLANNER_ID)
        assert db_session.query(ProductionRun).count() == 0

    def test_unknown_formula(self, production_service, main_warehouse):
        with pytest.raises(NotFoundError):
            production_service.create_run(404, main_warehouse.id, 10, PLANNER_ID)

    def test_sequential_numbers(self, production_service, feed_formula, main_warehouse):
        first = production_service.create_run(feed_formula.id, main_warehouse.id, 10, PLANNER_ID)
        second = production_service.create_run(feed_formula.id, main_warehouse.id, 10, PLANNER_ID)
        assert first.production_number[-4:] == "0001"
        assert second.production_number[-4:] == "0002"

    def test_update_planned_run_resizes_items(self, production_service, feed_formula, maize, main_warehouse):
        run = production_service.create_run(feed_formula.id, main_warehouse.id, 100, PLANNER_ID)
        production_service.update_planned_run(run.id, target_quantity=200, notes="Doubled")

        assert run.target_quantity == Decimal("200")
        assert run.item_for(maize.id).planned_quantity == Decimal("120")
        assert run.notes == "Doubled"

    def test_delete_planned_run(self, db_session, production_service, feed_formula, main_warehouse):
        run = production_service.create_run(feed_formula.id, main_warehouse.id, 100, PLANNER_ID)
        production_service.delete_planned_run(run.id)
        assert db_session.query(ProductionRun).count() == 0


class TestRunTransitions:
    @pytest.fixture
    def started(self, production_service, receive_stock, feed_formula, maize, soya, main_warehouse):
        receive_stock(maize, main_warehouse, 100)
        receive_stock(soya, main_warehouse, 100)
        run = production_service.create_run(feed_formula.id, main_warehouse.id, 100, PLANNER_ID)
        return production_service.start_run(run.id, OPERATOR_ID)

    def test_start_twice(self, production_service, started):
        with pytest.raises(InvalidStateError) as exc:
            production_service.start_run(started.id, OPERATOR_ID)
        assert exc.value.current_state == ProductionStatus.IN_PROGRESS.value

    def test_started_run_cannot_be_edited_or_deleted(self, production_service, started):
        with pytest.raises(InvalidStateError):
            production_service.update_planned_run(started.id, target_quantity=5)
        with pytest.raises(InvalidStateError):
            production_service.delete_planned_run(started.id)

    def test_shortage_report_lists_every_material(self, production_service, receive_stock,
                                                  feed_formula, maize, soya, main_warehouse):
        receive_stock(maize, main_warehouse, 10)
        receive_stock(soya, main_warehouse, 5)
        run = production_service.create_run(feed_formula.id, main_warehouse.id, 100, PLANNER_ID)

        check = production_service.check_materials(run.id)
        assert not check.all_sufficient

        with pytest.raises(InsufficientMaterialsError) as exc:
            production_service.start_run(run.id, OPERATOR_ID)
        assert [(s.product_id, s.missing) for s in exc.value.shortages] == [
            (maize.id, Decimal("50")),
            (soya.id, Decimal("35")),
        ]

    def test_complete_with_drifted_stock_keeps_run_in_progress(self, db_session, production_service,
                                                                ledger, started, maize, soya,
                                                                main_warehouse):
        ledger.reserve(maize.id, main_warehouse.id, 50)

        with pytest.raises(InsufficientMaterialsError) as exc:
            production_service.complete_run(
                started.id,
                100,
                [ItemUsage(product_id=maize.id, quantity_used=Decimal("60")),
                 ItemUsage(product_id=soya.id, quantity_used=Decimal("40"))],
                OPERATOR_ID,
            )

        assert [s.product_id for s in exc.value.shortages] == [maize.id]
        run = production_service.get_run(started.id)
        assert run.status == ProductionStatus.IN_PROGRESS.value
        assert all(i.actual_quantity == 0 for i in run.items)
        assert _movements(db_session, run) == []
        assert ledger.get_stock_level(maize.id, main_warehouse.id).quantity == Decimal("100")

    def test_usage_for_foreign_product_rejected(self, production_service, started, feed):
        with pytest.raises(InvalidInputError):
            production_service.complete_run(
                started.id, 10, [{"product_id": feed.id, "quantity_used": 1}], OPERATOR_ID
            )

    def test_negative_usage_rejected(self, production_service, started, maize):
        with pytest.raises(InvalidInputError):
            production_service.complete_run(
                started.id, 10, [{"product_id": maize.id, "quantity_used": -1}], OPERATOR_ID
            )

    def test_losses_posted_at_completion(self, db_session, production_service, ledger, started,
                                         maize, soya, main_warehouse):
        loss = production_service.record_loss(
            started.id, maize.id, Decimal("3"), "spillage", "Auger jam", OPERATOR_ID
        )
        assert loss.loss_type == "spillage"
        # Recording alone leaves the ledger untouched
        assert ledger.get_available(maize.id, main_warehouse.id) == Decimal("100")

        production_service.complete_run(
            started.id,
            97,
            [{"product_id": maize.id, "quantity_used": 60}, {"product_id": soya.id, "quantity_used": 40}],
            OPERATOR_ID,
            wastage_quantity=3,
        )

        assert ledger.get_available(maize.id, main_warehouse.id) == Decimal("37")
        types = [m.movement_type for m in _movements(db_session, started)]
        assert types == ["production_consume", "production_consume", "production_yield", "loss"]
        assert ledger.reconcile() == []

    def test_loss_counts_towards_completion_check(self, production_service, started, maize, soya):
        production_service.record_loss(started.id, maize.id, 45, "damage", "Wet bags", OPERATOR_ID)
        with pytest.raises(InsufficientMaterialsError) as exc:
            production_service.complete_run(
                started.id,
                100,
                [{"product_id": maize.id, "quantity_used": 60}, {"product_id": soya.id, "quantity_used": 40}],
                OPERATOR_ID,
            )
        shortage, = exc.value.shortages
        assert shortage.required == Decimal("105")

    def test_loss_rules(self, production_service, started, feed_formula, main_warehouse, maize):
        with pytest.raises(InvalidInputError):
            production_service.record_loss(started.id, maize.id, 1, "evaporation", "?", OPERATOR_ID)
        with pytest.raises(InvalidInputError):
            production_service.record_loss(started.id, 999, 1, "other", "unrelated", OPERATOR_ID)

        planned = production_service.create_run(feed_formula.id, main_warehouse.id, 10, PLANNER_ID)
        with pytest.raises(InvalidStateError):
            production_service.record_loss(planned.id, maize.id, 1, "other", "too early", OPERATOR_ID)

    def test_untracked_inputs_are_not_journaled(self, db_session, production_service, started, soya):
        soya.track_inventory = False
        db_session.commit()

        production_service.complete_run(
            started.id,
            100,
            [{"product_id": soya.id, "quantity_used": 40}],
            OPERATOR_ID,
        )
        movements = _movements(db_session, started)
        assert [m.movement_type for m in movements] == ["production_yield"]
        assert started.item_for(soya.id).actual_quantity == Decimal("40")

    def test_cancel(self, production_service, started, ledger, maize, main_warehouse):
        cancelled = production_service.cancel_run(started.id, "Mixer broken", OPERATOR_ID)

        assert cancelled.status == ProductionStatus.CANCELLED.value
        assert cancelled.notes.endswith("Cancellation reason: Mixer broken")
        assert cancelled.cancelled_by == OPERATOR_ID
        assert ledger.get_available(maize.id, main_warehouse.id) == Decimal("100")

        with pytest.raises(InvalidStateError):
            production_service.cancel_run(started.id, "again", OPERATOR_ID)
        with pytest.raises(InvalidStateError):
            production_service.complete_run(started.id, 1, [], OPERATOR_ID)

    def test_cancel_requires_reason(self, production_service, started):
        with pytest.raises(InvalidInputError):
            production_service.cancel_run(started.id, " ", OPERATOR_ID)

    def test_cancel_finished_run_reports_state_before_reason(self, production_service, started, maize, soya):
        production_service.complete_run(
            started.id,
            100,
            [{"product_id": maize.id, "quantity_used": 60}, {"product_id": soya.id, "quantity_used": 40}],
            OPERATOR_ID,
        )
        with pytest.raises(InvalidStateError) as exc:
            production_service.cancel_run(started.id, "", OPERATOR_ID)
        assert exc.value.current_state == ProductionStatus.COMPLETED.value

    def test_usage_finer_than_stored_scale_rejected(self, db_session, production_service, started, maize):
        with pytest.raises(InvalidInputError) as exc:
            production_service.complete_run(
                started.id, 10, [{"product_id": maize.id, "quantity_used": "60.00001"}], OPERATOR_ID
            )
        assert exc.value.field == "quantity_used"
        assert production_service.get_run(started.id).status == ProductionStatus.IN_PROGRESS.value
        assert _movements(db_session, started) == []

    def test_untracked_material_has_no_available_figure(self, db_session, production_service,
                                                        receive_stock, feed_formula, maize, soya,
                                                        main_warehouse):
        soya.track_inventory = False
        db_session.commit()
        receive_stock(maize, main_warehouse, 80)
        run = production_service.create_run(feed_formula.id, main_warehouse.id, 100, PLANNER_ID)

        check = production_service.check_materials(run.id)
        lines = {line.product_id: line for line in check.items}
        assert lines[maize.id].available == Decimal("80")
        assert lines[soya.id].available is None
        assert lines[soya.id].sufficient
        assert not lines[soya.id].tracked
        assert lines[soya.id].shortfall == Decimal("0")
        assert check.all_sufficient


# ============== Queries ==============

class TestProductionQueries:
    def test_summary_and_efficiency(self, production_service, receive_stock, half_formula,
                                    maize, main_warehouse):
        receive_stock(maize, main_warehouse, 1000)
        done = production_service.create_run(half_formula.id, main_warehouse.id, 100, PLANNER_ID)
        production_service.start_run(done.id, OPERATOR_ID)
        production_service.complete_run(
            done.id, 90, [{"product_id": maize.id, "quantity_used": 50}], OPERATOR_ID, wastage_quantity=10
        )
        production_service.create_run(half_formula.id, main_warehouse.id, 100, PLANNER_ID)
        cancelled = production_service.create_run(half_formula.id, main_warehouse.id, 100, PLANNER_ID)
        production_service.cancel_run(cancelled.id, "Duplicate", PLANNER_ID)

        assert production_service.efficiency(done.id) == Decimal("90")

        summary = production_service.get_summary()
        assert summary.total_runs == 3
        assert summary.completed_runs == 1
        assert summary.planned_runs == 1
        assert summary.in_progress_runs == 0
        assert summary.total_output == Decimal("90")
        assert summary.total_wastage == Decimal("10")
        assert summary.average_efficiency == Decimal("90")
        assert summary.by_status["cancelled"] == 1

        assert [r.id for r in production_service.list_runs(status="completed")] == [done.id]
        response = ProductionRunResponse.model_validate(done)
        assert response.efficiency_percentage == Decimal("90")
        assert response.items[0].actual_quantity == Decimal("50")

    def test_get_missing_run(self, production_service):
        with pytest.raises(NotFoundError):
            production_service.get_run(77)


# ============== Two sessions ==============

class TestConcurrentLifecycle:
    @pytest.fixture
    def run_ids(self, file_sessions):
        """A planned 100 kg run of a 50% maize formula, with 100 kg of maize on hand."""
        with file_sessions() as setup:
            maize = Product(sku="RM-MAIZE", name="Maize", inventory_type=InventoryType.RAW_MATERIAL.value)
            feed = Product(sku="FG-FEED", name="Feed", inventory_type=InventoryType.FINISHED_GOOD.value)
            warehouse = Warehouse(code="MAIN", name="Main")
            setup.add_all([maize, feed, warehouse])
            setup.flush()
            formula = Formula(formula_code="FRM-HALF", name="Half", product_id=feed.id)
            formula.items.append(FormulaItem(product_id=maize.id, percentage=Decimal("50"), sequence=1))
            setup.add(formula)
            setup.commit()
            StockLedgerService(setup).apply_delta(
                maize.id, warehouse.id, Decimal("100"),
                MovementType.ADJUSTMENT, ReferenceType.ADJUSTMENT, 0, PLANNER_ID,
            )
            run = ProductionService(setup).create_run(formula.id, warehouse.id, 100, PLANNER_ID)
            return run.id, maize.id, warehouse.id

    def _complete(self, service, run_id, maize_id):
        return service.complete_run(
            run_id, 95, [{"product_id": maize_id, "quantity_used": 50}], OPERATOR_ID
        )

    def _assert_completed_once(self, file_sessions, run_id, maize_id, warehouse_id):
        with file_sessions() as db:
            run = db.get(ProductionRun, run_id)
            assert run.status == ProductionStatus.COMPLETED.value
            assert [m.movement_type for m in _movements(db, run)] == [
                "production_consume", "production_yield",
            ]
            ledger = StockLedgerService(db)
            assert ledger.get_stock_level(maize_id, warehouse_id).quantity == Decimal("50")
            assert ledger.reconcile() == []

    def test_second_session_cannot_complete_again(self, file_sessions, run_ids):
        run_id, maize_id, warehouse_id = run_ids
        with file_sessions() as db_a, file_sessions() as db_b:
            first, second = ProductionService(db_a), ProductionService(db_b)
            first.start_run(run_id, OPERATOR_ID)
            assert second.get_run(run_id).status == ProductionStatus.IN_PROGRESS.value

            self._complete(first, run_id, maize_id)
            with pytest.raises(InvalidStateError) as exc:
                self._complete(second, run_id, maize_id)
            assert exc.value.current_state == ProductionStatus.COMPLETED.value

        self._assert_completed_once(file_sessions, run_id, maize_id, warehouse_id)

    def test_stale_run_loses_status_update(self, file_sessions, run_ids, monkeypatch):
        run_id, maize_id, warehouse_id = run_ids
        with file_sessions() as db_a, file_sessions() as db_b:
            first, second = ProductionService(db_a), ProductionService(db_b)
            first.start_run(run_id, OPERATOR_ID)
            stale = second.get_run(run_id)

            self._complete(first, run_id, maize_id)
            # Hand the second operator its old copy, still in progress
            monkeypatch.setattr(second.runs, "lock", lambda run_id: stale)
            with pytest.raises(InvalidStateError) as exc:
                self._complete(second, run_id, maize_id)
            assert exc.value.current_state == ProductionStatus.COMPLETED.value

        self._assert_completed_once(file_sessions, run_id, maize_id, warehouse_id)

    def test_second_session_cannot_start_again(self, file_sessions, run_ids):
        run_id, _, _ = run_ids
        with file_sessions() as db_a, file_sessions() as db_b:
            first, second = ProductionService(db_a), ProductionService(db_b)
            assert second.get_run(run_id).status == ProductionStatus.PLANNED.value

            first.start_run(run_id, OPERATOR_ID)
            with pytest.raises(InvalidStateError) as exc:
                second.start_run(run_id, OPERATOR_ID + 1)
            assert exc.value.current_state == ProductionStatus.IN_PROGRESS.value

        with file_sessions() as db:
            assert db.get(ProductionRun, run_id).started_by == OPERATOR_ID

    def test_cancel_loses_to_completion(self, file_sessions, run_ids):
        run_id, maize_id, warehouse_id = run_ids
        with file_sessions() as db_a, file_sessions() as db_b:
            first, second = ProductionService(db_a), ProductionService(db_b)
            first.start_run(run_id, OPERATOR_ID)
            second.get_run(run_id)

            self._complete(first, run_id, maize_id)
            with pytest.raises(InvalidStateError):
                second.cancel_run(run_id, "Mixer broken", OPERATOR_ID)

        self._assert_completed_once(file_sessions, run_id, maize_id, warehouse_id)
