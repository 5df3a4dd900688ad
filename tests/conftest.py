"""Pytest configuration and fixtures."""

import pytest
from datetime import date
from decimal import Decimal
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from inventory_engine.db.base import Base
from inventory_engine.db.session import build_engine
# Import all models to ensure they're registered with Base.metadata
from inventory_engine.models import *  # noqa: F401,F403
from inventory_engine.models.batch import InventoryBatch
from inventory_engine.models.formula import Formula, FormulaItem
from inventory_engine.models.product import InventoryType, Product, Warehouse
from inventory_engine.models.stock import MovementType, ReferenceType
from inventory_engine.services.adjustment_service import AdjustmentService
from inventory_engine.services.batch_service import BatchService
from inventory_engine.services.formula_service import FormulaService
from inventory_engine.services.production_service import ProductionService
from inventory_engine.services.settings_service import (
    ADJUSTMENT_APPROVAL_KEY,
    ADJUSTMENT_THRESHOLD_KEY,
    APPROVALS_GROUP,
    CREATOR_CANNOT_APPROVE_KEY,
    StaticSettingsProvider,
)
from inventory_engine.services.stock_ledger_service import StockLedgerService
from inventory_engine.services.transfer_service import TransferService

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite:///:memory:"

ADMIN_ID = 1


def _enable_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    event.listen(engine, "connect", _enable_foreign_keys)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Create a test database session."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def main_warehouse(db_session: Session) -> Warehouse:
    warehouse = Warehouse(code="MAIN", name="Main Warehouse", active=True)
    db_session.add(warehouse)
    db_session.commit()
    db_session.refresh(warehouse)
    return warehouse


@pytest.fixture
def branch_warehouse(db_session: Session) -> Warehouse:
    warehouse = Warehouse(code="BR01", name="Branch Warehouse", active=True)
    db_session.add(warehouse)
    db_session.commit()
    db_session.refresh(warehouse)
    return warehouse


@pytest.fixture
def maize(db_session: Session) -> Product:
    """Raw material used by the feed formula."""
    product = Product(
        sku="RM-MAIZE",
        name="Maize",
        unit_of_measure="kg",
        inventory_type=InventoryType.RAW_MATERIAL.value,
        track_inventory=True,
        reorder_level=Decimal("50"),
        critical_level=Decimal("10"),
    )
    db_session.add(product)
    db_session.commit()
    db_session.refresh(product)
    return product


@pytest.fixture
def soya(db_session: Session) -> Product:
    product = Product(
        sku="RM-SOYA",
        name="Soya Meal",
        unit_of_measure="kg",
        inventory_type=InventoryType.RAW_MATERIAL.value,
        track_inventory=True,
    )
    db_session.add(product)
    db_session.commit()
    db_session.refresh(product)
    return product


@pytest.fixture
def feed(db_session: Session) -> Product:
    """Finished good produced from maize and soya."""
    product = Product(
        sku="FG-FEED",
        name="Layer Mash",
        unit_of_measure="kg",
        inventory_type=InventoryType.FINISHED_GOOD.value,
        track_inventory=True,
    )
    db_session.add(product)
    db_session.commit()
    db_session.refresh(product)
    return product


@pytest.fixture
def feed_formula(db_session: Session, feed: Product, maize: Product, soya: Product) -> Formula:
    """Layer mash: 60% maize, 40% soya."""
    formula = Formula(formula_code="FRM-FEED", name="Layer Mash", product_id=feed.id)
    formula.items.append(FormulaItem(product_id=maize.id, percentage=Decimal("60"), sequence=1))
    formula.items.append(FormulaItem(product_id=soya.id, percentage=Decimal("40"), sequence=2))
    db_session.add(formula)
    db_session.commit()
    db_session.refresh(formula)
    return formula


@pytest.fixture
def settings_provider() -> StaticSettingsProvider:
    """Approval required from 100 units; creators may not approve."""
    return StaticSettingsProvider({
        APPROVALS_GROUP: {
            ADJUSTMENT_APPROVAL_KEY: True,
            ADJUSTMENT_THRESHOLD_KEY: 100,
            CREATOR_CANNOT_APPROVE_KEY: True,
        }
    })


@pytest.fixture
def ledger(db_session: Session) -> StockLedgerService:
    return StockLedgerService(db_session)


@pytest.fixture
def adjustment_service(db_session: Session, settings_provider) -> AdjustmentService:
    return AdjustmentService(db_session, settings_provider=settings_provider)


@pytest.fixture
def transfer_service(db_session: Session) -> TransferService:
    return TransferService(db_session)


@pytest.fixture
def formula_service(db_session: Session) -> FormulaService:
    return FormulaService(db_session)


@pytest.fixture
def production_service(db_session: Session) -> ProductionService:
    return ProductionService(db_session)


@pytest.fixture
def receive_stock(ledger: StockLedgerService):
    """Book opening stock through the ledger so the journal stays complete."""
    def _receive(product, warehouse, quantity, batch_id=None):
        return ledger.apply_delta(
            product.id,
            warehouse.id,
            Decimal(str(quantity)),
            MovementType.ADJUSTMENT,
            ReferenceType.ADJUSTMENT,
            0,
            ADMIN_ID,
            batch_id=batch_id,
            notes="Opening stock",
        )
    return _receive


@pytest.fixture
def maize_batch(db_session: Session, maize: Product, main_warehouse: Warehouse) -> InventoryBatch:
    """A maize lot received into the main warehouse."""
    batch = InventoryBatch(
        batch_number="LOT-MAIZE-1",
        product_id=maize.id,
        warehouse_id=main_warehouse.id,
        production_date=date(2026, 1, 10),
        expiry_date=date(2026, 7, 10),
    )
    db_session.add(batch)
    db_session.commit()
    db_session.refresh(batch)
    return batch


@pytest.fixture
def batch_service(db_session: Session) -> BatchService:
    return BatchService(db_session)


@pytest.fixture
def file_sessions(tmp_path):
    """Session factory on a file database, so several sessions share committed state."""
    engine = build_engine(f"sqlite:///{tmp_path / 'engine.db'}")
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()
