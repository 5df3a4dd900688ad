# Services package
from inventory_engine.services.adjustment_service import AdjustmentService
from inventory_engine.services.batch_service import BatchService
from inventory_engine.services.formula_service import FormulaService
from inventory_engine.services.production_service import ProductionService
from inventory_engine.services.settings_service import (
    DatabaseSettingsProvider,
    SettingsProvider,
    StaticSettingsProvider,
)
from inventory_engine.services.stock_ledger_service import StockLedgerService
from inventory_engine.services.transfer_service import TransferService

__all__ = [
    "AdjustmentService",
    "BatchService",
    "DatabaseSettingsProvider",
    "FormulaService",
    "ProductionService",
    "SettingsProvider",
    "StaticSettingsProvider",
    "StockLedgerService",
    "TransferService",
]
