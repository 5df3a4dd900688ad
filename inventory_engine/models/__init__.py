# Database models
from inventory_engine.models.product import InventoryType, Product, Warehouse
from inventory_engine.models.formula import Formula, FormulaItem
from inventory_engine.models.batch import BatchStatus, InventoryBatch
from inventory_engine.models.stock import (
    NO_BATCH,
    MovementType,
    ReferenceType,
    StockLevel,
    StockMovement,
    StockTransfer,
    batch_key,
)
from inventory_engine.models.adjustment import (
    AdjustmentStatus,
    AdjustmentType,
    InventoryAdjustment,
)
from inventory_engine.models.production import (
    LossType,
    ProductionLoss,
    ProductionRun,
    ProductionRunItem,
    ProductionStatus,
    TERMINAL_STATUSES,
)
from inventory_engine.models.setting import Setting

__all__ = [
    "InventoryType",
    "Product",
    "Warehouse",
    "Formula",
    "FormulaItem",
    "BatchStatus",
    "InventoryBatch",
    "NO_BATCH",
    "MovementType",
    "ReferenceType",
    "StockLevel",
    "StockMovement",
    "StockTransfer",
    "batch_key",
    "AdjustmentStatus",
    "AdjustmentType",
    "InventoryAdjustment",
    "LossType",
    "ProductionLoss",
    "ProductionRun",
    "ProductionRunItem",
    "ProductionStatus",
    "TERMINAL_STATUSES",
    "Setting",
]
