# Persistence access used by the services
from inventory_engine.repositories.adjustment_repository import AdjustmentRepository
from inventory_engine.repositories.batch_repository import BatchRepository
from inventory_engine.repositories.catalog_repository import CatalogRepository
from inventory_engine.repositories.movement_repository import MovementRepository, MovementStream
from inventory_engine.repositories.numbering import next_document_number
from inventory_engine.repositories.production_repository import ProductionRunRepository
from inventory_engine.repositories.setting_repository import SettingRepository
from inventory_engine.repositories.stock_repository import (
    StockKey,
    StockLevelRepository,
    sorted_keys,
)
from inventory_engine.repositories.transfer_repository import TransferRepository

__all__ = [
    "AdjustmentRepository",
    "BatchRepository",
    "CatalogRepository",
    "MovementRepository",
    "MovementStream",
    "next_document_number",
    "ProductionRunRepository",
    "SettingRepository",
    "StockKey",
    "StockLevelRepository",
    "sorted_keys",
    "TransferRepository",
]
