"""Stock schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel


class LedgerEntry(BaseModel):
    """Outcome of one ledger mutation."""

    new_quantity: Decimal
    movement_id: int


class StockLevelResponse(BaseModel):
    """Stock level response schema."""

    id: int
    product_id: int
    warehouse_id: int
    batch_id: int
    quantity: Decimal
    reserved_quantity: Decimal
    available_quantity: Decimal
    updated_at: datetime

    model_config = {"from_attributes": True}


class StockMovementResponse(BaseModel):
    """Stock movement response schema."""

    id: int
    created_at: datetime
    product_id: int
    warehouse_id: int
    batch_id: int
    movement_type: str
    quantity_delta: Decimal
    resulting_quantity: Decimal
    reference_type: str
    reference_id: int
    notes: Optional[str] = None
    created_by: Optional[int] = None

    model_config = {"from_attributes": True}


class StockAlert(BaseModel):
    """A product whose on-hand total in a warehouse hit its threshold."""

    product_id: int
    warehouse_id: int
    quantity: Decimal
    reorder_level: Decimal
    critical_level: Decimal


class LedgerDiscrepancy(BaseModel):
    """A stock key whose level disagrees with the sum of its movements."""

    product_id: int
    warehouse_id: int
    batch_id: int
    quantity: Decimal
    journal_quantity: Decimal


class StockTransferResponse(BaseModel):
    id: int
    transfer_number: str
    product_id: int
    from_warehouse_id: int
    to_warehouse_id: int
    batch_id: int
    quantity: Decimal
    reason: Optional[str] = None
    created_by: Optional[int] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class TransferResult(BaseModel):
    """Transfer row plus the two movements it produced."""

    transfer: StockTransferResponse
    out_movement_id: int
    in_movement_id: int
    source_quantity: Decimal
    destination_quantity: Decimal
