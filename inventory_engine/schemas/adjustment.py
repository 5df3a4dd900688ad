"""Inventory adjustment schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel


class InventoryAdjustmentResponse(BaseModel):
    """Inventory adjustment response schema."""

    id: int
    adjustment_number: str
    product_id: int
    warehouse_id: int
    batch_id: int
    adjustment_type: str
    quantity_change: Decimal
    quantity_before: Optional[Decimal] = None
    quantity_after: Optional[Decimal] = None
    reason: str
    notes: Optional[str] = None
    status: str
    created_by: int
    approved_by: Optional[int] = None
    approved_at: Optional[datetime] = None
    approval_notes: Optional[str] = None
    applied_at: Optional[datetime] = None
    movement_id: Optional[int] = None
    created_at: datetime

    model_config = {"from_attributes": True}
