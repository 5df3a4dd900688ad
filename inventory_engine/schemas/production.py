"""Formula and production run schemas."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class Requirement(BaseModel):
    """Material needed for a target output, at full decimal precision."""

    product_id: int
    percentage: Decimal
    required_quantity: Decimal


class FormulaItemInput(BaseModel):
    product_id: int
    percentage: Decimal
    sequence: Optional[int] = None


class ItemUsage(BaseModel):
    """Actual consumption of one run item, submitted at completion."""

    product_id: int
    quantity_used: Decimal


class MaterialLine(BaseModel):
    product_id: int
    required: Decimal
    available: Optional[Decimal] = None  # None for products without stock tracking
    sufficient: bool
    tracked: bool = True

    @property
    def shortfall(self) -> Decimal:
        if self.available is None:
            return Decimal("0")
        return max(self.required - self.available, Decimal("0"))


class MaterialCheck(BaseModel):
    """Required vs. available stock for every item of a run."""

    run_id: int
    warehouse_id: int
    items: List[MaterialLine] = Field(default_factory=list)
    all_sufficient: bool


class ProductionRunItemResponse(BaseModel):
    id: int
    product_id: int
    percentage: Decimal
    planned_quantity: Decimal
    actual_quantity: Decimal
    variance: Decimal
    unit_of_measure: str

    model_config = {"from_attributes": True}


class ProductionLossResponse(BaseModel):
    id: int
    product_id: int
    quantity: Decimal
    loss_type: str
    reason: str
    recorded_by: Optional[int] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class ProductionRunResponse(BaseModel):
    id: int
    production_number: str
    formula_id: int
    finished_product_id: int
    warehouse_id: int
    production_date: date
    batch_number: Optional[str] = None
    status: str
    target_quantity: Decimal
    actual_output: Optional[Decimal] = None
    wastage_quantity: Decimal
    wastage_percentage: Optional[Decimal] = None
    efficiency_percentage: Optional[Decimal] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    duration_minutes: Optional[int] = None
    notes: Optional[str] = None
    items: List[ProductionRunItemResponse] = Field(default_factory=list)
    losses: List[ProductionLossResponse] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class ProductionSummary(BaseModel):
    """Aggregate production figures for a date range."""

    total_runs: int
    completed_runs: int
    planned_runs: int
    in_progress_runs: int
    total_output: Decimal
    total_wastage: Decimal
    average_efficiency: Optional[Decimal] = None
    by_status: Dict[str, int] = Field(default_factory=dict)
