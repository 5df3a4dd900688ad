"""Typed engine errors.

Every business-rule failure raised by the engine is an ``InventoryError``
subclass with a stable ``kind`` (for mapping to status codes at the
boundary) and a human-readable ``detail``. Structured attributes carry the
data an operator needs to act, e.g. the shortfall list of an
``InsufficientMaterialsError``.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional


class InventoryError(Exception):
    """Base class for all engine errors."""

    kind = "inventory_error"

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(detail)

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "detail": self.detail}


class InsufficientStockError(InventoryError):
    """Raised when a decrement would take a stock level below zero."""

    kind = "insufficient_stock"

    def __init__(
        self,
        product_id: int,
        warehouse_id: int,
        requested: Decimal,
        available: Decimal,
        batch_id: Optional[int] = None,
    ):
        self.product_id = product_id
        self.warehouse_id = warehouse_id
        self.batch_id = batch_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for product {product_id} in warehouse {warehouse_id}: "
            f"need {requested}, have {available}"
        )

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update(
            product_id=self.product_id,
            warehouse_id=self.warehouse_id,
            batch_id=self.batch_id,
            requested=str(self.requested),
            available=str(self.available),
        )
        return data


@dataclass(frozen=True)
class Shortage:
    """One material that cannot be covered by current stock."""

    product_id: int
    required: Decimal
    available: Decimal

    @property
    def missing(self) -> Decimal:
        return self.required - self.available


class InsufficientMaterialsError(InventoryError):
    """Aggregate shortage for a production run; lists every short material."""

    kind = "insufficient_materials"

    def __init__(self, shortages: List[Shortage], run_id: Optional[int] = None):
        self.shortages = list(shortages)
        self.run_id = run_id
        listed = ", ".join(
            f"product {s.product_id} (required {s.required}, available {s.available})"
            for s in self.shortages
        )
        super().__init__(f"Insufficient materials: {listed}")

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["run_id"] = self.run_id
        data["shortages"] = [
            {k: str(v) if isinstance(v, Decimal) else v for k, v in asdict(s).items()}
            for s in self.shortages
        ]
        return data


class InvalidStateError(InventoryError):
    """Operation attempted from a state that does not permit it."""

    kind = "invalid_state"

    def __init__(self, entity: str, entity_id: Any, current_state: str, attempted: str):
        self.entity = entity
        self.entity_id = entity_id
        self.current_state = current_state
        self.attempted = attempted
        super().__init__(
            f"Cannot {attempted} {entity} {entity_id}: current status is '{current_state}'"
        )

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update(entity=self.entity, entity_id=self.entity_id, current_state=self.current_state)
        return data


class RoleSeparationError(InventoryError):
    """Actor identity conflicts with a dual-control rule."""

    kind = "role_separation"

    def __init__(self, detail: str, actor_id: Any = None, rule: str = "creator_cannot_approve"):
        self.actor_id = actor_id
        self.rule = rule
        super().__init__(detail)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["rule"] = self.rule
        return data


class InvalidInputError(InventoryError):
    """Non-positive quantity, empty required text, zero delta and the like."""

    kind = "invalid_input"

    def __init__(self, detail: str, field: Optional[str] = None):
        self.field = field
        super().__init__(detail)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["field"] = self.field
        return data


class InvalidTargetError(InvalidInputError):
    """Production/formula target quantity is not strictly positive."""

    kind = "invalid_target"

    def __init__(self, target: Any):
        self.target = target
        super().__init__(f"Target quantity must be greater than zero, got {target}", field="target_quantity")


class NotFoundError(InventoryError):
    """A referenced product, warehouse, formula, run or record does not exist."""

    kind = "not_found"

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update(entity=self.entity, entity_id=self.entity_id)
        return data
