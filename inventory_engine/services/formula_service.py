"""Formula Resolver - turns a percentage formula into material requirements.

A formula lists each input as a percentage of the output quantity, so
producing ``target`` units needs ``target * percentage / 100`` of each
input. Totals are not required to be 100 (moisture, losses); ``is_balanced``
only reports it.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError
from sqlalchemy.orm import Session

from inventory_engine.core.exceptions import InvalidInputError, InvalidTargetError
from inventory_engine.core.quantities import require_scale, require_text, to_decimal
from inventory_engine.db.unit_of_work import unit_of_work
from inventory_engine.models.formula import Formula, FormulaItem
from inventory_engine.repositories.catalog_repository import CatalogRepository
from inventory_engine.schemas.production import FormulaItemInput, Requirement

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")
BALANCE_TOLERANCE = Decimal("0.01")


def resolve(formula: Formula, target_quantity) -> List[Requirement]:
    """Requirements for producing *target_quantity* with *formula*; no rounding."""
    target = to_decimal(target_quantity, "target_quantity")
    if target <= 0:
        raise InvalidTargetError(target_quantity)
    if not formula.items:
        raise InvalidInputError(f"Formula {formula.id} has no items", field="items")

    requirements = []
    for item in formula.items:
        percentage = to_decimal(item.percentage, "percentage")
        if percentage < 0:
            raise InvalidInputError(
                f"Formula {formula.id} item for product {item.product_id} has negative "
                f"percentage {percentage}",
                field="percentage",
            )
        requirements.append(
            Requirement(
                product_id=item.product_id,
                percentage=percentage,
                required_quantity=target * percentage / HUNDRED,
            )
        )
    return requirements


def total_percentage(formula: Formula) -> Decimal:
    return sum((to_decimal(i.percentage, "percentage") for i in formula.items), Decimal("0"))


def is_balanced(formula: Formula) -> bool:
    """True when the percentages add up to 100 within 0.01."""
    return abs(total_percentage(formula) - HUNDRED) <= BALANCE_TOLERANCE


class FormulaService:
    """Formula lookup, creation and requirement sizing."""

    def __init__(self, db: Session):
        self.db = db
        self.catalog = CatalogRepository(db)

    def get_formula(self, formula_id: int) -> Formula:
        return self.catalog.get_formula(formula_id)

    def create_formula(
        self,
        product_id: int,
        name: str,
        items: List[Union[FormulaItemInput, Dict[str, Any]]],
        actor_id: Optional[int],
        formula_code: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Formula:
        """
        Create a formula for ``product_id``.

        Args:
            items: ``{product_id, percentage[, sequence]}`` per input material
            formula_code: Defaults to ``FRM-{product_id}-{n}``

        Raises:
            NotFoundError: output or input product does not exist
            InvalidInputError: blank name, no items, negative percentage or a
                duplicated input product
        """
        name = require_text(name, "name")
        parsed = self._parse_items(items)
        self.catalog.get_product(product_id)
        self.catalog.get_products(i.product_id for i in parsed)

        with unit_of_work(self.db):
            if formula_code is None:
                existing = self.db.query(Formula).filter(Formula.product_id == product_id).count()
                formula_code = f"FRM-{product_id}-{existing + 1}"
            formula = Formula(
                formula_code=formula_code,
                name=name,
                product_id=product_id,
                description=description,
                is_active=True,
                created_by=actor_id,
            )
            for position, item in enumerate(parsed, start=1):
                formula.items.append(
                    FormulaItem(
                        product_id=item.product_id,
                        percentage=item.percentage,
                        sequence=item.sequence or position,
                    )
                )
            self.db.add(formula)
            self.db.flush()

        if not is_balanced(formula):
            logger.info(
                f"Formula {formula.formula_code} totals {total_percentage(formula)}%, not 100%"
            )
        logger.info(f"Created formula {formula.formula_code} for product {product_id}")
        return formula

    def _parse_items(self, items) -> List[FormulaItemInput]:
        if not items:
            raise InvalidInputError("Formula needs at least one item", field="items")
        parsed = []
        seen = set()
        for raw in items:
            try:
                item = raw if isinstance(raw, FormulaItemInput) else FormulaItemInput.model_validate(raw)
            except ValidationError as e:
                raise InvalidInputError(f"Invalid formula item {raw!r}: {e}", field="items")
            item.percentage = require_scale(to_decimal(item.percentage, "percentage"), "percentage")
            if item.percentage < 0:
                raise InvalidInputError(
                    f"Percentage for product {item.product_id} cannot be negative",
                    field="percentage",
                )
            if item.product_id in seen:
                raise InvalidInputError(
                    f"Product {item.product_id} appears twice in the formula", field="items"
                )
            seen.add(item.product_id)
            parsed.append(item)
        return parsed

    def resolve(self, formula: Formula, target_quantity) -> List[Requirement]:
        return resolve(formula, target_quantity)

    def calculate_requirements(self, formula_id: int, target_quantity) -> List[Requirement]:
        return resolve(self.get_formula(formula_id), target_quantity)

    def total_percentage(self, formula: Formula) -> Decimal:
        return total_percentage(formula)

    def is_balanced(self, formula: Formula) -> bool:
        return is_balanced(formula)
