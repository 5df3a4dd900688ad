"""Decimal coercion and argument checks for quantities.

Quantities and percentages are always ``Decimal``. Floats are converted
through ``str`` so ``0.1`` becomes ``Decimal("0.1")`` rather than its
binary approximation. Nothing here rounds: a quantity with more decimal
places than the ``Numeric(18, 4)`` columns keep is rejected, not quantized.
"""

from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional, Type, TypeVar

from inventory_engine.core.exceptions import InvalidInputError

E = TypeVar("E", bound=Enum)

# Decimal places stored by every quantity and percentage column
QUANTITY_PLACES = 4
_QUANTUM = Decimal(1).scaleb(-QUANTITY_PLACES)


def to_decimal(value: Any, field: str) -> Decimal:
    """Coerce *value* to a finite Decimal or raise InvalidInputError."""
    if value is None or isinstance(value, bool):
        raise InvalidInputError(f"{field} must be a number, got {value!r}", field=field)
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidInputError(f"{field} must be a number, got {value!r}", field=field)
    if not result.is_finite():
        raise InvalidInputError(f"{field} must be finite, got {value!r}", field=field)
    return result


def require_scale(value: Decimal, field: str) -> Decimal:
    """Raise unless *value* fits the stored scale exactly."""
    try:
        fits = value.quantize(_QUANTUM) == value
    except InvalidOperation:
        fits = False
    if not fits:
        raise InvalidInputError(
            f"{field} allows at most {QUANTITY_PLACES} decimal places, got {value}", field=field
        )
    return value


def require_positive(value: Any, field: str) -> Decimal:
    result = require_scale(to_decimal(value, field), field)
    if result <= 0:
        raise InvalidInputError(f"{field} must be positive, got {value}", field=field)
    return result


def require_non_negative(value: Any, field: str) -> Decimal:
    result = require_scale(to_decimal(value, field), field)
    if result < 0:
        raise InvalidInputError(f"{field} cannot be negative, got {value}", field=field)
    return result


def require_non_zero(value: Any, field: str) -> Decimal:
    result = require_scale(to_decimal(value, field), field)
    if result == 0:
        raise InvalidInputError(f"{field} cannot be zero", field=field)
    return result


def require_choice(enum_cls: Type[E], value: Any, field: str) -> E:
    """Return the ``enum_cls`` member for *value* or raise InvalidInputError."""
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise InvalidInputError(f"{field} must be one of: {allowed}; got {value!r}", field=field)


def require_text(value: Optional[str], field: str) -> str:
    """Return the stripped text, or raise if it is missing or blank."""
    if value is None or not str(value).strip():
        raise InvalidInputError(f"{field} is required", field=field)
    return str(value).strip()
