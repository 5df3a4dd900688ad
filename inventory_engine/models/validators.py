"""Model-level validation utilities for data integrity.

Reusable validators that enforce quantity rules at the ORM level, so an
invalid value is rejected on assignment regardless of which service
writes it.
"""

from decimal import Decimal


def _as_decimal(value) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def non_negative(key: str, value):
    """Validate that a numeric value is >= 0."""
    if value is not None and _as_decimal(value) < 0:
        raise ValueError(f"{key} cannot be negative, got {value}")
    return value


def positive(key: str, value):
    """Validate that a numeric value is > 0."""
    if value is not None and _as_decimal(value) <= 0:
        raise ValueError(f"{key} must be positive, got {value}")
    return value


def non_zero(key: str, value):
    """Validate that a numeric value is not 0."""
    if value is not None and _as_decimal(value) == 0:
        raise ValueError(f"{key} cannot be zero")
    return value
