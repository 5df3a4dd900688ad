"""Settings provider: tenant-editable policy values read by the engine.

Values are addressed by ``(group, key)``, e.g. ``("approvals",
"inventory_adjustment_approval")``. The engine only reads them; editing
screens live outside this package.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional, Protocol

from sqlalchemy.orm import Session

from inventory_engine.core.config import Settings, settings as default_settings
from inventory_engine.repositories.setting_repository import SettingRepository

logger = logging.getLogger(__name__)

APPROVALS_GROUP = "approvals"
ADJUSTMENT_APPROVAL_KEY = "inventory_adjustment_approval"
ADJUSTMENT_THRESHOLD_KEY = "inventory_adjustment_threshold"
CREATOR_CANNOT_APPROVE_KEY = "creator_cannot_approve"

_TRUE_STRINGS = {"1", "true", "yes", "on"}


class SettingsProvider(Protocol):
    def get(self, group: str, key: str, default: Any = None) -> Any:
        ...


class DatabaseSettingsProvider:
    """Reads the ``settings`` table through the caller's session."""

    def __init__(self, db: Session):
        self.repo = SettingRepository(db)

    def get(self, group: str, key: str, default: Any = None) -> Any:
        setting = self.repo.get(group, key)
        if setting is None or setting.value is None:
            return default
        return setting.value


class StaticSettingsProvider:
    """In-memory provider, ``{group: {key: value}}``."""

    def __init__(self, values: Optional[Dict[str, Dict[str, Any]]] = None):
        self.values = values or {}

    def get(self, group: str, key: str, default: Any = None) -> Any:
        return self.values.get(group, {}).get(key, default)

    def set(self, group: str, key: str, value: Any) -> None:
        self.values.setdefault(group, {})[key] = value


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return bool(value)


@dataclass(frozen=True)
class ApprovalPolicy:
    require_approval: bool
    threshold: Decimal
    creator_cannot_approve: bool

    def needs_approval(self, quantity_change: Decimal) -> bool:
        return self.require_approval and abs(quantity_change) >= self.threshold


def load_approval_policy(
    provider: SettingsProvider, config: Optional[Settings] = None
) -> ApprovalPolicy:
    """Resolve the adjustment approval policy, falling back to config defaults."""
    config = config or default_settings
    raw_threshold = provider.get(
        APPROVALS_GROUP, ADJUSTMENT_THRESHOLD_KEY, config.adjustment_approval_threshold
    )
    try:
        threshold = Decimal(str(raw_threshold))
    except ArithmeticError:
        logger.warning(
            f"Ignoring invalid {APPROVALS_GROUP}.{ADJUSTMENT_THRESHOLD_KEY}={raw_threshold!r}"
        )
        threshold = config.adjustment_approval_threshold

    return ApprovalPolicy(
        require_approval=_as_bool(
            provider.get(
                APPROVALS_GROUP, ADJUSTMENT_APPROVAL_KEY, config.adjustment_require_approval
            )
        ),
        threshold=threshold,
        creator_cannot_approve=_as_bool(
            provider.get(
                APPROVALS_GROUP, CREATOR_CANNOT_APPROVE_KEY, config.creator_cannot_approve
            )
        ),
    )
