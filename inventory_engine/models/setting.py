"""Key/value settings store read by the default settings provider."""

from __future__ import annotations

from typing import Any

from sqlalchemy import JSON, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from inventory_engine.db.base import Base, TimestampMixin


class Setting(Base, TimestampMixin):
    """One setting value, grouped (e.g. ``approvals``) and keyed."""

    __tablename__ = "settings"
    __table_args__ = (UniqueConstraint("group", "key", name="uq_settings_group_key"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    group: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    key: Mapped[str] = mapped_column(String(100), nullable=False)
    value: Mapped[Any] = mapped_column(JSON, nullable=True)
