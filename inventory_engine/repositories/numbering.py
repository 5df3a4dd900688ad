"""Human-readable document numbers: ``{PREFIX}{YYYYMMDD}{seq:04d}``."""

from datetime import date
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import InstrumentedAttribute, Session


def next_document_number(
    db: Session,
    column: InstrumentedAttribute,
    prefix: str,
    on_date: Optional[date] = None,
) -> str:
    """Next number in the daily sequence for *prefix*, e.g. ``PRD202601150003``."""
    day_prefix = f"{prefix}{(on_date or date.today()).strftime('%Y%m%d')}"
    latest = db.execute(
        select(func.max(column)).where(column.like(f"{day_prefix}%"))
    ).scalar_one_or_none()
    sequence = int(latest[len(day_prefix):]) + 1 if latest else 1
    return f"{day_prefix}{sequence:04d}"
