"""Transaction scope shared by every mutating engine operation.

``unit_of_work`` commits when the outermost scope exits cleanly and rolls
the whole session back when any exception escapes. Inner scopes join the
outer one, so a workflow that calls other workflows still commits or
rolls back as a single unit.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.orm import Session

from inventory_engine.core.exceptions import InventoryError

logger = logging.getLogger(__name__)

_DEPTH_KEY = "unit_of_work_depth"


@contextmanager
def unit_of_work(db: Session) -> Iterator[Session]:
    """Run the enclosed block as one all-or-nothing transaction."""
    depth = db.info.get(_DEPTH_KEY, 0)
    db.info[_DEPTH_KEY] = depth + 1
    try:
        yield db
        if depth == 0:
            db.commit()
    except InventoryError:
        if depth == 0:
            db.rollback()
        raise
    except Exception:
        if depth == 0:
            logger.error("Transaction rolled back after unexpected error", exc_info=True)
            db.rollback()
        raise
    finally:
        db.info[_DEPTH_KEY] = depth


def in_unit_of_work(db: Session) -> bool:
    """True while an enclosing unit_of_work scope is open on *db*."""
    return db.info.get(_DEPTH_KEY, 0) > 0
