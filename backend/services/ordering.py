# services/ordering.py — Sparse fractional positions for lists and tasks
"""
Siblings (lists in a board, tasks in a list) are ordered by a float
``position``. New siblings are appended one GAP past the current last one,
and a drag-and-drop move rewrites only the moved row: the client picks a
value between the two neighbours it was dropped between.

Repeated bisection between the same two neighbours eventually runs out of
representable floats. ``has_room`` detects that point and ``respace``
produces a fresh evenly spaced sequence; neither is run automatically.
"""
import math
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from errors import InvalidInput

GAP = 1024.0


def next_position(last: Optional[float]) -> float:
    """Position for a sibling appended after ``last`` (None when there are no siblings)"""
    if last is None:
        return GAP
    return last + GAP


def validate_position(value: float) -> float:
    """Accept a client-supplied position verbatim as long as it is a finite, non-negative number"""
    if value is None or math.isnan(value) or math.isinf(value):
        raise InvalidInput("Position must be a finite number")
    if value < 0:
        raise InvalidInput("Position must be non-negative")
    return float(value)


def midpoint(prev: Optional[float], next_: Optional[float]) -> float:
    """Position for a drop between ``prev`` and ``next_``.

    ``prev=None`` means dropping before the first sibling, ``next_=None``
    means dropping after the last one.
    """
    if prev is None and next_ is None:
        return GAP
    if prev is None:
        return next_ / 2
    if next_ is None:
        return prev + GAP
    return (prev + next_) / 2


def has_room(prev: Optional[float], next_: Optional[float]) -> bool:
    """False once no distinct float exists strictly between the neighbours"""
    if prev is None or next_ is None:
        return True
    mid = midpoint(prev, next_)
    low, high = min(prev, next_), max(prev, next_)
    return low < mid < high


def respace(count: int) -> List[float]:
    return [GAP * (i + 1) for i in range(count)]


def sort_key(entity):
    """Display order: position, then creation time, then id"""
    return (entity.position, entity.created_at, entity.id)


async def last_position(db: AsyncSession, position_column, parent_column, parent_id: str) -> Optional[float]:
    stmt = select(func.max(position_column)).where(parent_column == parent_id)
    result = await db.execute(stmt)
    return result.scalar()
