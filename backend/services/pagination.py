"""Pagination helpers shared by task search and the activity feed."""

import math
from dataclasses import dataclass
from typing import Any

from schemas import Pagination

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 20
MAX_LIMIT = 100
# Largest OFFSET a signed 64-bit bind parameter can carry
MAX_OFFSET = 2 ** 63 - 1


def _coerce(value: Any, default: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


@dataclass
class PageRequest:
    page: int = DEFAULT_PAGE
    limit: int = DEFAULT_LIMIT

    @classmethod
    def from_query(cls, page: Any = None, limit: Any = None) -> "PageRequest":
        """Build from raw query values; anything missing or unparseable falls back to the defaults."""
        limit = min(_coerce(limit, DEFAULT_LIMIT), MAX_LIMIT)
        # Pages past the end are still valid, just empty; clamp so the offset stays bindable
        page = min(_coerce(page, DEFAULT_PAGE), MAX_OFFSET // limit + 1)
        return cls(page=page, limit=limit)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def envelope(self, total: int) -> Pagination:
        return Pagination(
            page=self.page,
            limit=self.limit,
            total=total,
            total_pages=math.ceil(total / self.limit) if self.limit > 0 else 0,
        )
