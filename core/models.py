"""
core/models.py -- Shared value types that every layer may use.

Pagination lives here because users, roles and permissions all page the same
way and the metadata invariants must hold identically for each of them.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Pagination:
    """Page request plus the metadata derived from a total row count.

    total_pages = ceil(total / per_page)
    has_next_page = page < total_pages
    has_prev_page = page > 1
    """

    page: int
    per_page: int
    total: int = 0

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.per_page

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.per_page) if self.per_page else 0

    @property
    def has_next_page(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev_page(self) -> bool:
        return self.page > 1

    def meta(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "page": self.page,
            "per_page": self.per_page,
            "total_pages": self.total_pages,
            "has_next_page": self.has_next_page,
            "has_prev_page": self.has_prev_page,
        }


@dataclass
class Page:
    """One page of serialised rows and its pagination metadata."""

    data: list[dict[str, Any]] = field(default_factory=list)
    pagination: Pagination = field(default_factory=lambda: Pagination(page=1, per_page=10))

    def to_dict(self) -> dict[str, Any]:
        return {"data": self.data, "meta": self.pagination.meta()}

