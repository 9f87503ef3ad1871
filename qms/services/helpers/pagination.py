"""
Page/page_size pagination over SQLAlchemy select() statements.

Usage:
    stmt = select(Assessment).where(Assessment.organization_id == org_id)
    page = paginate_select(stmt.order_by(Assessment.created_at.desc()), page=2, page_size=20)
    page.items, page.meta()   # meta → {"page", "page_size", "total_items", "total_pages"}
"""

import math
from dataclasses import dataclass

from sqlalchemy import func, select

from qms.models import db

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


@dataclass
class Page:
    items: list
    page: int
    page_size: int
    total_items: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_items / self.page_size) if self.page_size else 0

    def meta(self) -> dict:
        return {
            "page": self.page,
            "page_size": self.page_size,
            "total_items": self.total_items,
            "total_pages": self.total_pages,
        }


def clamp_page(page, page_size) -> tuple[int, int]:
    """Coerce page to ≥1 and page_size to [1, MAX_PAGE_SIZE]."""
    try:
        page = max(int(page or 1), 1)
    except (TypeError, ValueError):
        page = 1
    try:
        page_size = int(page_size or DEFAULT_PAGE_SIZE)
    except (TypeError, ValueError):
        page_size = DEFAULT_PAGE_SIZE
    return page, max(1, min(page_size, MAX_PAGE_SIZE))


def paginate_select(stmt, page=1, page_size=DEFAULT_PAGE_SIZE) -> Page:
    """Run *stmt* with limit/offset and a matching total count."""
    page, page_size = clamp_page(page, page_size)
    total = db.session.execute(
        select(func.count()).select_from(stmt.order_by(None).subquery())
    ).scalar_one()
    rows = db.session.execute(
        stmt.limit(page_size).offset((page - 1) * page_size)
    ).scalars().all()
    return Page(items=list(rows), page=page, page_size=page_size, total_items=total)
