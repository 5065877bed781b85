import math
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from sqlalchemy import asc, desc, func, or_, select
from sqlalchemy.orm import Query

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
MAX_LIMIT = 100

T = TypeVar("T")


def sanitize(page: int | None = None, limit: int | None = None) -> tuple[int, int]:
    page = max(int(page or DEFAULT_PAGE), 1)
    limit = min(max(int(limit or DEFAULT_LIMIT), 1), MAX_LIMIT)
    return page, limit


def page_meta(total: int, page: int, limit: int) -> dict[str, Any]:
    total_pages = math.ceil(total / limit) if limit else 0
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": total_pages,
        "has_next": page < total_pages,
        "has_prev": page > 1,
    }


@dataclass
class Page(Generic[T]):
    items: list[T]
    total: int
    page: int
    limit: int

    @property
    def meta(self) -> dict[str, Any]:
        return page_meta(self.total, self.page, self.limit)


def paginate(query: Query, page: int | None = None, limit: int | None = None) -> Page:
    page, limit = sanitize(page, limit)
    total = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    return Page(items=items, total=total, page=page, limit=limit)


def paginate_list(items: list, page: int | None = None, limit: int | None = None) -> Page:
    page, limit = sanitize(page, limit)
    start = (page - 1) * limit
    return Page(items=items[start:start + limit], total=len(items), page=page, limit=limit)


def apply_sort(query: Query, model, sort_by: str | None, sort_order: str | None, allowed: set[str], default: str):
    column_name = sort_by if sort_by in allowed else default
    column = getattr(model, column_name)
    direction = desc if (sort_order or "").lower() == "desc" else asc
    return query.order_by(direction(column), model.id)


def search_clause(term: str | None, *columns):
    if not term or not term.strip():
        return None
    pattern = f"%{term.strip().lower()}%"
    return or_(*[func.lower(column).like(pattern) for column in columns])


def count_where(db, model, *criteria) -> int:
    stmt = select(func.count()).select_from(model)
    for criterion in criteria:
        stmt = stmt.where(criterion)
    return db.execute(stmt).scalar_one()
