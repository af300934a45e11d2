"""Pagination helpers shared by list endpoints"""

import math
from typing import Any, Generic, TypeVar

from fastapi import Query
from pydantic import BaseModel
from sqlalchemy.orm import Query as SAQuery

DEFAULT_LIMIT = 20
MAX_LIMIT = 100

T = TypeVar("T")


class PageParams(BaseModel):
    page: int = 1
    limit: int = DEFAULT_LIMIT

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def page_params(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
) -> PageParams:
    """FastAPI dependency for ?page=&limit= query params"""
    return PageParams(page=page, limit=limit)


class Page(BaseModel, Generic[T]):
    data: list[T]
    total: int
    page: int
    limit: int
    total_pages: int


def paginate(query: SAQuery, params: PageParams) -> dict[str, Any]:
    """Apply offset/limit to a query and return the page envelope"""
    total = query.order_by(None).count()
    items = query.offset(params.offset).limit(params.limit).all()
    return {
        "data": items,
        "total": total,
        "page": params.page,
        "limit": params.limit,
        "total_pages": math.ceil(total / params.limit) if params.limit else 0,
    }
