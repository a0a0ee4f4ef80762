from typing import Generic, TypeVar

from pydantic import BaseModel
from sqlalchemy.orm import Query

T = TypeVar("T")


class PaginationMeta(BaseModel):
    total: int
    limit: int
    offset: int
    has_more: bool


class PaginatedResponse(BaseModel, Generic[T]):
    items: list[T]
    pagination: PaginationMeta


def paginate(q: Query, *, limit: int, offset: int) -> tuple[list, PaginationMeta]:
    """Run `q` for one page and return (rows, meta)."""
    total = q.order_by(None).count()
    rows = q.limit(limit).offset(offset).all()
    return rows, PaginationMeta(
        total=total,
        limit=limit,
        offset=offset,
        has_more=offset + len(rows) < total,
    )
