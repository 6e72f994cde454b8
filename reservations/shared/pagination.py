"""Limit/offset pagination for history listings."""

from __future__ import annotations

from typing import Generic, TypeVar

from fastapi import Query
from pydantic import BaseModel

T = TypeVar("T")


class PaginationParams(BaseModel):
    limit: int
    offset: int


def get_pagination_params(
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
) -> PaginationParams:
    """FastAPI dependency for pagination params."""
    return PaginationParams(limit=limit, offset=offset)


class Page(BaseModel, Generic[T]):
    """One page of results plus the total match count."""

    items: list[T]
    total: int
    limit: int
    offset: int
    has_more: bool


def build_page(items: list[T], total: int, params: PaginationParams) -> Page[T]:
    return Page(
        items=items,
        total=total,
        limit=params.limit,
        offset=params.offset,
        has_more=params.offset + len(items) < total,
    )
