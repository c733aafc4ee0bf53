"""Uniform response envelope ``{success, message, data}`` and paging payloads."""

from __future__ import annotations

from typing import Generic, TypeVar

from fastapi import Query
from pydantic import BaseModel

T = TypeVar("T")


class Envelope(BaseModel, Generic[T]):
    """Generic success response."""

    success: bool = True
    message: str | None = None
    data: T | None = None


def ok(data: T | None = None, message: str | None = None) -> Envelope[T]:
    """Wrap payload into a success envelope."""
    return Envelope(success=True, message=message, data=data)


class PageParams(BaseModel):
    limit: int
    offset: int


def get_page_params(
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> PageParams:
    """FastAPI dependency for limit/offset query params."""
    return PageParams(limit=limit, offset=offset)


class Page(BaseModel, Generic[T]):
    """Paginated list carried inside an envelope."""

    items: list[T]
    total: int
    limit: int
    offset: int


def build_page(items: list[T], total: int, params: PageParams) -> Page[T]:
    return Page(items=items, total=total, limit=params.limit, offset=params.offset)
