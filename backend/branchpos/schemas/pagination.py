"""Pagination schemas."""

from typing import Generic, List, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class PaginatedResponse(BaseModel, Generic[T]):
    """Generic page of results."""

    items: List[T]
    total: int = Field(description="Total number of items matching the query")
    page: int = Field(description="1-based page number")
    page_size: int = Field(description="Maximum items per page")
    has_more: bool = Field(description="Whether more pages are available")

    @classmethod
    def create(cls, items: List[T], total: int, page: int, page_size: int) -> "PaginatedResponse[T]":
        return cls(
            items=items,
            total=total,
            page=page,
            page_size=page_size,
            has_more=page * page_size < total,
        )
