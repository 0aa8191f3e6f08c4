"""
Shared schema building blocks.

Everything on the wire is camelCase; Python code keeps snake_case field names.
"""
import math
from datetime import datetime
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class PagedResult(CamelModel, Generic[T]):
    items: list[T]
    total_count: int
    page: int
    page_size: int
    total_pages: int

    @classmethod
    def create(cls, items: list, total_count: int, page: int, page_size: int) -> "PagedResult":
        return cls(
            items=items,
            total_count=total_count,
            page=page,
            page_size=page_size,
            total_pages=math.ceil(total_count / page_size) if page_size > 0 else 0,
        )


class AuditedOut(CamelModel):
    """Provenance fields and the row version clients must echo on update."""
    created_at: datetime
    created_by: Optional[str] = None
    updated_at: Optional[datetime] = None
    updated_by: Optional[str] = None
    row_version: int
