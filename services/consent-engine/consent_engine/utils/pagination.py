from __future__ import annotations
import math
from dataclasses import dataclass
from typing import Generic, List, Sequence, TypeVar

T = TypeVar("T")

MAX_PAGE_SIZE = 25
# Anything above this is rejected instead of being clamped to MAX_PAGE_SIZE
PAGE_SIZE_LIMIT = 1000


@dataclass(frozen=True)
class Pagination:
    number: int = 1
    size: int = MAX_PAGE_SIZE

    @classmethod
    def from_query(cls, page: int | None, page_size: int | None) -> "Pagination":
        number = page if page and page > 0 else 1
        size = page_size if page_size and page_size > 0 else MAX_PAGE_SIZE
        if size > PAGE_SIZE_LIMIT:
            raise ValueError("invalid page size")
        return cls(number=number, size=min(size, MAX_PAGE_SIZE))


@dataclass(frozen=True)
class Page(Generic[T]):
    records: List[T]
    number: int
    size: int
    total_records: int

    @property
    def total_pages(self) -> int:
        if self.total_records == 0:
            return 0
        return math.ceil(self.total_records / self.size)


def paginate(items: Sequence[T], pagination: Pagination) -> Page[T]:
    start = (pagination.number - 1) * pagination.size
    return Page(
        records=list(items[start:start + pagination.size]),
        number=pagination.number,
        size=pagination.size,
        total_records=len(items),
    )
