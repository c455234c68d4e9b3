"""
Paging and sorting value types for repository queries.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Generic, Iterable, Iterator, List, Sequence, TypeVar, Union

T = TypeVar("T")


class Direction(str, Enum):
    ASC = "asc"
    DESC = "desc"

    @classmethod
    def from_string(cls, value: str) -> "Direction":
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise ValueError(
                f"Invalid sort direction '{value}'. Use 'asc' or 'desc'."
            ) from None


@dataclass(frozen=True)
class Order:
    property: str
    direction: Direction = Direction.ASC

    @property
    def is_ascending(self) -> bool:
        return self.direction == Direction.ASC

    def __str__(self) -> str:
        return f"{self.property},{self.direction.value}"


@dataclass(frozen=True)
class Sort:
    """Ordered list of sort orders. Immutable; combinators return new instances."""

    orders: tuple = ()

    @classmethod
    def unsorted(cls) -> "Sort":
        return cls()

    @classmethod
    def by(cls, *properties: str) -> "Sort":
        return cls(tuple(Order(p) for p in properties))

    @classmethod
    def parse(cls, values: Union[str, Iterable[str], None]) -> "Sort":
        """
        Parse HTTP-style sort parameters.

        Each value is ``property`` or ``property,asc|desc``:
            Sort.parse(["name,desc", "id"])
        """
        if not values:
            return cls()
        if isinstance(values, str):
            values = [values]

        orders = []
        for value in values:
            parts = [p.strip() for p in value.split(",") if p.strip()]
            if not parts:
                continue
            if len(parts) > 2:
                raise ValueError(f"Invalid sort parameter '{value}'")
            direction = Direction.from_string(parts[1]) if len(parts) == 2 else Direction.ASC
            orders.append(Order(parts[0], direction))
        return cls(tuple(orders))

    def ascending(self) -> "Sort":
        return Sort(tuple(Order(o.property, Direction.ASC) for o in self.orders))

    def descending(self) -> "Sort":
        return Sort(tuple(Order(o.property, Direction.DESC) for o in self.orders))

    def and_(self, other: "Sort") -> "Sort":
        return Sort(self.orders + other.orders)

    @property
    def is_sorted(self) -> bool:
        return bool(self.orders)

    def __iter__(self) -> Iterator[Order]:
        return iter(self.orders)

    def __bool__(self) -> bool:
        return self.is_sorted


@dataclass(frozen=True)
class Pageable:
    """A page request: zero-based page index, page size and sort."""

    page: int = 0
    size: int = 20
    sort: Sort = field(default_factory=Sort.unsorted)

    def __post_init__(self):
        if self.page < 0:
            raise ValueError("Page index must not be less than zero")
        if self.size < 1:
            raise ValueError("Page size must not be less than one")

    @classmethod
    def of(cls, page: int, size: int, sort: Sort = None) -> "Pageable":
        return cls(page=page, size=size, sort=sort or Sort.unsorted())

    @property
    def offset(self) -> int:
        return self.page * self.size

    def next(self) -> "Pageable":
        return Pageable(self.page + 1, self.size, self.sort)

    def previous_or_first(self) -> "Pageable":
        return Pageable(max(self.page - 1, 0), self.size, self.sort)

    def first(self) -> "Pageable":
        return Pageable(0, self.size, self.sort)


class Page(Generic[T]):
    """One slice of a query result plus the total number of matching elements."""

    def __init__(self, content: Sequence[T], pageable: Pageable, total_elements: int):
        self.content: List[T] = list(content)
        self.pageable = pageable
        self.total_elements = total_elements

    @property
    def number(self) -> int:
        return self.pageable.page

    @property
    def size(self) -> int:
        return self.pageable.size

    @property
    def number_of_elements(self) -> int:
        return len(self.content)

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_elements / self.size) if self.total_elements else 0

    @property
    def is_first(self) -> bool:
        return self.number == 0

    @property
    def is_last(self) -> bool:
        return not self.has_next

    @property
    def has_next(self) -> bool:
        return self.number + 1 < self.total_pages

    @property
    def has_previous(self) -> bool:
        return self.number > 0

    def map(self, converter: Callable[[T], Any]) -> "Page":
        """Convert each element, keeping the paging information."""
        return Page([converter(item) for item in self.content], self.pageable, self.total_elements)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content": self.content,
            "page": self.number,
            "size": self.size,
            "number_of_elements": self.number_of_elements,
            "total_elements": self.total_elements,
            "total_pages": self.total_pages,
            "first": self.is_first,
            "last": self.is_last,
            "sort": [str(order) for order in self.pageable.sort],
        }

    def __iter__(self) -> Iterator[T]:
        return iter(self.content)

    def __len__(self) -> int:
        return len(self.content)

    def __repr__(self) -> str:
        return (
            f"Page({self.number + 1} of {self.total_pages}, "
            f"{self.number_of_elements} of {self.total_elements} elements)"
        )
