"""
Derived queries: repository methods whose query is inferred from the name.

    find_by_name(name)                           -> WHERE name = :name
    find_by_age_greater_than_and_active(a, b)    -> WHERE age > :a AND active = :b
    count_by_email_containing(s)                 -> SELECT count(*) ... LIKE '%s%'
    find_by_active_order_by_name_desc(active)    -> ... ORDER BY name DESC

Conditions are joined with ``_and_`` / ``_or_``; AND binds tighter than OR.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Sequence, Tuple

from userbackend.data.pageable import Direction, Order, Sort
from userbackend.exceptions import QueryException


class QueryOperation(str, Enum):
    FIND = "find"
    COUNT = "count"
    EXISTS = "exists"
    DELETE = "delete"


class ComparisonOperator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not"
    GREATER_THAN = "greater_than"
    GREATER_THAN_EQUAL = "greater_than_equal"
    LESS_THAN = "less_than"
    LESS_THAN_EQUAL = "less_than_equal"
    LIKE = "like"
    CONTAINING = "containing"
    STARTING_WITH = "starting_with"
    ENDING_WITH = "ending_with"
    IN = "in"
    NOT_IN = "not_in"
    BETWEEN = "between"
    IS_NULL = "is_null"
    IS_NOT_NULL = "is_not_null"

    @property
    def arity(self) -> int:
        """Number of method arguments the operator consumes."""
        if self in (ComparisonOperator.IS_NULL, ComparisonOperator.IS_NOT_NULL):
            return 0
        if self == ComparisonOperator.BETWEEN:
            return 2
        return 1


# Longest suffixes first so "greater_than_equal" wins over "greater_than"
_OPERATOR_SUFFIXES: List[Tuple[List[str], ComparisonOperator]] = sorted(
    (
        (op.value.split("_"), op)
        for op in ComparisonOperator
        if op != ComparisonOperator.EQUALS
    ),
    key=lambda item: len(item[0]),
    reverse=True,
)

_PREFIXES = [
    ("find_by_", QueryOperation.FIND),
    ("count_by_", QueryOperation.COUNT),
    ("exists_by_", QueryOperation.EXISTS),
    ("delete_by_", QueryOperation.DELETE),
]

_CONNECTORS = ("and", "or")


@dataclass(frozen=True)
class QueryCondition:
    field: str
    operator: ComparisonOperator = ComparisonOperator.EQUALS


@dataclass
class Query:
    """Parsed derived query: an OR of AND-groups of conditions, plus ordering."""

    operation: QueryOperation
    condition_groups: List[List[QueryCondition]]
    sort: Sort = field(default_factory=Sort.unsorted)

    @property
    def arity(self) -> int:
        return sum(c.operator.arity for group in self.condition_groups for c in group)

    def bind(self, args: Sequence) -> List[List[Tuple[QueryCondition, tuple]]]:
        """Pair every condition with the positional arguments it consumes."""
        if len(args) != self.arity:
            raise QueryException(
                f"Query expects {self.arity} argument(s), got {len(args)}"
            )

        bound = []
        position = 0
        for group in self.condition_groups:
            bound_group = []
            for condition in group:
                arity = condition.operator.arity
                bound_group.append((condition, tuple(args[position : position + arity])))
                position += arity
            bound.append(bound_group)
        return bound


def is_query_method(name: str) -> bool:
    return any(name.startswith(prefix) for prefix, _ in _PREFIXES)


def parse_query_method(name: str, field_names: Iterable[str]) -> Query:
    """
    Parse a derived query method name against the entity's field names.

    Raises:
        QueryException: the name is malformed or references an unknown field
    """
    field_names = set(field_names)

    for prefix, operation in _PREFIXES:
        if name.startswith(prefix):
            body = name[len(prefix) :]
            break
    else:
        raise QueryException(f"'{name}' is not a derived query method")

    sort = Sort.unsorted()
    if "_order_by_" in body:
        body, order_part = body.split("_order_by_", 1)
        if operation != QueryOperation.FIND:
            raise QueryException(f"'{name}': order_by is only valid on find_by_ methods")
        sort = _parse_order(name, order_part.split("_"), field_names)

    tokens = [t for t in body.split("_") if t]
    if not tokens:
        raise QueryException(f"'{name}' has no query conditions")

    groups: List[List[QueryCondition]] = [[]]
    i = 0
    while True:
        field_name, i = _match_field(name, tokens, i, field_names)
        operator, i = _match_operator(tokens, i)
        groups[-1].append(QueryCondition(field_name, operator))

        if i == len(tokens):
            break

        connector = tokens[i]
        if connector not in _CONNECTORS:
            raise QueryException(f"'{name}': unexpected '{connector}' in method name")
        i += 1
        if i == len(tokens):
            raise QueryException(f"'{name}' ends with a dangling '{connector}'")
        if connector == "or":
            groups.append([])

    return Query(operation=operation, condition_groups=groups, sort=sort)


def _match_field(
    name: str, tokens: List[str], start: int, field_names: set
) -> Tuple[str, int]:
    for end in range(len(tokens), start, -1):
        candidate = "_".join(tokens[start:end])
        if candidate in field_names:
            return candidate, end
    raise QueryException(
        f"'{name}': no entity field matches '{'_'.join(tokens[start:])}'"
    )


def _match_operator(tokens: List[str], start: int) -> Tuple[ComparisonOperator, int]:
    for suffix, operator in _OPERATOR_SUFFIXES:
        end = start + len(suffix)
        if tokens[start:end] == suffix and (end == len(tokens) or tokens[end] in _CONNECTORS):
            return operator, end
    return ComparisonOperator.EQUALS, start


def _parse_order(name: str, tokens: List[str], field_names: set) -> Sort:
    orders = []
    i = 0
    while i < len(tokens):
        if tokens[i] == "and":
            i += 1
            continue
        field_name, i = _match_field(name, tokens, i, field_names)
        direction = Direction.ASC
        if i < len(tokens) and tokens[i] in ("asc", "desc"):
            direction = Direction(tokens[i])
            i += 1
        orders.append(Order(field_name, direction))

    if not orders:
        raise QueryException(f"'{name}': order_by needs at least one field")
    return Sort(tuple(orders))
