import re
from contextlib import asynccontextmanager
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    Integer,
    LargeBinary,
    MetaData,
    String,
    Table,
    Text,
    Time,
    and_,
    func,
    or_,
    select,
)
from sqlalchemy.engine import make_url
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import AsyncAdaptedQueuePool, NullPool, StaticPool

from userbackend.core.logging import get_logger
from userbackend.data.adapters.base import DatabaseAdapter
from userbackend.data.entity import get_entity_metadata
from userbackend.data.pageable import Sort
from userbackend.data.query import ComparisonOperator, Query, QueryOperation
from userbackend.data.types import EntityMetadata, FieldMetadata
from userbackend.exceptions import (
    DataAccessException,
    DataIntegrityViolationException,
    EntityException,
    QueryException,
)

logger = get_logger(__name__)

_SIMPLE_TYPES = {
    "INTEGER": Integer,
    "BIGINT": BigInteger,
    "FLOAT": Float,
    "BOOLEAN": Boolean,
    "TIMESTAMP": DateTime,
    "DATE": Date,
    "TIME": Time,
    "BLOB": LargeBinary,
    "TEXT": Text,
}

_VARCHAR = re.compile(r"^VARCHAR\((\d+)\)$")


class SQLAlchemyAdapter(DatabaseAdapter):
    """Database adapter built on SQLAlchemy 2 async Core."""

    def __init__(self):
        self.engine: Optional[AsyncEngine] = None
        self.metadata = MetaData()
        self._tables: Dict[type, Table] = {}

    async def connect(
        self,
        url: str,
        echo: bool = False,
        pool_size: Optional[int] = None,
        max_overflow: Optional[int] = None,
        pool_timeout: Optional[int] = None,
        pool_recycle: Optional[int] = None,
        enable_pooling: bool = True,
    ):
        """
        Create the async engine.

        SQLite never pools: an in-memory database uses StaticPool so every
        query sees the same single connection, a file database uses NullPool.
        """
        engine_kwargs: Dict[str, Any] = {"echo": bool(echo)}

        if url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            engine_kwargs["poolclass"] = StaticPool if _is_sqlite_memory(url) else NullPool
        elif enable_pooling:
            engine_kwargs["poolclass"] = AsyncAdaptedQueuePool
            engine_kwargs["pool_pre_ping"] = True
            pool_options = {
                "pool_size": pool_size,
                "max_overflow": max_overflow,
                "pool_timeout": pool_timeout,
                "pool_recycle": pool_recycle,
            }
            engine_kwargs.update({k: v for k, v in pool_options.items() if v is not None})
        else:
            engine_kwargs["poolclass"] = NullPool

        self.engine = create_async_engine(url, **engine_kwargs)
        logger.info(
            f"Connected to {make_url(url).render_as_string(hide_password=True)} "
            f"({engine_kwargs['poolclass'].__name__})"
        )

    async def disconnect(self):
        if self.engine is not None:
            await self.engine.dispose()
            self.engine = None
            logger.info("Database connection closed")

    def _require_engine(self) -> AsyncEngine:
        if self.engine is None:
            raise DataAccessException("Adapter is not connected. Call connect() first.")
        return self.engine

    @asynccontextmanager
    async def get_connection(self):
        """
        Yield an AsyncConnection inside a transaction.

        Committed on normal exit, rolled back on error. SQLAlchemy errors are
        translated to DataAccessException subclasses.
        """
        engine = self._require_engine()
        try:
            async with engine.begin() as conn:
                yield conn
        except IntegrityError as e:
            raise DataIntegrityViolationException(str(e.orig)) from e
        except SQLAlchemyError as e:
            raise DataAccessException(str(e)) from e
        except OverflowError as e:
            raise DataAccessException(f"Parameter out of range: {e}") from e

    def get_table(self, entity_class: type) -> Table:
        """Get (building on first use) the SQLAlchemy Table for an entity."""
        if entity_class not in self._tables:
            entity_meta = get_entity_metadata(entity_class)
            if entity_meta.table_name in self.metadata.tables:
                raise EntityException(
                    f"Table '{entity_meta.table_name}' is already mapped to another entity"
                )
            self._tables[entity_class] = Table(
                entity_meta.table_name,
                self.metadata,
                *(_build_column(f) for f in entity_meta.fields.values()),
            )
        return self._tables[entity_class]

    async def create_table_if_not_exists(self, entity_meta: EntityMetadata):
        table = self.get_table(entity_meta.entity_class)
        async with self.get_connection() as conn:
            await conn.run_sync(table.create, checkfirst=True)
        logger.debug(f"Ensured table '{table.name}' exists")

    async def insert(self, entity_meta: EntityMetadata, values: Dict[str, Any]) -> Any:
        table = self.get_table(entity_meta.entity_class)
        async with self.get_connection() as conn:
            result = await conn.execute(table.insert().values(**values))
            pk = entity_meta.get_primary_key()
            if pk.name in values and values[pk.name] is not None:
                return values[pk.name]
            return result.inserted_primary_key[0]

    async def update(
        self, entity_meta: EntityMetadata, entity_id: Any, values: Dict[str, Any]
    ) -> int:
        table = self.get_table(entity_meta.entity_class)
        pk_column = table.c[entity_meta.primary_key_field]
        async with self.get_connection() as conn:
            result = await conn.execute(
                table.update().where(pk_column == entity_id).values(**values)
            )
            return result.rowcount

    async def select_by_id(
        self, entity_meta: EntityMetadata, entity_id: Any
    ) -> Optional[Dict[str, Any]]:
        table = self.get_table(entity_meta.entity_class)
        pk_column = table.c[entity_meta.primary_key_field]
        async with self.get_connection() as conn:
            result = await conn.execute(select(table).where(pk_column == entity_id))
            row = result.first()
            return dict(row._mapping) if row is not None else None

    async def select_by_ids(
        self, entity_meta: EntityMetadata, entity_ids: Iterable[Any]
    ) -> List[Dict[str, Any]]:
        ids = list(entity_ids)
        if not ids:
            return []
        table = self.get_table(entity_meta.entity_class)
        pk_column = table.c[entity_meta.primary_key_field]
        async with self.get_connection() as conn:
            result = await conn.execute(
                select(table).where(pk_column.in_(ids)).order_by(pk_column.asc())
            )
            return [dict(row._mapping) for row in result]

    async def select_all(
        self,
        entity_meta: EntityMetadata,
        sort: Optional[Sort] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        table = self.get_table(entity_meta.entity_class)
        statement = select(table).order_by(*self._order_by(entity_meta, table, sort))
        if limit is not None:
            statement = statement.limit(limit)
        if offset:
            statement = statement.offset(offset)

        async with self.get_connection() as conn:
            result = await conn.execute(statement)
            return [dict(row._mapping) for row in result]

    async def count(self, entity_meta: EntityMetadata) -> int:
        table = self.get_table(entity_meta.entity_class)
        async with self.get_connection() as conn:
            result = await conn.execute(select(func.count()).select_from(table))
            return result.scalar_one()

    async def exists_by_id(self, entity_meta: EntityMetadata, entity_id: Any) -> bool:
        table = self.get_table(entity_meta.entity_class)
        pk_column = table.c[entity_meta.primary_key_field]
        async with self.get_connection() as conn:
            result = await conn.execute(
                select(pk_column).where(pk_column == entity_id).limit(1)
            )
            return result.first() is not None

    async def delete_by_ids(
        self, entity_meta: EntityMetadata, entity_ids: Iterable[Any]
    ) -> int:
        ids = list(entity_ids)
        if not ids:
            return 0
        table = self.get_table(entity_meta.entity_class)
        pk_column = table.c[entity_meta.primary_key_field]
        async with self.get_connection() as conn:
            result = await conn.execute(table.delete().where(pk_column.in_(ids)))
            return result.rowcount

    async def delete_all(self, entity_meta: EntityMetadata) -> int:
        table = self.get_table(entity_meta.entity_class)
        async with self.get_connection() as conn:
            result = await conn.execute(table.delete())
            return result.rowcount

    async def execute_query(
        self,
        entity_meta: EntityMetadata,
        query: Query,
        args: Sequence[Any],
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> Any:
        table = self.get_table(entity_meta.entity_class)
        where = self._where_clause(table, query, args)

        async with self.get_connection() as conn:
            if query.operation == QueryOperation.FIND:
                statement = (
                    select(table)
                    .where(where)
                    .order_by(*self._order_by(entity_meta, table, query.sort))
                )
                if limit is not None:
                    statement = statement.limit(limit)
                if offset:
                    statement = statement.offset(offset)
                result = await conn.execute(statement)
                return [dict(row._mapping) for row in result]

            if query.operation == QueryOperation.COUNT:
                result = await conn.execute(
                    select(func.count()).select_from(table).where(where)
                )
                return result.scalar_one()

            if query.operation == QueryOperation.EXISTS:
                pk_column = table.c[entity_meta.primary_key_field]
                result = await conn.execute(select(pk_column).where(where).limit(1))
                return result.first() is not None

            result = await conn.execute(table.delete().where(where))
            return result.rowcount

    def _where_clause(self, table: Table, query: Query, args: Sequence[Any]):
        groups = []
        for bound_group in query.bind(args):
            clauses = [
                _condition_clause(table.c[condition.field], condition.operator, values)
                for condition, values in bound_group
            ]
            groups.append(and_(*clauses))
        return groups[0] if len(groups) == 1 else or_(*groups)

    def _order_by(self, entity_meta: EntityMetadata, table: Table, sort: Optional[Sort]):
        pk_column = table.c[entity_meta.primary_key_field]
        if not sort:
            return [pk_column.asc()]

        clauses = []
        for order in sort:
            if order.property not in table.c:
                raise QueryException(
                    f"No property '{order.property}' found for entity "
                    f"{entity_meta.entity_class.__name__}"
                )
            column = table.c[order.property]
            clauses.append(column.asc() if order.is_ascending else column.desc())
        return clauses


def _condition_clause(column, operator: ComparisonOperator, values: tuple):
    op = ComparisonOperator
    value = values[0] if values else None

    if operator == op.EQUALS:
        return column.is_(None) if value is None else column == value
    if operator == op.NOT_EQUALS:
        return column.is_not(None) if value is None else column != value
    if operator == op.GREATER_THAN:
        return column > value
    if operator == op.GREATER_THAN_EQUAL:
        return column >= value
    if operator == op.LESS_THAN:
        return column < value
    if operator == op.LESS_THAN_EQUAL:
        return column <= value
    if operator == op.LIKE:
        return column.like(value)
    if operator == op.CONTAINING:
        return column.contains(value, autoescape=True)
    if operator == op.STARTING_WITH:
        return column.startswith(value, autoescape=True)
    if operator == op.ENDING_WITH:
        return column.endswith(value, autoescape=True)
    if operator == op.IN:
        return column.in_(list(value))
    if operator == op.NOT_IN:
        return column.not_in(list(value))
    if operator == op.BETWEEN:
        return column.between(values[0], values[1])
    if operator == op.IS_NULL:
        return column.is_(None)
    if operator == op.IS_NOT_NULL:
        return column.is_not(None)
    raise QueryException(f"Unsupported operator: {operator}")


def _build_column(field_meta: FieldMetadata) -> Column:
    return Column(
        field_meta.name,
        _column_type(field_meta),
        primary_key=field_meta.primary_key,
        autoincrement=field_meta.auto_increment if field_meta.primary_key else "auto",
        nullable=field_meta.nullable,
        unique=field_meta.unique or None,
        index=field_meta.index or None,
    )


def _column_type(field_meta: FieldMetadata):
    db_type = field_meta.db_type.upper()

    if field_meta.primary_key and field_meta.auto_increment and db_type in ("INTEGER", "BIGINT"):
        # 64-bit keys, but SQLite only auto-increments INTEGER PRIMARY KEY
        return BigInteger().with_variant(Integer(), "sqlite")

    match = _VARCHAR.match(db_type)
    if match:
        return String(int(match.group(1)))
    if db_type == "VARCHAR":
        return String(255)
    if db_type in _SIMPLE_TYPES:
        return _SIMPLE_TYPES[db_type]()

    raise EntityException(
        f"Unsupported column type '{field_meta.db_type}' for field '{field_meta.name}'"
    )


def _is_sqlite_memory(url: str) -> bool:
    database = make_url(url).database
    return not database or database == ":memory:" or "mode=memory" in url
