import functools
import inspect
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from userbackend.data.adapters.base import DatabaseAdapter
from userbackend.data.entity import get_entity_metadata
from userbackend.data.pageable import Page, Pageable, Sort
from userbackend.data.query import Query, QueryOperation, is_query_method, parse_query_method
from userbackend.data.types import EntityMetadata
from userbackend.exceptions import EntityNotFoundException, QueryException

_database_adapter: Optional[DatabaseAdapter] = None

# Parameter names on derived query methods that page the result instead of filtering
_PAGING_PARAMETERS = ("limit", "offset")

# Keys outside a signed 64-bit column cannot match any row
_MIN_KEY = -(2**63)
_MAX_KEY = 2**63 - 1


def set_database_adapter(adapter: Optional[DatabaseAdapter]):
    global _database_adapter
    _database_adapter = adapter


def get_database_adapter() -> DatabaseAdapter:
    if _database_adapter is None:
        raise RuntimeError("Database not initialized")
    return _database_adapter


def _key_in_range(entity_id: Any) -> bool:
    if isinstance(entity_id, bool) or not isinstance(entity_id, int):
        return True
    return _MIN_KEY <= entity_id <= _MAX_KEY


class _CrudOperations:
    """
    Generic operations attached to every @CrudRepository class.

    Each operation runs in its own transaction.
    """

    __userbackend_entity__: type

    def _entity_meta(self) -> EntityMetadata:
        return get_entity_metadata(self.__userbackend_entity__)

    async def save(self, entity):
        """
        Insert or update an entity.

        An entity without a primary key is inserted and receives the generated
        key. An entity with a key is updated; if no row has that key it is
        inserted with it.
        """
        meta = self._entity_meta()
        adapter = get_database_adapter()
        pk_name = meta.primary_key_field
        entity_id = getattr(entity, pk_name)
        now = datetime.now()

        for name, field_meta in meta.fields.items():
            if field_meta.update_on_save:
                setattr(entity, name, now)

        if entity_id is not None and _key_in_range(entity_id):
            values = {name: getattr(entity, name) for name in meta.get_updatable_fields()}
            if await adapter.update(meta, entity_id, values):
                return entity

        for name, field_meta in meta.fields.items():
            if field_meta.update_on_create and getattr(entity, name) is None:
                setattr(entity, name, now)

        values = {name: getattr(entity, name) for name in meta.get_insertable_fields()}
        if entity_id is not None:
            values[pk_name] = entity_id

        setattr(entity, pk_name, await adapter.insert(meta, values))
        return entity

    async def save_all(self, entities: Iterable[Any]) -> List[Any]:
        return [await self.save(entity) for entity in entities]

    async def find_by_id(self, entity_id: Any):
        meta = self._entity_meta()
        if not _key_in_range(entity_id):
            return None
        row = await get_database_adapter().select_by_id(meta, entity_id)
        return _to_entity(meta, row) if row is not None else None

    async def get_by_id(self, entity_id: Any):
        """Like find_by_id, but raises EntityNotFoundException instead of returning None."""
        entity = await self.find_by_id(entity_id)
        if entity is None:
            raise EntityNotFoundException(self.__userbackend_entity__.__name__, entity_id)
        return entity

    async def exists_by_id(self, entity_id: Any) -> bool:
        if not _key_in_range(entity_id):
            return False
        return await get_database_adapter().exists_by_id(self._entity_meta(), entity_id)

    async def find_all(
        self,
        sort: Optional[Sort] = None,
        page: Optional[int] = None,
        size: Optional[int] = None,
    ) -> List[Any]:
        """
        Find all entities, ordered by primary key unless a sort is given.

        page/size apply LIMIT/OFFSET. A missing page means the first page and a
        missing size means the default page size.
        """
        meta = self._entity_meta()
        limit = offset = None
        if page is not None or size is not None:
            if size is None:
                pageable = Pageable(page=page or 0)
            else:
                pageable = Pageable(page=page or 0, size=size)
            limit, offset = pageable.size, pageable.offset

        rows = await get_database_adapter().select_all(meta, sort, limit, offset)
        return [_to_entity(meta, row) for row in rows]

    async def find_all_by_id(self, entity_ids: Iterable[Any]) -> List[Any]:
        meta = self._entity_meta()
        entity_ids = [i for i in entity_ids if _key_in_range(i)]
        rows = await get_database_adapter().select_by_ids(meta, entity_ids)
        return [_to_entity(meta, row) for row in rows]

    async def find_page(self, pageable: Optional[Pageable] = None) -> Page:
        pageable = pageable or Pageable()
        meta = self._entity_meta()
        adapter = get_database_adapter()

        total = await adapter.count(meta)
        if pageable.offset >= total:
            return Page([], pageable, total)

        rows = await adapter.select_all(meta, pageable.sort, pageable.size, pageable.offset)
        return Page([_to_entity(meta, row) for row in rows], pageable, total)

    async def count(self) -> int:
        return await get_database_adapter().count(self._entity_meta())

    async def delete_by_id(self, entity_id: Any) -> bool:
        """Delete by key. A missing key is not an error; returns whether a row went."""
        if not _key_in_range(entity_id):
            return False
        deleted = await get_database_adapter().delete_by_ids(self._entity_meta(), [entity_id])
        return deleted > 0

    async def delete(self, entity) -> bool:
        entity_id = getattr(entity, self._entity_meta().primary_key_field)
        if entity_id is None:
            return False
        return await self.delete_by_id(entity_id)

    async def delete_all_by_id(self, entity_ids: Iterable[Any]) -> int:
        entity_ids = [i for i in entity_ids if _key_in_range(i)]
        return await get_database_adapter().delete_by_ids(self._entity_meta(), entity_ids)

    async def delete_all(self, entities: Optional[Iterable[Any]] = None) -> int:
        """Delete the given entities, or every row when called without arguments."""
        meta = self._entity_meta()
        if entities is None:
            return await get_database_adapter().delete_all(meta)

        ids = [getattr(e, meta.primary_key_field) for e in entities]
        return await self.delete_all_by_id([i for i in ids if i is not None])

    def get_connection(self):
        """
        Async context manager yielding a SQLAlchemy AsyncConnection.

            async with self.get_connection() as conn:
                result = await conn.execute(select(...))
        """
        return get_database_adapter().get_connection()


_CRUD_METHODS: Dict[str, Any] = {
    name: member
    for name, member in vars(_CrudOperations).items()
    if callable(member) and not name.startswith("__")
}


def CrudRepository(entity: type):
    """
    Turn a class into a repository for ``entity``.

    Every generic operation (save, find_by_id, find_all, find_page, count,
    delete_by_id, ...) is attached unless the class defines its own.
    Async methods named find_by_*, count_by_*, exists_by_* or delete_by_*
    are replaced by derived queries:

        @CrudRepository(entity=User)
        class UserRepository:
            async def find_by_email(self, email: str) -> List[User]: ...
    """

    def decorator(cls):
        meta = get_entity_metadata(entity)
        cls.__userbackend_entity__ = entity
        cls.__userbackend_repository__ = True

        for name, member in list(vars(cls).items()):
            if name in _CRUD_METHODS or not inspect.iscoroutinefunction(member):
                continue
            if is_query_method(name):
                query = parse_query_method(name, meta.fields.keys())
                setattr(cls, name, _derived_query_method(query, member))

        for name, member in _CRUD_METHODS.items():
            if name not in vars(cls):
                setattr(cls, name, member)

        return cls

    return decorator


def _derived_query_method(query: Query, stub):
    signature = inspect.signature(stub)
    params = list(signature.parameters.values())[1:]
    query_params = [p.name for p in params if p.name not in _PAGING_PARAMETERS]

    if len(query_params) != query.arity:
        raise QueryException(
            f"{stub.__qualname__} takes {len(query_params)} query argument(s) "
            f"but its name implies {query.arity}"
        )

    @functools.wraps(stub)
    async def method(self, *args, **kwargs):
        try:
            bound = signature.bind(self, *args, **kwargs)
        except TypeError as e:
            raise QueryException(f"{stub.__qualname__}: {e}") from e
        bound.apply_defaults()

        arguments = bound.arguments
        meta = self._entity_meta()
        result = await get_database_adapter().execute_query(
            meta,
            query,
            [arguments[name] for name in query_params],
            limit=arguments.get("limit"),
            offset=arguments.get("offset"),
        )
        if query.operation == QueryOperation.FIND:
            return [_to_entity(meta, row) for row in result]
        return result

    return method


def _to_entity(meta: EntityMetadata, row: Dict[str, Any]):
    return meta.entity_class(**{name: row[name] for name in meta.fields if name in row})
