from abc import ABC, abstractmethod
from typing import Any, AsyncContextManager, Dict, Iterable, List, Optional, Sequence

from userbackend.data.pageable import Sort
from userbackend.data.query import Query
from userbackend.data.types import EntityMetadata


class DatabaseAdapter(ABC):
    """
    Storage backend used by @CrudRepository.

    Adapters work on plain column dicts; converting rows to entity instances
    is the repository's job.
    """

    @abstractmethod
    async def connect(self, url: str, **options):
        pass

    @abstractmethod
    async def disconnect(self):
        pass

    @abstractmethod
    def get_connection(self) -> AsyncContextManager[Any]:
        """Async context manager yielding a connection inside a transaction."""

    @abstractmethod
    async def create_table_if_not_exists(self, entity_meta: EntityMetadata):
        pass

    @abstractmethod
    async def insert(self, entity_meta: EntityMetadata, values: Dict[str, Any]) -> Any:
        """Insert one row and return its primary key."""

    @abstractmethod
    async def update(
        self, entity_meta: EntityMetadata, entity_id: Any, values: Dict[str, Any]
    ) -> int:
        """Update one row by key and return the number of rows matched."""

    @abstractmethod
    async def select_by_id(
        self, entity_meta: EntityMetadata, entity_id: Any
    ) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    async def select_by_ids(
        self, entity_meta: EntityMetadata, entity_ids: Iterable[Any]
    ) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    async def select_all(
        self,
        entity_meta: EntityMetadata,
        sort: Optional[Sort] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    async def count(self, entity_meta: EntityMetadata) -> int:
        pass

    @abstractmethod
    async def exists_by_id(self, entity_meta: EntityMetadata, entity_id: Any) -> bool:
        pass

    @abstractmethod
    async def delete_by_ids(
        self, entity_meta: EntityMetadata, entity_ids: Iterable[Any]
    ) -> int:
        pass

    @abstractmethod
    async def delete_all(self, entity_meta: EntityMetadata) -> int:
        pass

    @abstractmethod
    async def execute_query(
        self,
        entity_meta: EntityMetadata,
        query: Query,
        args: Sequence[Any],
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> Any:
        """
        Run a derived query.

        Returns a list of column dicts for FIND, an int for COUNT and DELETE,
        and a bool for EXISTS.
        """
