from userbackend.config.properties import get_config
from userbackend.core.enums import DatabaseAdapter as DatabaseAdapterEnum
from userbackend.core.logging import get_logger
from userbackend.data.adapters.base import DatabaseAdapter
from userbackend.data.adapters.sqlalchemy import SQLAlchemyAdapter
from userbackend.data.entity import Entity, get_all_entities, get_entity_metadata, is_entity
from userbackend.data.pageable import Direction, Order, Page, Pageable, Sort
from userbackend.data.query import ComparisonOperator, QueryCondition, QueryOperation
from userbackend.data.query import Query as QueryObject
from userbackend.data.repository import (
    CrudRepository,
    get_database_adapter,
    set_database_adapter,
)
from userbackend.data.types import Column, EntityMetadata, Field, FieldMetadata, Id

logger = get_logger(__name__)


async def initialize_database(config=None):
    """
    Initialize the database adapter and create tables for entities.

    Reads the ``database.*`` configuration, connects, installs the adapter
    for repositories and creates a table for every registered entity.
    Returns None when no database URL is configured.
    """
    config = config or get_config()

    database_url = config.get("database.url")
    if not database_url:
        logger.warning("No database.url configured; repositories are unavailable")
        return None

    adapter_type = config.get("database.adapter", DatabaseAdapterEnum.SQLALCHEMY.value)
    if adapter_type == DatabaseAdapterEnum.SQLALCHEMY:
        database_adapter = SQLAlchemyAdapter()
    else:
        raise ValueError(f"Unknown database adapter: {adapter_type}")

    await database_adapter.connect(
        database_url,
        echo=config.get_bool("database.echo"),
        pool_size=config.get_int("database.pool.size"),
        max_overflow=config.get_int("database.pool.max_overflow"),
        pool_timeout=config.get_int("database.pool.timeout"),
        pool_recycle=config.get_int("database.pool.recycle"),
        enable_pooling=config.get_bool("database.pool.enabled", True),
    )

    set_database_adapter(database_adapter)

    for entity_meta in get_all_entities().values():
        await database_adapter.create_table_if_not_exists(entity_meta)

    return database_adapter


__all__ = [
    # Entity
    "Entity",
    "get_entity_metadata",
    "get_all_entities",
    "is_entity",
    # Field markers
    "Id",
    "Column",
    "Field",
    # Metadata
    "EntityMetadata",
    "FieldMetadata",
    # Paging
    "Sort",
    "Order",
    "Direction",
    "Pageable",
    "Page",
    # Repository
    "CrudRepository",
    "set_database_adapter",
    "get_database_adapter",
    # Derived queries
    "QueryObject",
    "QueryOperation",
    "QueryCondition",
    "ComparisonOperator",
    # Adapters
    "DatabaseAdapter",
    "SQLAlchemyAdapter",
    # Initialization
    "initialize_database",
]
