import dataclasses
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Any, Dict, List, Optional

from userbackend.exceptions import EntityException

# Key under which field markers store their options in dataclass metadata
FIELD_METADATA_KEY = "userbackend"

DEFAULT_STRING_LENGTH = 255

PYTHON_TO_DB_TYPE = {
    bool: "BOOLEAN",
    int: "INTEGER",
    float: "FLOAT",
    str: "VARCHAR",
    datetime: "TIMESTAMP",
    date: "DATE",
    time: "TIME",
    bytes: "BLOB",
}


@dataclass
class FieldMetadata:
    """Column-level description of one entity field."""

    name: str
    python_type: type
    db_type: str
    primary_key: bool = False
    auto_increment: bool = False
    nullable: bool = True
    unique: bool = False
    index: bool = False
    default: Any = None
    max_length: Optional[int] = None
    update_on_create: bool = False
    update_on_save: bool = False


@dataclass
class EntityMetadata:
    """Table-level description of an entity class."""

    entity_class: type
    table_name: str
    fields: Dict[str, FieldMetadata]
    primary_key_field: str

    def get_primary_key(self) -> FieldMetadata:
        return self.fields[self.primary_key_field]

    def get_field(self, name: str) -> FieldMetadata:
        if name not in self.fields:
            raise EntityException(
                f"Field '{name}' not found on entity {self.entity_class.__name__}"
            )
        return self.fields[name]

    def get_insertable_fields(self) -> List[str]:
        """Fields written on INSERT. A database-generated key is left out."""
        pk = self.get_primary_key()
        return [
            name
            for name in self.fields
            if not (name == pk.name and pk.auto_increment)
        ]

    def get_updatable_fields(self) -> List[str]:
        """Fields written on UPDATE: everything but the key and creation stamps."""
        return [
            name
            for name, meta in self.fields.items()
            if not meta.primary_key and not meta.update_on_create
        ]


def Id(auto_increment: bool = True):
    """
    Mark a dataclass field as the primary key.

    Example:
        id: int = Id()
    """
    return field(
        default=None,
        metadata={
            FIELD_METADATA_KEY: {
                "primary_key": True,
                "auto_increment": auto_increment,
                "nullable": False,
            }
        },
    )


def Column(
    unique: bool = False,
    nullable: bool = True,
    default: Any = None,
    index: bool = False,
    max_length: Optional[int] = None,
    db_type: Optional[str] = None,
):
    """
    Declare column constraints for a dataclass field.

    Example:
        email: str = Column(unique=True, nullable=False, default="")
    """
    options = {
        "unique": unique,
        "nullable": nullable,
        "default": default,
        "index": index,
        "max_length": max_length,
        "db_type": db_type,
    }
    if isinstance(default, (list, dict, set)):
        return field(
            default_factory=lambda: type(default)(default),
            metadata={FIELD_METADATA_KEY: options},
        )
    return field(default=default, metadata={FIELD_METADATA_KEY: options})


def Field(update_on_create: bool = False, update_on_save: bool = False):
    """
    Declare a timestamp field filled in by the repository.

    update_on_create: set once, when the row is inserted
    update_on_save: set on every save
    """
    return field(
        default=None,
        metadata={
            FIELD_METADATA_KEY: {
                "update_on_create": update_on_create,
                "update_on_save": update_on_save,
            }
        },
    )


def get_marker_options(dc_field: dataclasses.Field) -> Dict[str, Any]:
    return dict(dc_field.metadata.get(FIELD_METADATA_KEY, {}))


def resolve_db_type(python_type: type, max_length: Optional[int] = None) -> str:
    if python_type not in PYTHON_TO_DB_TYPE:
        raise EntityException(f"Unsupported field type: {python_type!r}")
    db_type = PYTHON_TO_DB_TYPE[python_type]
    if db_type == "VARCHAR":
        return f"VARCHAR({max_length or DEFAULT_STRING_LENGTH})"
    return db_type
