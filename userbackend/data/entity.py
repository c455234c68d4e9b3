import dataclasses
import re
import types
import typing
from typing import Dict, Optional, Tuple, Union

from userbackend.data.types import (
    EntityMetadata,
    FieldMetadata,
    get_marker_options,
    resolve_db_type,
)
from userbackend.exceptions import EntityException

_entity_registry: Dict[type, EntityMetadata] = {}


def Entity(table: Optional[str] = None):
    """
    Register a dataclass as a persistent entity.

    Must be applied on top of @dataclass:

        @Entity()
        @dataclass
        class User:
            id: int = Id()
            name: str = ""

    Args:
        table: Table name. Defaults to the snake_cased, pluralized class name.
    """

    def decorator(cls):
        if not dataclasses.is_dataclass(cls):
            raise EntityException(
                f"{cls.__name__} is not a dataclass. Apply @dataclass below @Entity()."
            )

        _entity_registry[cls] = _build_metadata(cls, table)
        return cls

    return decorator


def _build_metadata(cls, table: Optional[str]) -> EntityMetadata:
    hints = _resolve_type_hints(cls)
    dc_fields = dataclasses.fields(cls)

    explicit_pks = [
        f.name for f in dc_fields if get_marker_options(f).get("primary_key")
    ]
    if len(explicit_pks) > 1:
        raise EntityException(
            f"{cls.__name__} declares more than one primary key: {explicit_pks}"
        )

    fields: Dict[str, FieldMetadata] = {}
    for dc_field in dc_fields:
        options = get_marker_options(dc_field)
        python_type, optional = unwrap_optional(hints.get(dc_field.name, dc_field.type))

        is_pk = bool(options.get("primary_key")) or (
            not explicit_pks and dc_field.name == "id"
        )
        auto_increment = options.get("auto_increment", python_type is int) if is_pk else False

        max_length = options.get("max_length")
        db_type = options.get("db_type") or resolve_db_type(python_type, max_length)

        nullable = options.get("nullable", True)
        if is_pk:
            nullable = False
        elif optional and "nullable" not in options:
            nullable = True

        default = options.get("default")
        if default is None and dc_field.default is not dataclasses.MISSING:
            default = dc_field.default

        fields[dc_field.name] = FieldMetadata(
            name=dc_field.name,
            python_type=python_type,
            db_type=db_type,
            primary_key=is_pk,
            auto_increment=auto_increment,
            nullable=nullable,
            unique=options.get("unique", False),
            index=options.get("index", False),
            default=default,
            max_length=max_length,
            update_on_create=options.get("update_on_create", False),
            update_on_save=options.get("update_on_save", False),
        )

    pk_names = [name for name, meta in fields.items() if meta.primary_key]
    if not pk_names:
        raise EntityException(
            f"Entity {cls.__name__} must have a primary key. Use Id() or a field named 'id'."
        )

    return EntityMetadata(
        entity_class=cls,
        table_name=table or table_name_for(cls.__name__),
        fields=fields,
        primary_key_field=pk_names[0],
    )


def _resolve_type_hints(cls) -> Dict[str, type]:
    try:
        return typing.get_type_hints(cls)
    except (NameError, TypeError):
        # Locally declared types under postponed annotations cannot be resolved
        return {f.name: f.type for f in dataclasses.fields(cls)}


def unwrap_optional(annotation) -> Tuple[type, bool]:
    origin = typing.get_origin(annotation)
    union_types = (Union, getattr(types, "UnionType", Union))
    if origin in union_types:
        args = [a for a in typing.get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            return args[0], True
    return annotation, False


def table_name_for(class_name: str) -> str:
    """UserProfile -> user_profiles"""
    snake = re.sub(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])", "_", class_name)
    return _pluralize(snake.lower())


def _pluralize(word: str) -> str:
    if re.search(r"[^aeiou]y$", word):
        return word[:-1] + "ies"
    if re.search(r"(s|x|z|ch|sh)$", word):
        return word + "es"
    return word + "s"


def get_entity_metadata(entity_class: type) -> EntityMetadata:
    if entity_class not in _entity_registry:
        raise EntityException(f"{entity_class.__name__} is not a registered @Entity")
    return _entity_registry[entity_class]


def is_entity(cls) -> bool:
    return cls in _entity_registry


def get_all_entities() -> Dict[type, EntityMetadata]:
    return dict(_entity_registry)


def clear_entity_registry():
    _entity_registry.clear()
