"""
userbackend - a REST backend for managing users.

Starlette for HTTP, async SQLAlchemy for persistence, layered YAML
configuration.
"""

from userbackend.config import get_config
from userbackend.data import (
    Column,
    CrudRepository,
    Entity,
    Field,
    Id,
    Page,
    Pageable,
    Sort,
)
from userbackend.domain import User
from userbackend.exceptions import (
    DataAccessException,
    DataIntegrityViolationException,
    EntityNotFoundException,
    RequestValidationException,
    UserBackendException,
)
from userbackend.repositories import UserRepository
from userbackend.web import ResponseEntity

__all__ = [
    "get_config",
    "Entity",
    "Id",
    "Column",
    "Field",
    "CrudRepository",
    "Sort",
    "Pageable",
    "Page",
    "User",
    "UserRepository",
    "ResponseEntity",
    "UserBackendException",
    "DataAccessException",
    "DataIntegrityViolationException",
    "EntityNotFoundException",
    "RequestValidationException",
]
