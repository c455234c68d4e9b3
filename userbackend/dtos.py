"""Data Transfer Objects for the users API."""

from dataclasses import dataclass
from typing import Optional

from userbackend.domain import User


@dataclass
class UserDTO:
    """Public user information (output)."""

    id: int
    name: str
    email: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_entity(cls, user: User) -> "UserDTO":
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            created_at=user.created_at.isoformat() if user.created_at else None,
            updated_at=user.updated_at.isoformat() if user.updated_at else None,
        )


@dataclass
class UserRequest:
    """Request to create or replace a user (input)."""

    name: str
    email: str
