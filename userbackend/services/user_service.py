import re
from typing import List, Optional, Tuple

from userbackend.core.logging import get_logger
from userbackend.data import Page, Pageable, Sort
from userbackend.domain import User
from userbackend.exceptions import RequestValidationException
from userbackend.repositories import UserRepository

logger = get_logger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class UserService:
    """Service for user-related operations."""

    def __init__(self, user_repo: UserRepository):
        self.user_repo = user_repo

    async def get_all_users(self, sort: Optional[Sort] = None) -> List[User]:
        return await self.user_repo.find_all(sort=sort)

    async def get_users_page(self, pageable: Pageable) -> Page:
        return await self.user_repo.find_page(pageable)

    async def count_users(self) -> int:
        return await self.user_repo.count()

    async def get_user(self, user_id: int) -> Optional[User]:
        return await self.user_repo.find_by_id(user_id)

    async def create_user(self, name: str, email: str) -> User:
        name, email = self._validate(name, email)
        user = await self.user_repo.save(User(name=name, email=email))
        logger.info(f"Created user {user.id}")
        return user

    async def update_user(self, user_id: int, name: str, email: str) -> Optional[User]:
        """Replace name and email of an existing user. Returns None if it does not exist."""
        name, email = self._validate(name, email)

        user = await self.user_repo.find_by_id(user_id)
        if user is None:
            return None

        user.name = name
        user.email = email
        user = await self.user_repo.save(user)
        logger.info(f"Updated user {user_id}")
        return user

    async def delete_user(self, user_id: int) -> bool:
        deleted = await self.user_repo.delete_by_id(user_id)
        if deleted:
            logger.info(f"Deleted user {user_id}")
        return deleted

    @staticmethod
    def _validate(name: Optional[str], email: Optional[str]) -> Tuple[str, str]:
        name = (name or "").strip()
        email = (email or "").strip()

        if not name:
            raise RequestValidationException("name must not be blank")
        if not email:
            raise RequestValidationException("email must not be blank")
        if not EMAIL_PATTERN.match(email):
            raise RequestValidationException(f"email '{email}' is not a valid address")
        return name, email
