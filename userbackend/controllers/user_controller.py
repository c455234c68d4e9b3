from typing import List, Optional

from userbackend.data import Pageable, Sort
from userbackend.dtos import UserDTO, UserRequest
from userbackend.exceptions import EntityNotFoundException
from userbackend.services import UserService
from userbackend.web import (
    DeleteMapping,
    GetMapping,
    PostMapping,
    PutMapping,
    ResponseEntity,
    RestController,
)


@RestController("/api/users")
class UserController:
    """REST API for managing users."""

    BASE_PATH = "/api/users"

    def __init__(self, user_service: UserService):
        self.user_service = user_service

    @GetMapping("")
    async def list_users(self, sort: Optional[List[str]] = None) -> List[UserDTO]:
        users = await self.user_service.get_all_users(Sort.parse(sort))
        return [UserDTO.from_entity(user) for user in users]

    @GetMapping("/page")
    async def list_users_page(
        self, page: int = 0, size: int = 20, sort: Optional[List[str]] = None
    ):
        pageable = Pageable.of(page, size, Sort.parse(sort))
        result = await self.user_service.get_users_page(pageable)
        return result.map(UserDTO.from_entity).to_dict()

    @GetMapping("/count")
    async def count_users(self):
        return {"count": await self.user_service.count_users()}

    @GetMapping("/{id}")
    async def get_user(self, id: int) -> UserDTO:
        user = await self.user_service.get_user(id)
        if user is None:
            raise EntityNotFoundException("User", id)
        return UserDTO.from_entity(user)

    @PostMapping("")
    async def create_user(self, body: UserRequest) -> ResponseEntity:
        user = await self.user_service.create_user(body.name, body.email)
        return ResponseEntity.created(
            UserDTO.from_entity(user),
            headers={"Location": f"{self.BASE_PATH}/{user.id}"},
        )

    @PutMapping("/{id}")
    async def update_user(self, id: int, body: UserRequest) -> UserDTO:
        user = await self.user_service.update_user(id, body.name, body.email)
        if user is None:
            raise EntityNotFoundException("User", id)
        return UserDTO.from_entity(user)

    @DeleteMapping("/{id}")
    async def delete_user(self, id: int) -> ResponseEntity:
        if not await self.user_service.delete_user(id):
            raise EntityNotFoundException("User", id)
        return ResponseEntity.no_content()
