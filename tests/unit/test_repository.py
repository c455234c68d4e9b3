"""
Unit tests for @CrudRepository and database operations.
"""

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import pytest
import pytest_asyncio

from userbackend.data import (
    Column,
    CrudRepository,
    Entity,
    Field,
    Id,
    Pageable,
    Sort,
    SQLAlchemyAdapter,
    get_entity_metadata,
    set_database_adapter,
)
from userbackend.exceptions import (
    DataIntegrityViolationException,
    EntityNotFoundException,
    QueryException,
)


@Entity(table="repo_members")
@dataclass
class Member:
    """Test entity for repository tests."""

    id: int = Id()
    name: str = ""
    email: str = Column(unique=True, default="")
    age: int = 0
    nickname: Optional[str] = None
    created_at: datetime = Field(update_on_create=True)
    updated_at: datetime = Field(update_on_save=True)


@CrudRepository(entity=Member)
class MemberRepository:
    """
    Test repository for Member.
    All CRUD methods are auto-implemented by @CrudRepository.
    """

    pass


@pytest_asyncio.fixture
async def repo():
    """In-memory SQLite database with the members table."""
    adapter = SQLAlchemyAdapter()
    await adapter.connect("sqlite+aiosqlite:///:memory:")
    set_database_adapter(adapter)
    await adapter.create_table_if_not_exists(get_entity_metadata(Member))

    yield MemberRepository()

    await adapter.disconnect()
    set_database_adapter(None)


async def _seed(repo, count: int):
    return await repo.save_all(
        Member(name=f"member{i:02d}", email=f"m{i}@example.com", age=20 + i)
        for i in range(count)
    )


class TestCrudOperations:
    """Tests for basic CRUD operations."""

    @pytest.mark.asyncio
    async def test_save_new_entity(self, repo):
        """Should save a new entity and generate ID."""
        saved = await repo.save(Member(name="Alice", email="alice@example.com", age=25))

        assert saved.id is not None
        assert saved.name == "Alice"
        assert saved.created_at is not None
        assert saved.updated_at is not None

    @pytest.mark.asyncio
    async def test_save_then_find_returns_equal_fields(self, repo):
        saved = await repo.save(
            Member(name="Bob", email="bob@example.com", age=31, nickname="bobby")
        )

        found = await repo.find_by_id(saved.id)
        assert found == saved

    @pytest.mark.asyncio
    async def test_save_update_keeps_id_and_created_at(self, repo):
        """Should update an existing entity in place."""
        saved = await repo.save(Member(name="Carol", email="carol@example.com"))
        original_id = saved.id
        original_created = saved.created_at

        saved.name = "Caroline"
        updated = await repo.save(saved)

        assert updated.id == original_id
        found = await repo.find_by_id(original_id)
        assert found.name == "Caroline"
        assert found.created_at == original_created
        assert found.updated_at >= original_created
        assert await repo.count() == 1

    @pytest.mark.asyncio
    async def test_save_with_unknown_id_inserts_with_that_id(self, repo):
        saved = await repo.save(Member(id=42, name="Dan", email="dan@example.com"))

        assert saved.id == 42
        assert (await repo.find_by_id(42)).name == "Dan"

    @pytest.mark.asyncio
    async def test_find_by_id_not_found(self, repo):
        """Should return None when entity not found."""
        assert await repo.find_by_id(99999) is None

    @pytest.mark.asyncio
    async def test_key_beyond_64_bits_matches_nothing(self, repo):
        saved = await repo.save(Member(name="Hal", email="hal@example.com"))
        huge = 2**70

        assert await repo.find_by_id(huge) is None
        assert await repo.exists_by_id(-huge) is False
        assert await repo.delete_by_id(huge) is False
        assert [m.id for m in await repo.find_all_by_id([huge, saved.id])] == [saved.id]
        assert await repo.delete_all_by_id([huge]) == 0
        assert await repo.count() == 1

    @pytest.mark.asyncio
    async def test_get_by_id_raises_when_missing(self, repo):
        with pytest.raises(EntityNotFoundException) as exc_info:
            await repo.get_by_id(7)

        assert str(exc_info.value) == "Member with id 7 not found"

    @pytest.mark.asyncio
    async def test_exists_by_id(self, repo):
        saved = await repo.save(Member(name="Eve", email="eve@example.com"))

        assert await repo.exists_by_id(saved.id) is True
        assert await repo.exists_by_id(saved.id + 1) is False

    @pytest.mark.asyncio
    async def test_find_all_orders_by_primary_key(self, repo):
        members = await _seed(repo, 3)

        found = await repo.find_all()
        assert [m.id for m in found] == [m.id for m in members]

    @pytest.mark.asyncio
    async def test_find_all_with_sort(self, repo):
        await _seed(repo, 3)

        found = await repo.find_all(sort=Sort.by("age").descending())
        assert [m.age for m in found] == [22, 21, 20]

    @pytest.mark.asyncio
    async def test_find_all_with_unknown_sort_property(self, repo):
        with pytest.raises(QueryException, match="No property 'salary'"):
            await repo.find_all(sort=Sort.by("salary"))

    @pytest.mark.asyncio
    async def test_find_all_with_page_and_size(self, repo):
        await _seed(repo, 5)

        found = await repo.find_all(page=1, size=2)
        assert [m.name for m in found] == ["member02", "member03"]

    @pytest.mark.asyncio
    @pytest.mark.asyncio
    async def test_find_all_with_only_page_or_size(self, repo):
        await _seed(repo, 25)

        second = await repo.find_all(page=1)
        assert [m.name for m in second] == ["member20", "member21", "member22", "member23", "member24"]

        first = await repo.find_all(size=3)
        assert [m.name for m in first] == ["member00", "member01", "member02"]

    @pytest.mark.asyncio
    async def test_find_all_rejects_invalid_paging(self, repo):
        with pytest.raises(ValueError):
            await repo.find_all(page=-1, size=2)
        with pytest.raises(ValueError):
            await repo.find_all(page=0, size=0)

    @pytest.mark.asyncio
    async def test_find_all_by_id(self, repo):
        members = await _seed(repo, 4)

        found = await repo.find_all_by_id([members[3].id, members[1].id, 999])
        assert [m.id for m in found] == [members[1].id, members[3].id]

    @pytest.mark.asyncio
    async def test_count(self, repo):
        assert await repo.count() == 0
        await _seed(repo, 3)
        assert await repo.count() == 3

    @pytest.mark.asyncio
    async def test_delete_by_id(self, repo):
        saved = await repo.save(Member(name="Frank", email="frank@example.com"))

        assert await repo.delete_by_id(saved.id) is True
        assert await repo.find_by_id(saved.id) is None

    @pytest.mark.asyncio
    async def test_delete_by_id_missing_returns_false(self, repo):
        assert await repo.delete_by_id(12345) is False

    @pytest.mark.asyncio
    async def test_delete_entity(self, repo):
        saved = await repo.save(Member(name="Gina", email="gina@example.com"))

        assert await repo.delete(saved) is True
        assert await repo.delete(Member(name="never saved")) is False

    @pytest.mark.asyncio
    async def test_delete_all_by_id(self, repo):
        members = await _seed(repo, 4)

        deleted = await repo.delete_all_by_id([members[0].id, members[2].id])
        assert deleted == 2
        assert await repo.count() == 2

    @pytest.mark.asyncio
    async def test_delete_all_entities(self, repo):
        members = await _seed(repo, 3)

        assert await repo.delete_all(members[:2]) == 2
        assert [m.id for m in await repo.find_all()] == [members[2].id]

    @pytest.mark.asyncio
    async def test_delete_all(self, repo):
        await _seed(repo, 3)

        assert await repo.delete_all() == 3
        assert await repo.count() == 0

    @pytest.mark.asyncio
    async def test_unique_violation_raises_integrity_error(self, repo):
        await repo.save(Member(name="Hal", email="hal@example.com"))

        with pytest.raises(DataIntegrityViolationException):
            await repo.save(Member(name="Hal 2", email="hal@example.com"))

    @pytest.mark.asyncio
    async def test_get_connection_runs_raw_sql(self, repo):
        from sqlalchemy import text

        await _seed(repo, 2)

        async with repo.get_connection() as conn:
            result = await conn.execute(text("SELECT COUNT(*) FROM repo_members"))
            assert result.scalar_one() == 2


class TestFindPage:
    """Tests for paged queries."""

    @pytest.mark.asyncio
    async def test_page_metadata(self, repo):
        await _seed(repo, 7)

        page = await repo.find_page(Pageable.of(0, 3))

        assert page.total_elements == 7
        assert page.total_pages == math.ceil(7 / 3)
        assert page.number_of_elements == 3
        assert page.is_first
        assert page.has_next

    @pytest.mark.asyncio
    async def test_pages_do_not_overlap_and_cover_everything(self, repo):
        members = await _seed(repo, 7)

        pageable = Pageable.of(0, 3, Sort.by("name"))
        seen = []
        while True:
            page = await repo.find_page(pageable)
            seen.extend(m.name for m in page)
            if not page.has_next:
                break
            pageable = pageable.next()

        assert seen == sorted(m.name for m in members)
        assert len(seen) == len(set(seen))

    @pytest.mark.asyncio
    async def test_page_beyond_end_is_empty(self, repo):
        await _seed(repo, 2)

        page = await repo.find_page(Pageable.of(5, 10))

        assert list(page) == []
        assert page.total_elements == 2
        assert page.is_last

    @pytest.mark.asyncio
    async def test_empty_table(self, repo):
        page = await repo.find_page()

        assert page.total_pages == 0
        assert page.number_of_elements == 0


class TestRepositoryDecoration:
    """Tests for what @CrudRepository attaches."""

    def test_generic_operations_attached(self):
        for name in (
            "save",
            "save_all",
            "find_by_id",
            "get_by_id",
            "exists_by_id",
            "find_all",
            "find_all_by_id",
            "find_page",
            "count",
            "delete_by_id",
            "delete",
            "delete_all_by_id",
            "delete_all",
            "get_connection",
        ):
            assert callable(getattr(MemberRepository, name)), name

    def test_repository_markers(self):
        assert MemberRepository.__userbackend_entity__ is Member
        assert MemberRepository.__userbackend_repository__ is True

    @pytest.mark.asyncio
    async def test_class_defined_method_is_kept(self, repo):
        @CrudRepository(entity=Member)
        class CountingRepository:
            async def count(self):
                return -1

        assert await CountingRepository().count() == -1

    @pytest.mark.asyncio
    async def test_operations_require_database(self):
        set_database_adapter(None)

        with pytest.raises(RuntimeError, match="Database not initialized"):
            await MemberRepository().count()
