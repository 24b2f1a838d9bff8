"""
Tests for group provisioning, joining and the orphan sweep

Covers:
1. CreateGroup writes the group and the owner membership
2. A failed membership transaction leaves an orphaned group
3. JoinGroup checks existence, code and membership atomically
4. Concurrent joins of the same user produce exactly one membership
5. The sweep removes only old groups without members
"""

import asyncio
from datetime import timedelta

import pytest

from commonground.groups import GroupManager
from database.db import Database
from database.models import utcnow
from database.store_memory import InMemoryEntityStore
from exceptions import (
    AlreadyMemberError,
    DatabaseError,
    GroupNotFoundError,
    GroupProvisioningError,
    InvalidGroupCodeError,
    TransactionConflictError,
)


class FailingCommitStore(InMemoryEntityStore):
    """In-memory store whose Nth commit raises"""

    def __init__(self, fail_on_commit: int):
        super().__init__()
        self.fail_on_commit = fail_on_commit
        self.commits = 0

    async def _commit(self, writes, read_versions):
        self.commits += 1
        if self.commits == self.fail_on_commit:
            raise DatabaseError("store unavailable")
        return await super()._commit(writes, read_versions)


class AlwaysConflictingStore(InMemoryEntityStore):
    """In-memory store that rejects every commit after the first n"""

    def __init__(self, allowed_commits: int):
        super().__init__()
        self.allowed_commits = allowed_commits
        self.commits = 0

    async def _commit(self, writes, read_versions):
        self.commits += 1
        if self.commits > self.allowed_commits:
            raise TransactionConflictError("simulated conflict")
        return await super()._commit(writes, read_versions)


@pytest.fixture
def manager(db):
    return GroupManager(db, join_max_retries=3, retry_backoff=0)


class TestCreateGroup:
    @pytest.mark.asyncio
    async def test_creates_group_and_owner(self, db, manager):
        group_id, group_code = await manager.create_group("owner-1", owner_alias="Ada", nickname="Book club")

        group = await db.groups.get_group(group_id)
        assert group.group_code == group_code
        assert group.owner_user_id == "owner-1"
        assert group.nickname == "Book club"
        assert group.version == "v1"

        members = await db.groups.get_members(group_id)
        assert [(m.user_id, m.role, m.alias) for m in members] == [("owner-1", "owner", "Ada")]

    @pytest.mark.asyncio
    async def test_defaults(self, db, manager):
        group_id, _ = await manager.create_group("owner-1")

        group = await db.groups.get_group(group_id)
        owner = await db.groups.get_member(group_id, "owner-1")
        assert group.nickname == "My Group"
        assert owner.alias == "Owner"

    @pytest.mark.asyncio
    async def test_each_group_gets_own_id(self, manager):
        first, _ = await manager.create_group("owner-1")
        second, _ = await manager.create_group("owner-1")
        assert first != second

    @pytest.mark.asyncio
    async def test_membership_failure_leaves_orphan(self):
        db = Database(FailingCommitStore(fail_on_commit=2))
        manager = GroupManager(db)

        with pytest.raises(GroupProvisioningError) as exc_info:
            await manager.create_group("owner-1")

        error = exc_info.value
        assert error.orphaned
        assert await db.groups.get_group(error.group_id) is not None
        assert await db.groups.get_members(error.group_id) == []

    @pytest.mark.asyncio
    async def test_group_failure_writes_nothing(self):
        store = FailingCommitStore(fail_on_commit=1)
        manager = GroupManager(Database(store))

        with pytest.raises(GroupProvisioningError) as exc_info:
            await manager.create_group("owner-1")

        assert not exc_info.value.orphaned
        assert len(store) == 0


class TestJoinGroup:
    @pytest.mark.asyncio
    async def test_join_adds_member(self, db, manager):
        group_id, code = await manager.create_group("owner-1")
        before = await db.groups.get_group(group_id)

        member = await manager.join_group(group_id, "u2", code, alias="Bo")

        assert member.role == "member"
        members = await db.groups.get_members(group_id)
        assert {m.user_id for m in members} == {"owner-1", "u2"}
        after = await db.groups.get_group(group_id)
        assert after.updated_at >= before.updated_at
        assert after.group_code == code

    @pytest.mark.asyncio
    async def test_default_alias(self, manager):
        group_id, code = await manager.create_group("owner-1")
        member = await manager.join_group(group_id, "u2", code)
        assert member.alias.startswith("Member #")

    @pytest.mark.asyncio
    async def test_unknown_group(self, manager):
        with pytest.raises(GroupNotFoundError, match="Group not found."):
            await manager.join_group("404", "u2", "ABCDEFGH")

    @pytest.mark.asyncio
    async def test_wrong_code(self, db, manager):
        group_id, code = await manager.create_group("owner-1")

        with pytest.raises(InvalidGroupCodeError, match="Invalid group code."):
            await manager.join_group(group_id, "u2", "not-the-code")

        assert await db.groups.get_member(group_id, "u2") is None

    @pytest.mark.asyncio
    async def test_owner_cannot_join_again(self, manager):
        group_id, code = await manager.create_group("owner-1")
        with pytest.raises(AlreadyMemberError):
            await manager.join_group(group_id, "owner-1", code)

    @pytest.mark.asyncio
    async def test_concurrent_joins_same_user_single_membership(self, db, manager):
        group_id, code = await manager.create_group("owner-1")

        results = await asyncio.gather(
            manager.join_group(group_id, "u2", code),
            manager.join_group(group_id, "u2", code),
            return_exceptions=True,
        )

        errors = [r for r in results if isinstance(r, Exception)]
        assert len(errors) == 1
        assert isinstance(errors[0], AlreadyMemberError)
        members = await db.groups.get_members(group_id)
        assert [m.user_id for m in members].count("u2") == 1

    @pytest.mark.asyncio
    async def test_concurrent_joins_different_users_all_succeed(self, db, manager):
        group_id, code = await manager.create_group("owner-1")

        await asyncio.gather(*[manager.join_group(group_id, f"u{i}", code) for i in range(3)])

        members = await db.groups.get_members(group_id)
        assert len(members) == 4

    @pytest.mark.asyncio
    async def test_conflicts_exhaust_retries(self):
        store = AlwaysConflictingStore(allowed_commits=2)
        manager = GroupManager(Database(store), join_max_retries=3, retry_backoff=0)
        group_id, code = await manager.create_group("owner-1")

        with pytest.raises(TransactionConflictError):
            await manager.join_group(group_id, "u2", code)

        assert store.commits == 2 + 3


class TestOrphanSweep:
    @pytest.mark.asyncio
    async def test_removes_old_empty_groups_only(self):
        db = Database(FailingCommitStore(fail_on_commit=2))
        manager = GroupManager(db)
        with pytest.raises(GroupProvisioningError) as exc_info:
            await manager.create_group("owner-1")
        orphan_id = exc_info.value.group_id
        healthy_id, _ = await manager.create_group("owner-2")

        removed = await manager.sweep_orphaned_groups(timedelta(minutes=5), now=utcnow() + timedelta(minutes=10))

        assert removed == [orphan_id]
        assert await db.groups.get_group(orphan_id) is None
        assert await db.groups.get_group(healthy_id) is not None

    @pytest.mark.asyncio
    async def test_grace_period_protects_new_groups(self):
        db = Database(FailingCommitStore(fail_on_commit=2))
        manager = GroupManager(db)
        with pytest.raises(GroupProvisioningError) as exc_info:
            await manager.create_group("owner-1")

        removed = await manager.sweep_orphaned_groups(timedelta(minutes=60))

        assert removed == []
        assert await db.groups.get_group(exc_info.value.group_id) is not None

    @pytest.mark.asyncio
    async def test_sweep_then_join_reports_not_found(self):
        db = Database(FailingCommitStore(fail_on_commit=2))
        manager = GroupManager(db, retry_backoff=0)
        with pytest.raises(GroupProvisioningError) as exc_info:
            await manager.create_group("owner-1")
        orphan_id = exc_info.value.group_id
        group = await db.groups.get_group(orphan_id)

        await manager.sweep_orphaned_groups(timedelta(0), now=utcnow() + timedelta(seconds=1))

        with pytest.raises(GroupNotFoundError):
            await manager.join_group(orphan_id, "u2", group.group_code)
