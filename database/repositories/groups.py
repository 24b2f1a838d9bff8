"""
Group Repository - Groups and memberships

Groups are top-level entities with store-assigned ids; members are children
of their group, keyed by user id, so a (group, user) pair has at most one
membership record.
"""

from typing import List, Optional

from database.id_generation import GROUP_KIND, MEMBER_KIND, group_key, member_key
from database.models import Group, GroupMember
from database.repositories.base import BaseRepository
from database.store import Delete, Insert, StoreTransaction, Upsert


class GroupRepository(BaseRepository):
    """Async repository for groups and group members"""

    # ========== Group Operations ==========

    async def get_group(
        self, group_id: str, txn: Optional[StoreTransaction] = None
    ) -> Optional[Group]:
        """Get group by ID

        Args:
            group_id: Store-assigned group identifier
            txn: Read inside this transaction (records a commit precondition)

        Returns:
            Group or None if not found
        """
        entity = await self._get(group_key(group_id), txn=txn)
        return Group.from_entity(entity) if entity else None

    async def list_groups(self, txn: Optional[StoreTransaction] = None) -> List[Group]:
        entities = await self._query(GROUP_KIND, txn=txn)
        return [Group.from_entity(entity) for entity in entities]

    @staticmethod
    def group_insert(group: Group) -> Insert:
        """Insert for a new group; the key is incomplete unless group.id is set"""
        return Insert(group_key(group.id), group.to_data())

    @staticmethod
    def group_upsert(group: Group) -> Upsert:
        """Replace an existing group record (group.id must be set)"""
        return Upsert(group_key(group.id), group.to_data())

    @staticmethod
    def group_delete(group_id: str) -> Delete:
        return Delete(group_key(group_id))

    # ========== Member Operations ==========

    async def get_member(
        self, group_id: str, user_id: str, txn: Optional[StoreTransaction] = None
    ) -> Optional[GroupMember]:
        entity = await self._get(member_key(group_id, user_id), txn=txn)
        return GroupMember.from_entity(entity) if entity else None

    async def get_members(
        self, group_id: str, txn: Optional[StoreTransaction] = None
    ) -> List[GroupMember]:
        """Get all members of a group, [] if none (or no such group)"""
        entities = await self._query(MEMBER_KIND, group_key(group_id), txn=txn)
        return [GroupMember.from_entity(entity) for entity in entities]

    @staticmethod
    def member_insert(member: GroupMember) -> Insert:
        """Insert for a new membership; fails at commit if the group is gone
        or the user is already a member"""
        return Insert(
            member_key(member.group_id, member.user_id),
            member.to_data(),
            require_parent=True,
        )
