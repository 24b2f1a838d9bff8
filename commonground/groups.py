"""Group provisioning and membership

CreateGroup is two transactions: the Group is inserted with a store-assigned
id, then the owner membership is inserted under that id. If the second
transaction fails the Group stays behind with zero members and the caller
gets GroupProvisioningError carrying the orphaned group id. Such groups are
removed by sweep_orphaned_groups() once older than the grace period.

JoinGroup is one transaction: read group, check code, check membership,
insert member. Write conflicts are retried a bounded number of times.
"""

import asyncio
import secrets
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from commonground.constants import (
    DEFAULT_GROUP_NICKNAME,
    DEFAULT_OWNER_ALIAS,
    DEFAULT_SURVEY_VERSION,
    MEMBER_ALIAS_RANGE,
)
from config import config, get_logger
from database.db import Database
from database.id_generation import generate_group_code
from database.models import Group, GroupMember, utcnow
from exceptions import (
    AlreadyMemberError,
    DatabaseError,
    DataIntegrityError,
    GroupNotFoundError,
    GroupProvisioningError,
    InvalidGroupCodeError,
    TransactionConflictError,
)

logger = get_logger(__name__).bind(component="group_manager")

JOIN_RETRY_BACKOFF_SECONDS = 0.05


def default_member_alias() -> str:
    return f"Member #{secrets.randbelow(MEMBER_ALIAS_RANGE)}"


class GroupManager:
    """Creates groups, joins members and cleans up orphaned groups"""

    def __init__(
        self,
        db: Database,
        join_max_retries: int = config.JOIN_MAX_RETRIES,
        retry_backoff: float = JOIN_RETRY_BACKOFF_SECONDS,
    ):
        self.db = db
        self.join_max_retries = join_max_retries
        self.retry_backoff = retry_backoff

    async def create_group(
        self,
        owner_user_id: str,
        owner_alias: Optional[str] = None,
        nickname: Optional[str] = None,
        version: Optional[str] = None,
    ) -> Tuple[str, str]:
        """Create a group and its owner membership

        Returns:
            (group_id, group_code)

        Raises:
            GroupProvisioningError: Either transaction failed. When the
                membership transaction failed, error.group_id names the
                orphaned group.
        """
        now = utcnow()
        group = Group(
            owner_user_id=owner_user_id,
            nickname=nickname or DEFAULT_GROUP_NICKNAME,
            version=version or DEFAULT_SURVEY_VERSION,
            group_code=generate_group_code(),
            created_at=now,
            updated_at=now,
        )

        # Transaction 1: the group; its id exists only after commit
        try:
            txn = await self.db.store.begin()
            txn.stage(self.db.groups.group_insert(group))
            keys = await txn.commit()
        except DatabaseError as e:
            logger.error("group insert failed", owner_user_id=owner_user_id, error=str(e))
            raise GroupProvisioningError(
                "Failed to create group", user_id=owner_user_id, original_error=e
            )
        group_id = keys[0].name

        # Transaction 2: the owner membership
        owner = GroupMember(
            group_id=group_id,
            user_id=owner_user_id,
            role="owner",
            alias=owner_alias or DEFAULT_OWNER_ALIAS,
            joined_at=now,
        )
        try:
            async with self.db.groups.transaction() as txn:
                txn.stage(self.db.groups.member_insert(owner))
        except DatabaseError as e:
            logger.error(
                "owner membership failed, group has no members",
                group_id=group_id,
                owner_user_id=owner_user_id,
                error=str(e),
            )
            raise GroupProvisioningError(
                "Failed to create owner membership",
                group_id=group_id,
                user_id=owner_user_id,
                original_error=e,
            )

        logger.info("group created", group_id=group_id, owner_user_id=owner_user_id, version=group.version)
        return group_id, group.group_code

    async def join_group(
        self,
        group_id: str,
        user_id: str,
        presented_code: str,
        alias: Optional[str] = None,
    ) -> GroupMember:
        """Add user_id to the group as a member

        Raises:
            GroupNotFoundError: No such group
            InvalidGroupCodeError: Code does not match
            AlreadyMemberError: user_id already holds a membership
            TransactionConflictError: Conflicts persisted through every retry
        """
        alias = alias or default_member_alias()

        attempt = 1
        while True:
            try:
                return await self._join_once(group_id, user_id, presented_code, alias)
            except TransactionConflictError:
                if attempt >= self.join_max_retries:
                    logger.error("join retries exhausted", group_id=group_id, user_id=user_id, attempts=attempt)
                    raise
                logger.warning("join conflict, retrying", group_id=group_id, user_id=user_id, attempt=attempt)
                await asyncio.sleep(self.retry_backoff * attempt)
                attempt += 1

    async def _join_once(self, group_id: str, user_id: str, presented_code: str, alias: str) -> GroupMember:
        groups = self.db.groups
        now = utcnow()

        try:
            async with groups.transaction() as txn:
                group = await groups.get_group(group_id, txn=txn)
                if group is None:
                    raise GroupNotFoundError("Group not found.", group_id=group_id, user_id=user_id)

                if presented_code != group.group_code:
                    raise InvalidGroupCodeError("Invalid group code.", group_id=group_id, user_id=user_id)

                existing = await groups.get_member(group_id, user_id, txn=txn)
                if existing is not None:
                    raise AlreadyMemberError(
                        "You are already a member of this group.", group_id=group_id, user_id=user_id
                    )

                member = GroupMember(
                    group_id=group_id,
                    user_id=user_id,
                    role="member",
                    alias=alias,
                    joined_at=now,
                )
                # updatedAt tracks membership changes
                touched = group.model_copy(update={"updated_at": now})
                txn.stage(groups.group_upsert(touched), groups.member_insert(member))
        except DataIntegrityError as e:
            if e.constraint == "insert_absent":
                raise AlreadyMemberError(
                    "You are already a member of this group.", group_id=group_id, user_id=user_id
                )
            raise

        logger.info("member joined group", group_id=group_id, user_id=user_id)
        return member

    async def sweep_orphaned_groups(
        self,
        grace_period: Optional[timedelta] = None,
        now: Optional[datetime] = None,
    ) -> List[str]:
        """Delete groups with zero members created before now - grace_period

        Each delete re-checks emptiness in its own transaction, so a group that
        gains a member meanwhile is kept.

        Returns:
            Ids of deleted groups
        """
        if grace_period is None:
            grace_period = timedelta(minutes=config.ORPHAN_GRACE_MINUTES)
        cutoff = (now or utcnow()) - grace_period

        groups = self.db.groups
        removed: List[str] = []

        for candidate in await groups.list_groups():
            if candidate.created_at > cutoff:
                continue

            try:
                async with groups.transaction() as txn:
                    group = await groups.get_group(candidate.id, txn=txn)
                    members = await groups.get_members(candidate.id, txn=txn)
                    if group is None or members:
                        continue
                    txn.stage(groups.group_delete(candidate.id))
            except TransactionConflictError as e:
                logger.warning("orphan sweep skipped group after conflict", group_id=candidate.id, error=str(e))
                continue

            removed.append(candidate.id)
            logger.info("removed orphaned group", group_id=candidate.id, created_at=candidate.created_at.isoformat())

        logger.info("orphan sweep finished", removed=len(removed), cutoff=cutoff.isoformat())
        return removed
