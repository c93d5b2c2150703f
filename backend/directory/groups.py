"""
User Directory - Default Group Assignment

Links newly created users to the configured default groups. Group names
are matched exactly (case-sensitive); names that do not exist are skipped.

Each step runs inside a SAVEPOINT of the caller's session so that a failed
lookup or link never aborts the surrounding user creation.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from sqlalchemy import insert, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .models import GroupDB, GroupMembershipDB

logger = logging.getLogger(__name__)


@dataclass
class AssignmentResult:
    """Outcome of linking one user to the default groups."""
    linked: List[str] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.missing and not self.failed

    def warnings(self) -> List[str]:
        messages = [f"Default group '{name}' not found" for name in self.missing]
        messages.extend(f"Could not link default group '{name}'" for name in self.failed)
        return messages


class GroupAssignment:
    """Resolves default group names and inserts memberships."""

    def __init__(self, default_groups: Sequence[str]):
        self.default_groups = list(default_groups)

    async def resolve_groups(self, session: AsyncSession, names: Sequence[str]) -> Dict[str, str]:
        """Map each existing group name to its uuid."""
        if not names:
            return {}

        result = await session.execute(
            select(GroupDB.name, GroupDB.uuid).where(GroupDB.name.in_(list(names)))
        )
        # Exact comparison, whatever the column collation
        groups = {row.name: row.uuid for row in result if row.name in names}

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"Groups resolved: {groups}")
        return groups

    async def assign(self, session: AsyncSession, user_uuid: str) -> AssignmentResult:
        """
        Link the user to every resolvable default group.

        Never raises on store errors: failures are logged and reported in
        the returned AssignmentResult. The caller commits.
        """
        outcome = AssignmentResult()
        if not self.default_groups:
            return outcome

        try:
            async with session.begin_nested():
                groups = await self.resolve_groups(session, self.default_groups)
        except SQLAlchemyError as e:
            logger.error(f"Error while finding default groups for user {user_uuid}: {e}")
            outcome.failed.extend(self.default_groups)
            return outcome

        for name in self.default_groups:
            group_uuid = groups.get(name)
            if group_uuid is None:
                logger.warning(f"Default group '{name}' does not exist, skipped for user {user_uuid}")
                outcome.missing.append(name)
                continue

            try:
                async with session.begin_nested():
                    await session.execute(
                        insert(GroupMembershipDB.__table__).values(group_uuid=group_uuid, user_uuid=user_uuid)
                    )
            except SQLAlchemyError as e:
                logger.error(f"Error while adding group {group_uuid} for user {user_uuid}: {e}")
                outcome.failed.append(name)
                continue

            logger.info(f"Group {name} ({group_uuid}) added for user {user_uuid}")
            outcome.linked.append(name)

        return outcome
