"""
User Directory - Repository

Typed operations on the ``users`` table, keyed by external identity
(provider, external login):

- find a user
- create a user (and link it to the default groups)
- update name / email / login
- activate / deactivate

Each operation acquires its own session and releases it on every exit
path. Store failures are re-raised as TransientStoreError with the login
that was being processed.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from config import Settings
from database import ConnectionProvider

from .errors import ConflictError, NotFoundError, TransientStoreError
from .groups import GroupAssignment
from .models import DirectoryUser, UserDB

logger = logging.getLogger(__name__)

# Errors raised while talking to the store
STORE_ERRORS = (SQLAlchemyError, OSError)


@dataclass
class CreateResult:
    """Result of a user creation."""
    uuid: str
    groups_linked: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        """User created but at least one default group could not be linked."""
        return bool(self.warnings)


class DirectoryRepository:
    """
    Identity directory backed by the relational store.

    Concurrent creates of the same external identity are arbitrated by the
    store's unique constraint only; the loser gets a ConflictError.
    """

    def __init__(
        self,
        connections: ConnectionProvider,
        group_assignment: GroupAssignment,
        strict_activation: bool = False
    ):
        self.connections = connections
        self.group_assignment = group_assignment
        self.strict_activation = strict_activation

    @classmethod
    def from_settings(cls, connections: ConnectionProvider, settings: Settings) -> "DirectoryRepository":
        return cls(
            connections,
            GroupAssignment(settings.default_groups_list),
            strict_activation=settings.STRICT_ACTIVATION,
        )

    # ==================== LOOKUP ====================

    async def find_by_external_identity(self, login: str, provider: str) -> Optional[DirectoryUser]:
        """
        Find a user by external login and provider.

        Returns the first match, or None when no user matches.
        """
        query = (
            select(UserDB)
            .where(UserDB.external_identity_provider == provider)
            .where(UserDB.external_login == login)
            .order_by(UserDB.uuid)
            .limit(1)
        )

        try:
            async with self.connections.session() as session:
                result = await session.execute(query)
                row = result.scalars().first()
                user = DirectoryUser.from_row(row) if row is not None else None
        except STORE_ERRORS as e:
            raise TransientStoreError(f"Error while finding user {login}", login=login) from e

        if user is None:
            logger.info(f"User '{login}' not found for provider {provider}")
        else:
            logger.info(f"User found: {user.login} ({user.uuid})")
        return user

    # ==================== CREATE ====================

    async def create_user(
        self,
        login: str,
        name: str,
        email: str,
        external_login: str,
        provider: str
    ) -> CreateResult:
        """
        Create an inactive, non-local, non-root user with a fresh uuid.

        The default group memberships are inserted in the same transaction.
        Failing to link a group does not undo the creation; it is reported
        through CreateResult.warnings.

        Raises:
            ConflictError: the external identity already exists
            TransientStoreError: the store could not be reached or failed
        """
        user_uuid = str(uuid.uuid4())
        statement = insert(UserDB.__table__).values(
            uuid=user_uuid,
            login=login,
            name=name,
            email=email,
            external_login=external_login,
            external_identity_provider=provider,
            external_id=external_login,
            active=False,
            is_root=False,
            user_local=False,
            onboarded=False,
            reset_password=False,
        )

        try:
            async with self.connections.session() as session:
                result = await session.execute(statement)
                if result.rowcount == 0:
                    raise ConflictError(f"Insert failed for {login}", login=login)

                assignment = await self.group_assignment.assign(session, user_uuid)
                await session.commit()
        except IntegrityError as e:
            raise ConflictError(
                f"User {external_login} already exists for provider {provider}", login=login
            ) from e
        except STORE_ERRORS as e:
            raise TransientStoreError(f"Error while creating user {login}", login=login) from e

        logger.info(f"User added successfully: {login} ({user_uuid})")
        if not assignment.complete:
            logger.warning(
                f"User {login} created without all default groups: "
                f"missing={assignment.missing}, failed={assignment.failed}"
            )

        return CreateResult(
            uuid=user_uuid,
            groups_linked=assignment.linked,
            warnings=assignment.warnings(),
        )

    # ==================== UPDATE ====================

    async def update_user(
        self,
        login: str,
        name: str,
        email: str,
        external_login: str,
        provider: str
    ):
        """
        Update name, email and login of the user matching (provider, external_login).

        Raises:
            NotFoundError: no user matches
            TransientStoreError: the store could not be reached or failed
        """
        statement = (
            update(UserDB)
            .where(UserDB.external_identity_provider == provider)
            .where(UserDB.external_login == external_login)
            .values(name=name, email=email, login=login)
            .execution_options(synchronize_session=False)
        )

        try:
            async with self.connections.session() as session:
                result = await session.execute(statement)
                if result.rowcount == 0:
                    raise NotFoundError(f"Record not found or update failed for {login}", login=login)
                await session.commit()
        except STORE_ERRORS as e:
            raise TransientStoreError(f"Error while updating user {login}", login=login) from e

        logger.info(f"Record updated successfully for {login}")

    # ==================== ACTIVATION ====================

    async def set_active(self, external_login: str, provider: str, is_active: bool):
        """
        Set the active flag of the user matching (provider, external_login).

        Setting a flag to its current value succeeds. An unknown user also
        succeeds unless strict activation is enabled, in which case
        NotFoundError is raised.
        """
        statement = (
            update(UserDB)
            .where(UserDB.external_identity_provider == provider)
            .where(UserDB.external_login == external_login)
            .values(active=is_active)
            .execution_options(synchronize_session=False)
        )

        try:
            async with self.connections.session() as session:
                result = await session.execute(statement)
                matched = result.rowcount
                if matched == 0 and self.strict_activation:
                    raise NotFoundError(f"User {external_login} not found", login=external_login)
                await session.commit()
        except STORE_ERRORS as e:
            raise TransientStoreError(
                f"Error while updating user {external_login}", login=external_login
            ) from e

        if matched == 0:
            logger.warning(f"No user {external_login} for provider {provider}; active flag unchanged")
        else:
            logger.info(f"User {external_login} active={is_active}")
