"""
User Directory - Database Models

SQLAlchemy models for the directory tables shared with the host
application: ``users``, ``groups`` and the ``groups_users`` join table.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from sqlalchemy import Boolean, Column, ForeignKey, String, UniqueConstraint

from database import Base


class UserDB(Base):
    """
    User - one row per person known to the directory.

    The pair (external_identity_provider, external_login) identifies the
    row for an external identity.
    """
    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("external_identity_provider", "external_login", name="uniq_external_login"),
    )

    uuid = Column(String(40), primary_key=True)
    login = Column(String(255), nullable=False)
    name = Column(String(200))
    email = Column(String(100))
    external_login = Column(String(255), nullable=False)
    external_identity_provider = Column(String(100), nullable=False)
    external_id = Column(String(255), nullable=False)
    active = Column(Boolean, nullable=False, default=False)
    is_root = Column(Boolean, nullable=False, default=False)
    user_local = Column(Boolean, nullable=False, default=False)
    onboarded = Column(Boolean, nullable=False, default=False)
    reset_password = Column(Boolean, nullable=False, default=False)


class GroupDB(Base):
    """Group - read-only from the directory's point of view."""
    __tablename__ = "groups"

    uuid = Column(String(40), primary_key=True)
    name = Column(String(500), nullable=False, unique=True)


class GroupMembershipDB(Base):
    """Membership of a user in a group."""
    __tablename__ = "groups_users"

    group_uuid = Column(String(40), ForeignKey("groups.uuid"), primary_key=True)
    user_uuid = Column(String(40), ForeignKey("users.uuid"), primary_key=True)


@dataclass
class DirectoryUser:
    """User record as exposed by the API."""
    uuid: str
    login: str
    name: Optional[str]
    email: Optional[str]
    external_login: str
    external_provider: str
    external_id: str
    active: bool = False
    is_local: bool = False
    is_root: bool = False

    @classmethod
    def from_row(cls, row: UserDB) -> "DirectoryUser":
        return cls(
            uuid=row.uuid,
            login=row.login,
            name=row.name,
            email=row.email,
            external_login=row.external_login,
            external_provider=row.external_identity_provider,
            external_id=row.external_id,
            active=bool(row.active),
            is_local=bool(row.user_local),
            is_root=bool(row.is_root),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON response."""
        return {
            "uuid": self.uuid,
            "login": self.login,
            "name": self.name,
            "email": self.email,
            "external_login": self.external_login,
            "external_provider": self.external_provider,
            "external_id": self.external_id,
            "active": self.active,
            "is_local": self.is_local,
            "is_root": self.is_root,
        }
