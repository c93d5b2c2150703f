"""
User Directory Module

Reconciles external (OIDC) identities with the local user directory.

Features:
- Lookup by external identity (provider, external login)
- User creation with default group membership
- Write policy deciding who owns identity attributes
- Activation / deactivation
"""

from .errors import (
    ConflictError,
    DirectoryError,
    NotFoundError,
    PolicyDeniedError,
    TransientStoreError,
)
from .groups import AssignmentResult, GroupAssignment
from .models import DirectoryUser, GroupDB, GroupMembershipDB, UserDB
from .policy import WritePolicyGate
from .repository import CreateResult, DirectoryRepository
from .router import UserApi, router

__all__ = [
    'ConflictError',
    'DirectoryError',
    'NotFoundError',
    'PolicyDeniedError',
    'TransientStoreError',
    'AssignmentResult',
    'GroupAssignment',
    'DirectoryUser',
    'GroupDB',
    'GroupMembershipDB',
    'UserDB',
    'WritePolicyGate',
    'CreateResult',
    'DirectoryRepository',
    'UserApi',
    'router',
]
