"""
User Directory - Errors

Failures raised by the repository and the write policy. A lookup miss on
find is not an error and is returned as ``None``.
"""

from typing import Optional


class DirectoryError(Exception):
    """Base class for directory failures."""

    def __init__(self, message: str, login: Optional[str] = None):
        super().__init__(message)
        self.login = login


class NotFoundError(DirectoryError):
    """No user matches the external identity of a write."""


class ConflictError(DirectoryError):
    """The external identity already exists."""


class PolicyDeniedError(DirectoryError):
    """Manual update refused because the provider owns identity attributes."""


class TransientStoreError(DirectoryError):
    """Connection or query failure; the original exception is the __cause__."""
