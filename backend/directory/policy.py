"""
User Directory - Write Policy

Decides whether local API callers may override identity attributes
(name, email, login) that the OIDC provider would otherwise manage.

| integration enabled | provider owns attributes | manual update |
|---------------------|--------------------------|---------------|
| no                  | any                      | allowed       |
| yes                 | no                       | allowed       |
| yes                 | yes                      | denied        |
"""

from dataclasses import dataclass
from typing import Optional

from config import Settings

from .errors import PolicyDeniedError


@dataclass(frozen=True)
class WritePolicyGate:
    provider_integration_enabled: bool
    provider_owns_identity_attributes: bool

    @classmethod
    def from_settings(cls, settings: Settings) -> "WritePolicyGate":
        return cls(
            provider_integration_enabled=settings.OIDC_ENABLED,
            provider_owns_identity_attributes=settings.OIDC_OWNS_IDENTITY_ATTRIBUTES,
        )

    def allows_manual_update(self) -> bool:
        return not (self.provider_integration_enabled and self.provider_owns_identity_attributes)

    def check_manual_update(self, login: Optional[str] = None):
        """Raise PolicyDeniedError when the provider owns identity attributes."""
        if not self.allows_manual_update():
            raise PolicyDeniedError(
                "Update not allowed: identity attributes are managed by the identity provider",
                login=login,
            )
