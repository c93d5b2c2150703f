"""
User Directory - Configuration Management

Centralized configuration for the store connection, the OIDC write policy
and deployment settings.

Settings are loaded once at startup (see ``load_settings``) and handed
explicitly to the components that need them.
"""

import logging
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple
from urllib.parse import quote_plus

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


JDBC_POSTGRES_PREFIX = "jdbc:postgresql://"


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Uses pydantic-settings for validation and type coercion.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # ==================== ENVIRONMENT ====================
    ENVIRONMENT: str = Field(
        default="development",
        description="Runtime environment: development, staging, production"
    )
    DEBUG: bool = Field(
        default=False,
        description="Enable debug mode (auto-enabled in development)"
    )

    # ==================== DATABASE ====================
    DATABASE_URL: str = Field(
        default="",
        description="SQLAlchemy async connection URL"
    )
    POSTGRES_HOST: str = Field(default="")
    POSTGRES_PORT: int = Field(default=5432)
    POSTGRES_DB: str = Field(default="sonar")
    POSTGRES_USER: str = Field(default="")
    POSTGRES_PASSWORD: str = Field(default="")
    POSTGRES_SSLMODE: str = Field(default="")
    SONAR_PROPERTIES_PATH: str = Field(
        default="",
        description="Optional sonar.properties file holding sonar.jdbc.* entries"
    )

    DB_POOL_SIZE: int = Field(default=5, ge=1)
    DB_MAX_OVERFLOW: int = Field(default=10, ge=0)
    DB_POOL_TIMEOUT: int = Field(default=30, ge=1, description="Seconds to wait for a pooled connection")
    DB_ECHO: bool = Field(default=False)

    # ==================== IDENTITY PROVIDER ====================
    OIDC_ENABLED: bool = Field(
        default=False,
        description="Whether the OIDC provider integration is enabled"
    )
    OIDC_OWNS_IDENTITY_ATTRIBUTES: bool = Field(
        default=True,
        description="Provider overwrites name/email on every login; manual updates are refused"
    )
    DEFAULT_PROVIDER: str = Field(
        default="oidc",
        description="External identity provider name used when a request omits it"
    )
    DEFAULT_GROUPS: str = Field(
        default="sonar-users",
        description="Comma-separated group names every new user is linked to"
    )
    STRICT_ACTIVATION: bool = Field(
        default=False,
        description="Report activate/deactivate of an unknown user as an error"
    )

    # ==================== OBSERVABILITY ====================
    SENTRY_DSN: str = Field(
        default="",
        description="Sentry DSN for error tracking"
    )
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level: DEBUG, INFO, WARNING, ERROR"
    )

    # ==================== API ====================
    API_TITLE: str = Field(default="User Directory API")
    API_VERSION: str = Field(default="1.0.0")

    # ==================== COMPUTED PROPERTIES ====================

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT.lower() == "development"

    @property
    def debug_enabled(self) -> bool:
        """Enable debug in development or when explicitly set"""
        return self.DEBUG or self.is_development

    @property
    def default_groups_list(self) -> List[str]:
        """Default group names, in configured order, without blanks or duplicates."""
        groups: List[str] = []
        for name in self.DEFAULT_GROUPS.split(","):
            name = name.strip()
            if name and name not in groups:
                groups.append(name)
        return groups

    def validate_production_config(self) -> List[str]:
        """
        Validate configuration for production deployment.
        Returns list of validation errors.
        """
        errors = []

        try:
            url = self.get_database_url()
        except ValueError as e:
            errors.append(str(e))
            url = ""

        if self.is_production:
            if "localhost" in url.lower() or "127.0.0.1" in url:
                errors.append("DATABASE_URL cannot point to localhost in production")

            if url.startswith("sqlite"):
                errors.append("SQLite is not supported in production")

            if self.DEBUG:
                errors.append("DEBUG should be False in production")

        return errors

    def get_database_url(self) -> str:
        """
        Get the store connection URL.

        Priority:
        1. DATABASE_URL
        2. POSTGRES_* components
        3. sonar.jdbc.* entries of SONAR_PROPERTIES_PATH
        """
        if self.DATABASE_URL:
            return self.DATABASE_URL

        if self.POSTGRES_HOST and self.POSTGRES_USER:
            ssl = f"?ssl={self.POSTGRES_SSLMODE}" if self.POSTGRES_SSLMODE else ""
            return (
                f"postgresql+asyncpg://{quote_plus(self.POSTGRES_USER)}:{quote_plus(self.POSTGRES_PASSWORD)}"
                f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}{ssl}"
            )

        if self.SONAR_PROPERTIES_PATH:
            properties = read_properties_file(Path(self.SONAR_PROPERTIES_PATH))
            jdbc_url = properties.get("sonar.jdbc.url")
            if jdbc_url:
                return jdbc_to_sqlalchemy_url(
                    jdbc_url,
                    username=properties.get("sonar.jdbc.username", ""),
                    password=properties.get("sonar.jdbc.password", ""),
                )
            raise ValueError(f"sonar.jdbc.url missing from {self.SONAR_PROPERTIES_PATH}")

        raise ValueError(
            "No database configuration found. Set DATABASE_URL, POSTGRES_* or SONAR_PROPERTIES_PATH."
        )


# ==================== PROPERTIES FILES ====================

_PROPERTY_ESCAPES = {"t": "\t", "n": "\n", "r": "\r", "f": "\f"}


def _logical_lines(text: str) -> Iterator[str]:
    """Yield property lines with comments dropped and ``\\`` continuations joined."""
    pending: Optional[str] = None
    for raw_line in text.splitlines():
        line = raw_line.lstrip()
        if pending is None:
            if not line or line[0] in "#!":
                continue
            pending = ""
        # An odd number of trailing backslashes continues the line
        if (len(line) - len(line.rstrip("\\"))) % 2 == 1:
            pending += line[:-1]
            continue
        yield pending + line
        pending = None
    if pending:
        yield pending


def _split_property(line: str) -> Tuple[str, str]:
    """Split on the first unescaped ``=`` or ``:``."""
    i = 0
    while i < len(line):
        if line[i] == "\\":
            i += 2
            continue
        if line[i] in "=:":
            return line[:i], line[i + 1:]
        i += 1
    return line, ""


def _unescape(text: str) -> str:
    chars: List[str] = []
    i = 0
    while i < len(text):
        ch = text[i]
        if ch != "\\" or i + 1 == len(text):
            chars.append(ch)
            i += 1
            continue
        escaped = text[i + 1]
        if escaped == "u" and len(text) >= i + 6:
            chars.append(chr(int(text[i + 2:i + 6], 16)))
            i += 6
            continue
        chars.append(_PROPERTY_ESCAPES.get(escaped, escaped))
        i += 2
    return "".join(chars)


def read_properties_file(path: Path) -> Dict[str, str]:
    """
    Read a Java-style ``key=value`` properties file.

    Blank lines and lines starting with ``#`` or ``!`` are ignored; both
    ``=`` and ``:`` are accepted as separators. Backslash escapes
    (``\\:``, ``\\=``, ``\\\\``, ``\\uXXXX``) and line continuations are
    resolved, so ``jdbc\\:postgresql\\://db/sonar`` reads as a plain URL.
    """
    if not path.is_file():
        raise ValueError(f"Properties file not found: {path}")

    properties: Dict[str, str] = {}
    for line in _logical_lines(path.read_text(encoding="utf-8")):
        key, value = _split_property(line)
        properties[_unescape(key.strip())] = _unescape(value.strip())

    logger.info(f"Loaded {len(properties)} properties from {path}")
    return properties


def jdbc_to_sqlalchemy_url(jdbc_url: str, username: str = "", password: str = "") -> str:
    """
    Translate ``jdbc:postgresql://host:port/db?params`` into an asyncpg URL.

    JDBC query parameters are dropped except ``sslmode``, which asyncpg
    understands as ``ssl``.
    """
    if not jdbc_url.startswith(JDBC_POSTGRES_PREFIX):
        raise ValueError(f"Unsupported JDBC URL (only PostgreSQL is supported): {jdbc_url}")

    location, _, query = jdbc_url[len(JDBC_POSTGRES_PREFIX):].partition("?")

    credentials = ""
    if username:
        credentials = quote_plus(username)
        if password:
            credentials += f":{quote_plus(password)}"
        credentials += "@"

    ssl = ""
    for pair in query.split("&"):
        key, _, value = pair.partition("=")
        if key == "sslmode" and value:
            ssl = f"?ssl={value}"

    return f"postgresql+asyncpg://{credentials}{location}{ssl}"


def load_settings(**overrides) -> Settings:
    """
    Load settings once at startup.

    Raises ValueError in production when the configuration is invalid.
    """
    settings = Settings(**overrides)

    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"OIDC enabled: {settings.OIDC_ENABLED}, owns identity attributes: {settings.OIDC_OWNS_IDENTITY_ATTRIBUTES}")
    logger.info(f"Default groups: {settings.default_groups_list}")

    if settings.is_production:
        errors = settings.validate_production_config()
        if errors:
            for error in errors:
                logger.error(f"Configuration error: {error}")
            raise ValueError(f"Production configuration invalid: {', '.join(errors)}")

    return settings


# ==================== ENVIRONMENT VALIDATION ====================

def validate_environment(settings: Settings) -> dict:
    """
    Validate the loaded configuration.

    Returns a status dict with validation results.
    """
    status = {
        "valid": True,
        "environment": settings.ENVIRONMENT,
        "errors": [],
        "warnings": [],
    }

    errors = settings.validate_production_config()
    if errors:
        status["errors"].extend(errors)
        status["valid"] = False

    if not settings.SENTRY_DSN:
        status["warnings"].append("Error tracking disabled")

    if not settings.default_groups_list:
        status["warnings"].append("No default groups configured; new users will have no memberships")

    if not settings.DEFAULT_PROVIDER.strip():
        status["errors"].append("DEFAULT_PROVIDER cannot be empty")
        status["valid"] = False

    return status
