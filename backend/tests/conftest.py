"""
Shared fixtures for the user directory tests.

Integration tests run against a throwaway SQLite database (aiosqlite)
created from the SQLAlchemy models.
"""

import pytest
import pytest_asyncio
from sqlalchemy import event

from config import Settings
from database import ConnectionProvider
from directory import DirectoryRepository
from create_directory_tables import seed_default_groups


def make_settings(**overrides) -> Settings:
    """Settings isolated from the environment and any .env file."""
    values = {
        "ENVIRONMENT": "testing",
        "DATABASE_URL": "sqlite+aiosqlite://",
        "LOG_LEVEL": "WARNING",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def enable_sqlite_savepoints(engine):
    """Let SQLAlchemy control BEGIN so SAVEPOINTs behave on SQLite."""

    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")


@pytest.fixture
def settings(tmp_path):
    return make_settings(DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'directory.db'}")


@pytest_asyncio.fixture
async def connections(settings):
    provider = ConnectionProvider.from_settings(settings)
    enable_sqlite_savepoints(provider.engine)
    await provider.create_schema()
    yield provider
    await provider.dispose()


@pytest_asyncio.fixture
async def seeded_connections(connections, settings):
    """Store with the default groups present."""
    await seed_default_groups(connections, settings.default_groups_list)
    return connections


@pytest.fixture
def repository(seeded_connections, settings):
    return DirectoryRepository.from_settings(seeded_connections, settings)
