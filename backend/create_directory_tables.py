"""
Directory Tables Setup Script

Creates the directory tables for a standalone development database and
seeds the configured default groups:
- users
- groups
- groups_users

Against the host application's database the tables already exist; only
missing tables are created and existing groups are left untouched.

Run: python create_directory_tables.py
"""

import asyncio
import uuid
from typing import List, Sequence

from dotenv import load_dotenv
from sqlalchemy import select

from config import load_settings
from database import ConnectionProvider
from directory.models import GroupDB


async def seed_default_groups(connections: ConnectionProvider, names: Sequence[str]) -> List[str]:
    """Insert the groups that do not exist yet; returns the names created."""
    created = []
    async with connections.session() as session:
        result = await session.execute(select(GroupDB.name).where(GroupDB.name.in_(list(names))))
        existing = set(result.scalars().all())

        for name in names:
            if name in existing:
                continue
            session.add(GroupDB(uuid=str(uuid.uuid4()), name=name))
            created.append(name)

        await session.commit()
    return created


async def create_tables():
    settings = load_settings()
    connections = ConnectionProvider.from_settings(settings)

    try:
        await connections.create_schema()
        print("✓ Created users, groups, groups_users")

        created = await seed_default_groups(connections, settings.default_groups_list)
        for name in created:
            print(f"✓ Created group {name}")

        print("\n✅ Directory tables ready")
    finally:
        await connections.dispose()


if __name__ == "__main__":
    load_dotenv()
    asyncio.run(create_tables())
