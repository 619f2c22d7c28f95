"""
Database seed script.

Binds the configured storage backend and runs the idempotent seed.
Safe to run repeatedly; populated collections and an existing admin are left alone.

Usage:
    python -m scripts.seed_db
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from core.config import settings
from core.logging import configure_logging
from core.seed import SeedEngine
from core.storage import DataAccess


async def seed_database() -> None:
    """Initialize storage and seed empty collections."""
    configure_logging()

    data_access = DataAccess(settings)
    try:
        await data_access.initialize()
        print(f"Storage: {data_access.mode.value} (connected={data_access.connected})")

        report = await SeedEngine(data_access, settings).run()
        if report.skipped:
            print("Another seed run is in progress, nothing to do")
        else:
            print(f"Categories added: {report.categories}")
            print(f"Influencers added: {report.influencers}")
            print(f"Admin created: {report.admin_created}")
    finally:
        await data_access.close()


if __name__ == "__main__":
    asyncio.run(seed_database())
