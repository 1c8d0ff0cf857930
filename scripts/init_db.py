#!/usr/bin/env python
"""Initialize database with default data."""

import asyncio

from src.core.config import settings
from src.db.database import async_session_maker, init_db
from src.services.scoring_service import ScoringService


async def init_scoring_weights() -> None:
    """Store the default activity base points if none exist yet."""
    async with async_session_maker() as session:
        weights = await ScoringService(session).get_all_weights()
        await session.commit()
        print(f"Scoring weights ready: {len(weights)} activity types")


async def main() -> None:
    """Main initialization function."""
    print(f"Initializing database: {settings.database_url}")

    # Create tables
    await init_db()
    print("Database tables created")

    # Initialize default data
    await init_scoring_weights()

    print("Database initialization complete!")


if __name__ == "__main__":
    asyncio.run(main())
