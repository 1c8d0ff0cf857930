#!/usr/bin/env python
"""Recompute every user's ranking from GitHub and platform data."""

import asyncio
import sys

from src.db.database import async_session_maker
from src.services.ranking_service import RankingService

# asyncpg does not work with the Proactor loop
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())


async def main() -> None:
    async with async_session_maker() as session:
        summary = await RankingService(session).recalculate_all()

    print(
        f"Processed {summary['processed']} users: "
        f"{summary['successful']} updated, {summary['failed']} failed"
    )
    for result in summary["results"]:
        if result["success"]:
            print(f"  {result['username']:<30} {result['total_score']:>7.2f}  {result['rank']}")
        else:
            print(f"  {result['username']:<30} FAILED: {result['error']}")


if __name__ == "__main__":
    asyncio.run(main())
