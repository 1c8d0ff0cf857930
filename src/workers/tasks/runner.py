import asyncio
import sys

import structlog

logger = structlog.get_logger()

# asyncpg does not work with the Proactor loop
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())


def run_async(coro):
    """Run async code in sync context."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        # Cancel anything the task left behind before closing the loop
        pending = asyncio.all_tasks(loop)
        for task in pending:
            task.cancel()
        results = loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
        for result in results:
            if isinstance(result, Exception) and not isinstance(result, asyncio.CancelledError):
                logger.warning("Pending task failed during shutdown", error=str(result))
        loop.close()
