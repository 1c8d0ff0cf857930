import structlog

from src.db.database import create_worker_session_maker
from src.services.ranking_service import RankingService
from src.workers.celery_app import celery_app
from src.workers.tasks.runner import run_async

logger = structlog.get_logger()


@celery_app.task
def recalculate_all_rankings() -> dict:
    """
    Recompute the ranking of every user.

    Users are processed one at a time and each is committed on its own, so
    a failure only affects that user.
    """
    return run_async(_recalculate_all_rankings_async())


async def _recalculate_all_rankings_async() -> dict:
    async with create_worker_session_maker()() as db:
        summary = await RankingService(db).recalculate_all()
        return {"status": "completed", **summary}


@celery_app.task
def recalculate_user_ranking(user_id: int) -> dict:
    """Recompute and store one user's ranking."""
    return run_async(_recalculate_user_ranking_async(user_id))


async def _recalculate_user_ranking_async(user_id: int) -> dict:
    async with create_worker_session_maker()() as db:
        ranking = await RankingService(db).recompute_user(user_id)
        if ranking is None:
            logger.error("User not found", user_id=user_id)
            return {"status": "failed", "error": f"User {user_id} not found"}

        await db.commit()
        return {"status": "completed", **ranking}
