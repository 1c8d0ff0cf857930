import structlog

from src.db.database import create_worker_session_maker
from src.services.activity_service import ActivityService
from src.services.scoring_service import ScoringService
from src.services.sync_service import ActivitySyncService
from src.workers.celery_app import celery_app
from src.workers.tasks.runner import run_async

logger = structlog.get_logger()


@celery_app.task
def sync_all_event_activities() -> dict:
    """Periodic task: sync every active participation in running events."""
    return run_async(_sync_activities_async())


@celery_app.task
def sync_event_activities(event_id: int) -> dict:
    """Sync the participants of one event."""
    return run_async(_sync_activities_async(event_id))


async def _sync_activities_async(event_id: int | None = None) -> dict:
    async with create_worker_session_maker()() as db:
        table = await ScoringService(db).get_activity_table()
        service = ActivitySyncService(db, activities=ActivityService(db, scoring=table))

        if event_id is None:
            report = await service.sync_all()
        else:
            report = await service.sync_event(event_id)
            if report is None:
                logger.error("Event not found", event_id=event_id)
                return {"status": "failed", "error": f"Event {event_id} not found"}

        await db.commit()
        return {"status": "completed", "event_id": event_id, **report.to_dict()}
