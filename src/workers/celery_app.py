from celery import Celery

from src.core.config import settings

celery_app = Celery(
    "devforge_ranking",
    broker=settings.celery_broker_url or str(settings.redis_url),
    backend=settings.celery_result_backend or str(settings.redis_url),
    include=[
        "src.workers.tasks.sync_tasks",
        "src.workers.tasks.ranking_tasks",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=settings.task_time_limit,
    task_soft_time_limit=settings.task_time_limit - 60,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
)

# Periodic tasks
celery_app.conf.beat_schedule = {
    "sync-event-activities": {
        "task": "src.workers.tasks.sync_tasks.sync_all_event_activities",
        "schedule": settings.activity_sync_interval_seconds,
    },
    "recalculate-all-rankings": {
        "task": "src.workers.tasks.ranking_tasks.recalculate_all_rankings",
        "schedule": settings.ranking_recalculation_interval_seconds,
    },
}
