import httpx
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.schemas.event import (
    ActivityFeedEntry,
    EventActivitySummary,
    EventLeaderboardEntry,
    JoinEventRequest,
    ParticipationResponse,
    SyncReportResponse,
)
from src.db import get_db
from src.services.activity_service import ActivityService
from src.services.event_service import EventService
from src.services.github_service import GitHubNotFoundError
from src.services.participation_service import ParticipationService
from src.services.scoring_service import ScoringService
from src.services.sync_service import ActivitySyncService

router = APIRouter()


async def _activity_service(db: AsyncSession) -> ActivityService:
    table = await ScoringService(db).get_activity_table()
    return ActivityService(db, scoring=table)


async def _require_event(db: AsyncSession, event_id: int) -> None:
    if await EventService(db).get_event(event_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Event {event_id} not found",
        )


@router.post(
    "/{event_id}/sync",
    response_model=SyncReportResponse,
    summary="Sync participants' GitHub activity",
)
async def sync_event_activities(
    event_id: int,
    db: AsyncSession = Depends(get_db),
) -> SyncReportResponse:
    """Pull new commits and pull requests for every active participant."""
    service = ActivitySyncService(db, activities=await _activity_service(db))
    report = await service.sync_event(event_id)
    if report is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Event {event_id} not found",
        )
    return SyncReportResponse.model_validate(report.to_dict())


@router.post(
    "/{event_id}/participants",
    response_model=ParticipationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Join an event",
)
async def join_event(
    event_id: int,
    request: JoinEventRequest,
    db: AsyncSession = Depends(get_db),
) -> ParticipationResponse:
    """Fork the event repository, create the event branch and start tracking."""
    service = ParticipationService(db, activities=await _activity_service(db))
    try:
        participation = await service.join_event(event_id, request.user_id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except PermissionError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except GitHubNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except httpx.HTTPError as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"GitHub request failed: {e}",
        )

    if participation is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Event or user not found",
        )
    return ParticipationResponse.model_validate(participation)


@router.delete(
    "/{event_id}/participants/{user_id}",
    response_model=ParticipationResponse,
    summary="Leave an event",
)
async def leave_event(
    event_id: int,
    user_id: int,
    db: AsyncSession = Depends(get_db),
) -> ParticipationResponse:
    service = ParticipationService(db)
    participation = await service.leave_event(event_id, user_id)
    if participation is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"User {user_id} is not participating in event {event_id}",
        )
    return ParticipationResponse.model_validate(participation)


@router.get(
    "/{event_id}/leaderboard",
    response_model=list[EventLeaderboardEntry],
    summary="Get event leaderboard",
)
async def get_event_leaderboard(
    event_id: int,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
) -> list[EventLeaderboardEntry]:
    await _require_event(db, event_id)
    service = ParticipationService(db)
    entries = await service.get_event_leaderboard(event_id, limit=limit, offset=offset)
    return [EventLeaderboardEntry.model_validate(e) for e in entries]


@router.get(
    "/{event_id}/activities",
    response_model=list[ActivityFeedEntry],
    summary="Get recent event activity",
)
async def get_event_activities(
    event_id: int,
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
) -> list[ActivityFeedEntry]:
    await _require_event(db, event_id)
    service = ActivityService(db)
    activities = await service.get_recent_activities(event_id, limit=limit)
    return [ActivityFeedEntry.model_validate(a) for a in activities]


@router.get(
    "/{event_id}/summary",
    response_model=EventActivitySummary,
    summary="Get event activity summary",
)
async def get_event_summary(
    event_id: int,
    db: AsyncSession = Depends(get_db),
) -> EventActivitySummary:
    """Per-type stats, the latest activities and the top participants."""
    service = ActivitySyncService(db)
    summary = await service.get_event_activity_summary(event_id)
    if summary is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Event {event_id} not found",
        )
    return EventActivitySummary.model_validate(summary)
