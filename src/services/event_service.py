from datetime import datetime, timezone

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.scoring import RankTier
from src.db.models.base import as_utc
from src.db.models.event import Event
from src.services.github_service import parse_repo_url

logger = structlog.get_logger()

EVENT_PATCH_FIELDS = frozenset(
    {"title", "description", "github_repo", "visible_ranks", "end_date", "active"}
)
RANK_NAMES = frozenset(tier.value for tier in RankTier)


def _validate_end_date(end_date: datetime) -> None:
    if as_utc(end_date) <= datetime.now(timezone.utc):
        raise ValueError("End date must be in the future")


def _validate_visible_ranks(visible_ranks: list[str]) -> None:
    unknown = set(visible_ranks) - RANK_NAMES
    if unknown:
        raise ValueError(f"Unknown ranks: {', '.join(sorted(unknown))}")


class EventService:
    """Service for managing events."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get_event(self, event_id: int) -> Event | None:
        return await self.db.get(Event, event_id)

    async def create_event(
        self,
        title: str,
        github_repo: str,
        end_date: datetime,
        visible_ranks: list[str],
        description: str | None = None,
        created_by: int | None = None,
    ) -> Event:
        _validate_end_date(end_date)
        _validate_visible_ranks(visible_ranks)
        parse_repo_url(github_repo)

        event = Event(
            title=title,
            description=description,
            github_repo=github_repo,
            visible_ranks=list(visible_ranks),
            end_date=end_date,
            created_by=created_by,
            active=True,
        )
        self.db.add(event)
        await self.db.flush()

        logger.info("Event created", event_id=event.id, title=title)
        return event

    async def update_event(self, event_id: int, **changes) -> Event | None:
        """Apply a sparse patch in one UPDATE statement."""
        unknown = set(changes) - EVENT_PATCH_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        event = await self.get_event(event_id)
        if not event:
            return None
        if not changes:
            return event

        if "end_date" in changes:
            _validate_end_date(changes["end_date"])
        if "visible_ranks" in changes:
            _validate_visible_ranks(changes["visible_ranks"])
        if "github_repo" in changes:
            parse_repo_url(changes["github_repo"])

        await self.db.execute(
            update(Event)
            .where(Event.id == event_id)
            .values(**changes)
            .execution_options(synchronize_session="fetch")
        )
        await self.db.flush()
        await self.db.refresh(event)

        logger.info("Event updated", event_id=event_id, fields=sorted(changes))
        return event

    async def deactivate(self, event_id: int) -> Event | None:
        event = await self.get_event(event_id)
        if not event:
            return None

        event.active = False
        await self.db.flush()
        logger.info("Event deactivated", event_id=event_id)
        return event

    async def list_for_rank(self, rank: str) -> list[Event]:
        """Active, running events open to the given rank."""
        result = await self.db.execute(
            select(Event)
            .where(
                Event.active.is_(True),
                Event.end_date > datetime.now(timezone.utc),
            )
            .order_by(Event.end_date.asc(), Event.id.asc())
        )
        # visible_ranks is a JSON list; membership is checked in Python
        return [event for event in result.scalars().all() if event.is_visible_to_rank(rank)]
