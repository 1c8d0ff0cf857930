from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.db.models.base import Base, JSONType, TimestampMixin, as_utc


class Event(Base, TimestampMixin):
    __tablename__ = "events"

    id: Mapped[int] = mapped_column(primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    github_repo: Mapped[str] = mapped_column(String(500), nullable=False)
    visible_ranks: Mapped[list[str]] = mapped_column(JSONType, default=list)
    end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_by: Mapped[int | None] = mapped_column()  # Admin id
    active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Relationships
    participations = relationship(
        "EventParticipation",
        back_populates="event",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("idx_events_active_end_date", "active", "end_date"),
    )

    def is_visible_to_rank(self, rank: str) -> bool:
        return rank in (self.visible_ranks or [])

    def is_expired(self, now: datetime | None = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return as_utc(self.end_date) <= now

    def __repr__(self) -> str:
        return f"<Event {self.id} {self.title!r} active={self.active}>"
