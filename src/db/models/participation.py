from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Text, func, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.db.models.base import Base, TimestampMixin


class EventParticipation(Base, TimestampMixin):
    __tablename__ = "event_participations"

    id: Mapped[int] = mapped_column(primary_key=True)
    event_id: Mapped[int] = mapped_column(
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    github_fork_url: Mapped[str | None] = mapped_column(Text)
    branch_name: Mapped[str] = mapped_column(String(255), nullable=False)
    participation_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Rollups, recomputed from event_activities
    total_commits: Mapped[int] = mapped_column(default=0)
    total_prs: Mapped[int] = mapped_column(default=0)
    lines_added: Mapped[int] = mapped_column(default=0)
    lines_deleted: Mapped[int] = mapped_column(default=0)
    score: Mapped[int] = mapped_column(default=0)

    # Sync watermark
    last_activity_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Relationships
    event = relationship("Event", back_populates="participations")
    user = relationship("User", back_populates="participations")
    activities = relationship(
        "EventActivity",
        back_populates="participation",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        # One active participation per (event, user); inactive rows are kept
        Index(
            "uq_event_participations_event_user_active",
            "event_id",
            "user_id",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
        Index("idx_event_participations_event_score", "event_id", "score"),
        Index("idx_event_participations_user", "user_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<EventParticipation event_id={self.event_id} user_id={self.user_id} "
            f"score={self.score}>"
        )
