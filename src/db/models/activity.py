from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.db.models.base import Base, JSONType, TimestampMixin


class EventActivity(Base, TimestampMixin):
    """One recorded unit of progress. Rows are never updated after insert."""

    __tablename__ = "event_activities"

    id: Mapped[int] = mapped_column(primary_key=True)
    participation_id: Mapped[int] = mapped_column(
        ForeignKey("event_participations.id", ondelete="CASCADE"),
        nullable=False,
    )
    event_id: Mapped[int] = mapped_column(
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    activity_type: Mapped[str] = mapped_column(String(50), nullable=False)  # ActivityType
    github_sha: Mapped[str | None] = mapped_column(String(255))  # SHA or PR number
    commit_message: Mapped[str | None] = mapped_column(Text)
    files_changed: Mapped[int] = mapped_column(default=0)
    lines_added: Mapped[int] = mapped_column(default=0)
    lines_deleted: Mapped[int] = mapped_column(default=0)
    score_earned: Mapped[int] = mapped_column(default=0)
    extra_data: Mapped[dict | None] = mapped_column(JSONType)
    activity_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Relationships
    participation = relationship("EventParticipation", back_populates="activities")
    user = relationship("User")

    __table_args__ = (
        Index(
            "uq_event_activities_participation_type_sha",
            "participation_id",
            "activity_type",
            "github_sha",
            unique=True,
        ),
        Index("idx_event_activities_event_date", "event_id", "activity_date"),
        Index("idx_event_activities_user", "user_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<EventActivity {self.activity_type} participation_id={self.participation_id} "
            f"score={self.score_earned}>"
        )
