from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.db.models.base import Base, JSONType, TimestampMixin


class ProposalActivity(Base, TimestampMixin):
    """A collaborator's branch, pull request or merge on a proposal."""

    __tablename__ = "proposal_activities"

    id: Mapped[int] = mapped_column(primary_key=True)
    proposal_id: Mapped[int] = mapped_column(
        ForeignKey("proposals.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    activity_type: Mapped[str] = mapped_column(String(50), nullable=False)  # ActivityType
    branch_name: Mapped[str | None] = mapped_column(String(255))
    pr_number: Mapped[int | None] = mapped_column()
    extra_data: Mapped[dict | None] = mapped_column(JSONType)
    activity_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Relationships
    proposal = relationship("Proposal", back_populates="activities")
    user = relationship("User")

    __table_args__ = (
        Index("idx_proposal_activities_proposal", "proposal_id", "activity_date"),
        Index("idx_proposal_activities_user_type", "user_id", "activity_type"),
    )

    def __repr__(self) -> str:
        return f"<ProposalActivity {self.activity_type} proposal_id={self.proposal_id}>"
