from enum import Enum

from sqlalchemy import ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.db.models.base import Base, TimestampMixin


class ProposalStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"  # At least one collaboration branch exists


class Proposal(Base, TimestampMixin):
    __tablename__ = "proposals"

    id: Mapped[int] = mapped_column(primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    repository_link: Mapped[str | None] = mapped_column(String(500))
    github_issue_link: Mapped[str | None] = mapped_column(String(500))
    branch_name: Mapped[str | None] = mapped_column(String(255))
    status: Mapped[str] = mapped_column(String(50), default=ProposalStatus.PENDING.value)
    created_by: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    # Relationships
    creator = relationship("User", back_populates="proposals")
    activities = relationship(
        "ProposalActivity",
        back_populates="proposal",
        cascade="all, delete-orphan",
    )

    __table_args__ = (Index("idx_proposals_created_by", "created_by"),)

    def __repr__(self) -> str:
        return f"<Proposal {self.title!r} by user_id={self.created_by}>"
