from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.core.scoring import RankTier
from src.db.models.base import Base, TimestampMixin


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    github_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    username: Mapped[str] = mapped_column(String(255), nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(255))
    avatar_url: Mapped[str | None] = mapped_column(Text)
    bio: Mapped[str] = mapped_column(Text, default="")
    wallet_address: Mapped[str] = mapped_column(String(255), default="")
    access_token: Mapped[str | None] = mapped_column(Text)

    # Ranking, written only by the ranking service
    rank: Mapped[str] = mapped_column(String(50), default=RankTier.CODE_NOVICE.value)
    total_score: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    last_rank_update: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Relationships
    participations = relationship(
        "EventParticipation",
        back_populates="user",
        cascade="all, delete-orphan",
    )
    proposals = relationship(
        "Proposal",
        back_populates="creator",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("idx_users_username", "username"),
        Index("idx_users_total_score", "total_score"),
    )

    @property
    def has_github_credential(self) -> bool:
        return bool(self.access_token)

    def __repr__(self) -> str:
        return f"<User {self.username} rank={self.rank}>"
