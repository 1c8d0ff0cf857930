import structlog
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models.user import User

logger = structlog.get_logger()

PROFILE_FIELDS = frozenset(
    {"display_name", "avatar_url", "bio", "wallet_address", "access_token"}
)


class UserService:
    """Service for user profiles.

    Rank, score and rank timestamp are owned by RankingService and cannot
    be changed here.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get_user(self, user_id: int) -> User | None:
        return await self.db.get(User, user_id)

    async def update_profile(self, user_id: int, **changes) -> User | None:
        """Apply a sparse patch in one UPDATE statement."""
        unknown = set(changes) - PROFILE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        user = await self.get_user(user_id)
        if not user:
            return None
        if not changes:
            return user

        await self.db.execute(
            update(User)
            .where(User.id == user_id)
            .values(**changes)
            .execution_options(synchronize_session="fetch")
        )
        await self.db.flush()
        await self.db.refresh(user)

        logger.info("User profile updated", user_id=user_id, fields=sorted(changes))
        return user
