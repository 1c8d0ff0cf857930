from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel


class ScoreComponent(BaseModel):
    score: float
    cap: float
    value: int


class RankingCalculation(BaseModel):
    user_id: int
    username: str
    total_score: float
    rank: str
    breakdown: dict[str, ScoreComponent]


class UserRanking(BaseModel):
    user_id: int
    username: str
    rank: str
    total_score: Decimal
    last_rank_update: datetime | None


class RankingLeaderboardEntry(BaseModel):
    position: int
    user_id: int
    username: str
    display_name: str | None
    avatar_url: str | None
    rank: str
    total_score: Decimal
    last_rank_update: datetime | None


class RankingLeaderboardResponse(BaseModel):
    entries: list[RankingLeaderboardEntry]
    total: int
    page: int
    page_size: int


class RankingStats(BaseModel):
    total_users: int
    rank_distribution: dict[str, int]
    average_score: float
    top_score: float


class RecalculationResult(BaseModel):
    user_id: int
    username: str
    success: bool
    total_score: float | None = None
    rank: str | None = None
    error: str | None = None


class RecalculationSummary(BaseModel):
    processed: int
    successful: int
    failed: int
    results: list[RecalculationResult]
