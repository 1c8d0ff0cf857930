from src.api.schemas.event import (
    ActivityFeedEntry,
    EventActivitySummary,
    EventLeaderboardEntry,
    JoinEventRequest,
    ParticipationResponse,
    SyncReportResponse,
)
from src.api.schemas.proposal import (
    CollaborationBranchResponse,
    CollaborationRequest,
    MergeRequest,
    MergeResponse,
    ProposalActivityResponse,
    PullRequestCreate,
    PullRequestCreated,
    PullRequestSummary,
)
from src.api.schemas.ranking import (
    RankingCalculation,
    RankingLeaderboardResponse,
    RankingStats,
    RecalculationSummary,
    UserRanking,
)
from src.api.schemas.scoring import ScoringWeightCreate, ScoringWeightResponse

__all__ = [
    "ActivityFeedEntry",
    "EventActivitySummary",
    "EventLeaderboardEntry",
    "JoinEventRequest",
    "ParticipationResponse",
    "SyncReportResponse",
    "CollaborationBranchResponse",
    "CollaborationRequest",
    "MergeRequest",
    "MergeResponse",
    "ProposalActivityResponse",
    "PullRequestCreate",
    "PullRequestCreated",
    "PullRequestSummary",
    "RankingCalculation",
    "RankingLeaderboardResponse",
    "RankingStats",
    "RecalculationSummary",
    "UserRanking",
    "ScoringWeightCreate",
    "ScoringWeightResponse",
]
