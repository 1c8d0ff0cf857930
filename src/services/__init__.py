from src.services.activity_service import ActivityService
from src.services.event_service import EventService
from src.services.github_metrics import GitHubMetrics, GitHubMetricsProvider
from src.services.github_service import GitHubService
from src.services.participation_service import ParticipationService
from src.services.proposal_service import ProposalService
from src.services.ranking_service import RankingResult, RankingService
from src.services.scoring_service import ScoringService
from src.services.sync_service import ActivitySyncService, SyncReport, SyncTarget
from src.services.user_service import UserService

__all__ = [
    "ActivityService",
    "ActivitySyncService",
    "EventService",
    "GitHubMetrics",
    "GitHubMetricsProvider",
    "GitHubService",
    "ParticipationService",
    "ProposalService",
    "RankingResult",
    "RankingService",
    "ScoringService",
    "SyncReport",
    "SyncTarget",
    "UserService",
]
