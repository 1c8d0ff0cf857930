"""Score weights for event activities and user rankings.

Every constant that feeds a score lives here so the weights can be audited
and swapped in tests without touching the aggregation code.
"""

import math
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from enum import Enum


class ActivityType(str, Enum):
    FORK_CREATED = "fork_created"
    BRANCH_CREATED = "branch_created"
    COMMIT = "commit"
    PR_CREATED = "pr_created"
    PR_MERGED = "pr_merged"


class RankTier(str, Enum):
    CODE_NOVICE = "Code Novice"
    DEV_SAVAGE = "Dev Savage"
    FORGE_ELITE = "Forge Elite"
    TECH_MAESTRO = "Tech Maestro"
    FORGE_MASTER = "Forge Master"


# (tier, min, max) in ascending order, intervals are [min, max)
RANK_THRESHOLDS: tuple[tuple[RankTier, float, float], ...] = (
    (RankTier.CODE_NOVICE, 0.0, 20.0),
    (RankTier.DEV_SAVAGE, 20.0, 40.0),
    (RankTier.FORGE_ELITE, 40.0, 60.0),
    (RankTier.TECH_MAESTRO, 60.0, 80.0),
    (RankTier.FORGE_MASTER, 80.0, 100.0),
)


def rank_from_score(score: float) -> RankTier:
    """Map a composite score to its rank tier.

    The score is clamped to [0, 100] before lookup, so anything at or above
    100 lands in the top tier.
    """
    percentage = max(min(score, 100.0), 0.0)
    for tier, lower, upper in RANK_THRESHOLDS:
        if lower <= percentage < upper:
            return tier
    return RANK_THRESHOLDS[-1][0]


def round_half_up(value: float, ndigits: int = 0) -> float:
    """Round halves away from zero for positive values (2.5 -> 3, not 2)."""
    factor = 10**ndigits
    return math.floor(value * factor + 0.5) / factor


@dataclass(frozen=True)
class CappedBonus:
    per_unit: float
    cap: float

    def apply(self, units: int | float) -> float:
        if not units or units <= 0:
            return 0.0
        return min(units * self.per_unit, self.cap)


DEFAULT_ACTIVITY_POINTS: dict[str, int] = {
    ActivityType.FORK_CREATED.value: 5,
    ActivityType.BRANCH_CREATED.value: 3,
    ActivityType.COMMIT.value: 2,
    ActivityType.PR_CREATED.value: 10,
    ActivityType.PR_MERGED.value: 20,
}

ACTIVITY_DESCRIPTIONS: dict[str, str] = {
    ActivityType.FORK_CREATED.value: "Points for forking the event repository",
    ActivityType.BRANCH_CREATED.value: "Points for creating the event branch",
    ActivityType.COMMIT.value: "Base points per commit",
    ActivityType.PR_CREATED.value: "Points for opening a pull request",
    ActivityType.PR_MERGED.value: "Points for a merged pull request",
}


@dataclass(frozen=True)
class ActivityScoringTable:
    base_points: Mapping[str, float] = field(
        default_factory=lambda: dict(DEFAULT_ACTIVITY_POINTS)
    )
    lines_added: CappedBonus = CappedBonus(per_unit=0.1, cap=20)
    lines_deleted: CappedBonus = CappedBonus(per_unit=0.05, cap=10)
    files_changed: CappedBonus = CappedBonus(per_unit=0.5, cap=15)

    def base_for(self, activity_type: ActivityType | str) -> float:
        key = activity_type.value if isinstance(activity_type, ActivityType) else activity_type
        return self.base_points.get(key, 0)

    def with_base_points(self, overrides: Mapping[str, float]) -> "ActivityScoringTable":
        """Return a copy with some base points replaced."""
        return replace(self, base_points={**self.base_points, **overrides})

    def points_for(
        self,
        activity_type: ActivityType | str,
        lines_added: int = 0,
        lines_deleted: int = 0,
        files_changed: int = 0,
    ) -> int:
        raw = (
            self.base_for(activity_type)
            + self.lines_added.apply(lines_added)
            + self.lines_deleted.apply(lines_deleted)
            + self.files_changed.apply(files_changed)
        )
        return max(int(round_half_up(raw)), 0)


@dataclass(frozen=True)
class SubScoreRule:
    """Linear scale from a raw metric up to `cap`, reached at `scale`."""

    scale: float
    cap: float

    def apply(self, raw: int | float) -> float:
        return min((max(raw, 0) / self.scale) * self.cap, self.cap)


@dataclass(frozen=True)
class RankingWeights:
    github_stars: SubScoreRule = SubScoreRule(scale=50, cap=10)
    total_commits: SubScoreRule = SubScoreRule(scale=1000, cap=20)
    pull_requests: SubScoreRule = SubScoreRule(scale=100, cap=10)
    issues: SubScoreRule = SubScoreRule(scale=50, cap=5)
    recent_activity: SubScoreRule = SubScoreRule(scale=200, cap=10)
    proposals: SubScoreRule = SubScoreRule(scale=5, cap=30)
    contributions: SubScoreRule = SubScoreRule(scale=50, cap=20)
    # eventParticipation = participations term + event score term
    event_participations: SubScoreRule = SubScoreRule(scale=5, cap=6)
    event_score: SubScoreRule = SubScoreRule(scale=100, cap=6)
    # eventActivities = total activities term + recent activities term
    event_activities_total: SubScoreRule = SubScoreRule(scale=50, cap=3)
    event_activities_recent: SubScoreRule = SubScoreRule(scale=10, cap=2)

    @property
    def event_participation_cap(self) -> float:
        return self.event_participations.cap + self.event_score.cap

    @property
    def event_activities_cap(self) -> float:
        return self.event_activities_total.cap + self.event_activities_recent.cap


DEFAULT_ACTIVITY_SCORING = ActivityScoringTable()
DEFAULT_RANKING_WEIGHTS = RankingWeights()
