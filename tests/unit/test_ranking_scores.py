import pytest

from src.core.scoring import DEFAULT_RANKING_WEIGHTS, RankTier, SubScoreRule, rank_from_score
from src.services.github_metrics import GitHubMetrics
from src.services.ranking_service import EventMetrics, PlatformMetrics, RankingService


@pytest.fixture
def service() -> RankingService:
    # Pure scoring does not touch the session
    return RankingService(db=None)


class TestRankFromScore:
    @pytest.mark.parametrize(
        "score,expected",
        [
            (0, RankTier.CODE_NOVICE),
            (19.999, RankTier.CODE_NOVICE),
            (20.0, RankTier.DEV_SAVAGE),
            (39.99, RankTier.DEV_SAVAGE),
            (40.0, RankTier.FORGE_ELITE),
            (60.0, RankTier.TECH_MAESTRO),
            (79.99, RankTier.TECH_MAESTRO),
            (80.0, RankTier.FORGE_MASTER),
            (100.0, RankTier.FORGE_MASTER),
            (150.0, RankTier.FORGE_MASTER),
            (-5.0, RankTier.CODE_NOVICE),
        ],
    )
    def test_boundaries(self, score, expected) -> None:
        assert rank_from_score(score) == expected


class TestSubScoreRule:
    def test_linear_until_cap(self) -> None:
        rule = SubScoreRule(scale=50, cap=10)
        assert rule.apply(0) == 0
        assert rule.apply(25) == pytest.approx(5)
        assert rule.apply(50) == pytest.approx(10)
        assert rule.apply(5000) == 10

    def test_never_negative(self) -> None:
        assert SubScoreRule(scale=50, cap=10).apply(-10) == 0

    def test_event_caps_combine_both_terms(self) -> None:
        assert DEFAULT_RANKING_WEIGHTS.event_participation_cap == 12
        assert DEFAULT_RANKING_WEIGHTS.event_activities_cap == 5


class TestScoreMetrics:
    def test_all_zero(self, service) -> None:
        result = service.score_metrics(GitHubMetrics(), PlatformMetrics(), EventMetrics())

        assert result.total_score == 0
        assert result.rank == RankTier.CODE_NOVICE.value
        assert set(result.breakdown) == {
            "github_stars",
            "total_commits",
            "pull_requests",
            "issues",
            "recent_activity",
            "proposals",
            "contributions",
            "event_participation",
            "event_activities",
        }

    def test_five_proposals_alone(self, service) -> None:
        result = service.score_metrics(
            GitHubMetrics(), PlatformMetrics(proposals=5), EventMetrics()
        )

        assert result.total_score == 30
        assert result.rank == RankTier.DEV_SAVAGE.value
        assert result.breakdown["proposals"] == {"score": 30, "cap": 30, "value": 5}

    def test_proposals_saturate(self, service) -> None:
        result = service.score_metrics(
            GitHubMetrics(), PlatformMetrics(proposals=12), EventMetrics()
        )
        assert result.breakdown["proposals"]["score"] == 30

    def test_total_is_not_renormalized(self, service) -> None:
        result = service.score_metrics(
            GitHubMetrics(
                stars=500, commits=5000, pull_requests=500, issues=500, recent_activity=500
            ),
            PlatformMetrics(proposals=10, contributions=100),
            EventMetrics(
                active_participations=10,
                total_score=1000,
                total_activities=100,
                recent_activities=20,
            ),
        )

        assert result.total_score == 122
        assert result.rank == RankTier.FORGE_MASTER.value

    def test_event_sub_terms(self, service) -> None:
        result = service.score_metrics(
            GitHubMetrics(),
            PlatformMetrics(),
            EventMetrics(
                active_participations=1,
                total_score=50,
                total_activities=25,
                recent_activities=5,
            ),
        )

        # 1/5*6 + 50/100*6 = 1.2 + 3.0
        assert result.breakdown["event_participation"]["score"] == pytest.approx(4.2)
        assert result.breakdown["event_participation"]["value"] == 1
        # 25/50*3 + 5/10*2 = 1.5 + 1.0
        assert result.breakdown["event_activities"]["score"] == pytest.approx(2.5)
        assert result.total_score == pytest.approx(6.7)

    def test_total_rounded_to_two_decimals(self, service) -> None:
        # 7 stars -> 1.4, 1 commit -> 0.02, 1 issue -> 0.1
        result = service.score_metrics(
            GitHubMetrics(stars=7, commits=1, issues=1), PlatformMetrics(), EventMetrics()
        )
        assert result.total_score == pytest.approx(1.52)
