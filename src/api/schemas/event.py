from datetime import datetime

from pydantic import BaseModel


class ParticipationResponse(BaseModel):
    id: int
    event_id: int
    user_id: int
    github_fork_url: str | None
    branch_name: str
    participation_date: datetime
    is_active: bool
    total_commits: int
    total_prs: int
    lines_added: int
    lines_deleted: int
    score: int
    last_activity_date: datetime | None

    model_config = {"from_attributes": True}


class JoinEventRequest(BaseModel):
    user_id: int


class EventLeaderboardEntry(BaseModel):
    position: int
    participation_id: int
    user_id: int
    username: str
    display_name: str | None
    avatar_url: str | None
    user_rank: str
    score: int
    total_commits: int
    total_prs: int
    lines_added: int
    lines_deleted: int
    participation_date: datetime
    last_activity_date: datetime | None


class ActivityFeedEntry(BaseModel):
    id: int
    participation_id: int
    user_id: int
    username: str
    user_rank: str
    activity_type: str
    github_sha: str | None
    commit_message: str | None
    files_changed: int
    lines_added: int
    lines_deleted: int
    score_earned: int
    activity_date: datetime


class ActivityTypeStats(BaseModel):
    activity_type: str
    count: int
    total_score: int
    total_lines_added: int
    total_lines_deleted: int
    total_files_changed: int


class EventActivitySummary(BaseModel):
    event_id: int
    stats: list[ActivityTypeStats]
    recent_activities: list[ActivityFeedEntry]
    top_participants: list[EventLeaderboardEntry]


class ParticipationSyncResult(BaseModel):
    participation_id: int
    new_commits: int
    new_pull_requests: int
    new_merges: int


class SyncError(BaseModel):
    participation_id: int
    error: str


class SyncReportResponse(BaseModel):
    processed: int
    successful: int
    failed: int
    new_activities: int
    results: list[ParticipationSyncResult]
    errors: list[SyncError]
