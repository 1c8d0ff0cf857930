from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class CollaborationRequest(BaseModel):
    user_id: int


class CollaborationBranchResponse(BaseModel):
    proposal_id: int
    branch_name: str
    fork_owner: str
    original_repo: str
    clone_url: str | None
    fork_url: str | None
    branch_url: str | None


class PullRequestCreate(BaseModel):
    user_id: int
    branch_name: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1, max_length=256)
    description: str | None = None


class PullRequestCreated(BaseModel):
    number: int
    url: str | None
    title: str
    head: str
    base: str


class PullRequestSummary(BaseModel):
    number: int
    title: str | None
    body: str | None
    head: str | None
    base: str | None
    author: str | None
    html_url: str | None
    created_at: datetime | None
    updated_at: datetime | None


class MergeRequest(BaseModel):
    user_id: int
    pull_request_number: int = Field(..., ge=1)
    merge_method: Literal["merge", "squash", "rebase"] = "merge"


class MergeResponse(BaseModel):
    merged: bool = False
    sha: str | None = None
    message: str | None = None


class ProposalActivityEntry(BaseModel):
    id: int
    user_id: int
    username: str
    activity_type: str
    branch_name: str | None
    pr_number: int | None
    activity_date: datetime


class ProposalActivityResponse(BaseModel):
    proposal_id: int
    branches: list[ProposalActivityEntry]
    pull_requests: list[ProposalActivityEntry]
