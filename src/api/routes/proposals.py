from collections.abc import Awaitable
from typing import TypeVar

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

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
from src.db import get_db
from src.services.github_service import GitHubNotFoundError
from src.services.proposal_service import ProposalService

router = APIRouter()

T = TypeVar("T")


async def _collaborate(call: Awaitable[T | None]) -> T:
    """Await a collaboration call and map its failures to HTTP errors."""
    try:
        result = await call
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except PermissionError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except GitHubNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except httpx.HTTPError as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"GitHub request failed: {e}",
        )

    if result is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Proposal or user not found",
        )
    return result


@router.get(
    "/{proposal_id}/activity",
    response_model=ProposalActivityResponse,
    summary="Get proposal branches and pull requests",
)
async def get_proposal_activity(
    proposal_id: int,
    db: AsyncSession = Depends(get_db),
) -> ProposalActivityResponse:
    activity = await ProposalService(db).get_activity(proposal_id)
    if activity is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Proposal {proposal_id} not found",
        )
    return ProposalActivityResponse.model_validate(activity)


@router.post(
    "/{proposal_id}/collaborate/branch",
    response_model=CollaborationBranchResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a collaboration branch",
)
async def create_collaboration_branch(
    proposal_id: int,
    request: CollaborationRequest,
    db: AsyncSession = Depends(get_db),
) -> CollaborationBranchResponse:
    """Fork the proposal repository and branch in the collaborator's fork."""
    service = ProposalService(db)
    branch = await _collaborate(service.create_collaboration_branch(proposal_id, request.user_id))
    return CollaborationBranchResponse.model_validate(branch)


@router.post(
    "/{proposal_id}/collaborate/pull-request",
    response_model=PullRequestCreated,
    status_code=status.HTTP_201_CREATED,
    summary="Open a pull request from a collaboration branch",
)
async def create_pull_request(
    proposal_id: int,
    request: PullRequestCreate,
    db: AsyncSession = Depends(get_db),
) -> PullRequestCreated:
    service = ProposalService(db)
    pr = await _collaborate(
        service.create_pull_request(
            proposal_id,
            request.user_id,
            branch_name=request.branch_name,
            title=request.title,
            description=request.description,
        )
    )
    return PullRequestCreated.model_validate(pr)


@router.get(
    "/{proposal_id}/pull-requests",
    response_model=list[PullRequestSummary],
    summary="List open pull requests (owner only)",
)
async def list_pull_requests(
    proposal_id: int,
    user_id: int = Query(...),
    db: AsyncSession = Depends(get_db),
) -> list[PullRequestSummary]:
    service = ProposalService(db)
    pulls = await _collaborate(service.list_open_pull_requests(proposal_id, user_id))
    return [PullRequestSummary.model_validate(pr) for pr in pulls]


@router.post(
    "/{proposal_id}/merge",
    response_model=MergeResponse,
    summary="Merge a pull request (owner only)",
)
async def merge_pull_request(
    proposal_id: int,
    request: MergeRequest,
    db: AsyncSession = Depends(get_db),
) -> MergeResponse:
    service = ProposalService(db)
    result = await _collaborate(
        service.merge_pull_request(
            proposal_id,
            request.user_id,
            request.pull_request_number,
            merge_method=request.merge_method,
        )
    )
    return MergeResponse.model_validate(result)
