"""
DAO Governance - Proposal Routes
Endpoints for the proposal workflow.

Provides:
- Proposal listing and lookup
- Proposal creation
- Voting
- Activation, cancellation, deletion and execution
- Threshold checks and execution cancellation
"""

from datetime import datetime

from fastapi import APIRouter, Query, status
from pydantic import BaseModel, Field

from daogov.api.dependencies import (
    CallerIdDep,
    ExecutionQueueDep,
    LifecycleDep,
    OptionalCallerDep,
    PaginationDep,
    VoteRecorderDep,
    VotingWeightDep,
)
from daogov.models.base import ProposalStatus
from daogov.models.execution import ExecutionTask
from daogov.models.governance import (
    DAOVote,
    ExecutionReceipt,
    ProposalCreate,
    ProposalView,
    ThresholdCheck,
    VoteCreate,
)

router = APIRouter()


# =============================================================================
# Response Models
# =============================================================================

class ProposalResponse(BaseModel):
    """Proposal with tallies and the caller's own vote."""

    id: str
    dao_id: str
    title: str
    description: str
    category: str
    proposer: str
    status: str
    requested_amount: float | None
    discussion: str | None
    attachments: list[str]
    quorum: float
    threshold: float
    start_time: datetime
    end_time: datetime
    votes_for: int
    votes_against: int
    votes_abstain: int
    total_votes: int
    for_percentage: float
    against_percentage: float
    vote_count: int
    my_vote: DAOVote | None = None
    executed_at: datetime | None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_view(cls, view: ProposalView) -> "ProposalResponse":
        p = view.proposal
        return cls(
            id=p.id,
            dao_id=p.dao_id,
            title=p.title,
            description=p.description,
            category=p.category,
            proposer=p.proposer,
            status=p.status,
            requested_amount=p.requested_amount,
            discussion=p.discussion,
            attachments=p.attachments,
            quorum=p.quorum,
            threshold=p.threshold,
            start_time=p.start_time,
            end_time=p.end_time,
            votes_for=p.votes_for,
            votes_against=p.votes_against,
            votes_abstain=p.votes_abstain,
            total_votes=p.total_votes,
            for_percentage=round(p.for_percentage, 2),
            against_percentage=round(p.against_percentage, 2),
            vote_count=view.vote_count,
            my_vote=view.my_vote,
            executed_at=p.executed_at,
            created_at=p.created_at,
            updated_at=p.updated_at,
        )


class ProposalListResponse(BaseModel):
    proposals: list[ProposalResponse]
    total: int
    page: int
    per_page: int
    total_pages: int


class DeletedResponse(BaseModel):
    id: str


class ExecutionCancelledResponse(BaseModel):
    message: str = Field(default="Execution cancelled")
    task: ExecutionTask


# =============================================================================
# Queries
# =============================================================================

@router.get("/daos/{dao_id}/proposals", response_model=ProposalListResponse)
async def list_proposals(
    dao_id: str,
    lifecycle: LifecycleDep,
    pagination: PaginationDep,
    caller_id: OptionalCallerDep,
    status_filter: ProposalStatus | None = Query(default=None, alias="status"),
    category: str | None = Query(default=None, max_length=50),
) -> ProposalListResponse:
    """List a DAO's proposals, newest first."""
    page = (
        await lifecycle.list_proposals(
            dao_id,
            status=status_filter,
            category=category.upper() if category else None,
            page=pagination.page,
            per_page=pagination.per_page,
            caller_id=caller_id,
        )
    ).unwrap()

    return ProposalListResponse(
        proposals=[ProposalResponse.from_view(v) for v in page.items],
        total=page.total,
        page=page.page,
        per_page=page.per_page,
        total_pages=page.total_pages,
    )


@router.get("/proposals/{proposal_id}", response_model=ProposalResponse)
async def get_proposal(
    proposal_id: str,
    lifecycle: LifecycleDep,
    caller_id: OptionalCallerDep,
) -> ProposalResponse:
    view = (await lifecycle.get_proposal(proposal_id, caller_id=caller_id)).unwrap()
    return ProposalResponse.from_view(view)


@router.get("/proposals/{proposal_id}/threshold", response_model=ThresholdCheck)
async def check_threshold(
    proposal_id: str,
    resolver: VotingWeightDep,
    caller_id: CallerIdDep,
) -> ThresholdCheck:
    """Evaluate quorum and approval threshold against current tallies."""
    return (await resolver.check_proposal_threshold(proposal_id)).unwrap()


# =============================================================================
# Commands
# =============================================================================

@router.post(
    "/daos/{dao_id}/proposals",
    response_model=ProposalResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_proposal(
    dao_id: str,
    data: ProposalCreate,
    lifecycle: LifecycleDep,
    caller_id: CallerIdDep,
) -> ProposalResponse:
    """
    Create a proposal.

    The proposal opens for voting immediately and runs for the DAO's voting
    period unless ``voting_period_days`` overrides it.
    """
    proposal = (await lifecycle.create_proposal(dao_id, caller_id, data)).unwrap()
    return ProposalResponse.from_view(ProposalView(proposal=proposal))


@router.post(
    "/proposals/{proposal_id}/vote",
    response_model=DAOVote,
    status_code=status.HTTP_201_CREATED,
)
async def cast_vote(
    proposal_id: str,
    data: VoteCreate,
    recorder: VoteRecorderDep,
    caller_id: CallerIdDep,
) -> DAOVote:
    """
    Cast a vote on a proposal.

    Vote weight is the member's stored voting power.
    """
    return (await recorder.cast_vote(proposal_id, caller_id, data)).unwrap()


@router.post("/proposals/{proposal_id}/activate", response_model=ProposalResponse)
async def activate_proposal(
    proposal_id: str,
    lifecycle: LifecycleDep,
    caller_id: CallerIdDep,
) -> ProposalResponse:
    proposal = (await lifecycle.activate_proposal(proposal_id, caller_id)).unwrap()
    return ProposalResponse.from_view(ProposalView(proposal=proposal))


@router.post("/proposals/{proposal_id}/cancel", response_model=ProposalResponse)
async def cancel_proposal(
    proposal_id: str,
    lifecycle: LifecycleDep,
    caller_id: CallerIdDep,
) -> ProposalResponse:
    proposal = (await lifecycle.cancel_proposal(proposal_id, caller_id)).unwrap()
    return ProposalResponse.from_view(ProposalView(proposal=proposal))


@router.delete("/proposals/{proposal_id}", response_model=DeletedResponse)
async def delete_proposal(
    proposal_id: str,
    lifecycle: LifecycleDep,
    caller_id: CallerIdDep,
) -> DeletedResponse:
    """Delete a proposal that has no votes."""
    deleted_id = (await lifecycle.delete_proposal(proposal_id, caller_id)).unwrap()
    return DeletedResponse(id=deleted_id)


@router.post("/proposals/{proposal_id}/execute", response_model=ExecutionReceipt)
async def execute_proposal(
    proposal_id: str,
    lifecycle: LifecycleDep,
    caller_id: CallerIdDep,
) -> ExecutionReceipt:
    """
    Queue a concluded proposal for execution (admin only).

    Runs the quorum/threshold check and the treasury funds check, then
    schedules execution behind the timelock.
    """
    return (await lifecycle.execute_proposal(proposal_id, caller_id)).unwrap()


@router.delete("/proposals/{proposal_id}/execution", response_model=ExecutionCancelledResponse)
async def cancel_execution(
    proposal_id: str,
    queue: ExecutionQueueDep,
    caller_id: CallerIdDep,
) -> ExecutionCancelledResponse:
    """Cancel a pending execution and the proposal with it (admin only)."""
    task = (await queue.cancel_execution(proposal_id, caller_id)).unwrap()
    return ExecutionCancelledResponse(task=task)
