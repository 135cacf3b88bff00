"""
DAO Governance - DAO Routes
DAO-level governance endpoints.

Provides:
- Member voting power lookup and recalculation
- Quorum threshold calculation
- Execution queue status
- Treasury balances
"""

from fastapi import APIRouter, Query
from pydantic import BaseModel

from daogov.api.dependencies import (
    CallerIdDep,
    ExecutionQueueDep,
    TreasuryServiceDep,
    VotingWeightDep,
)
from daogov.models.execution import QueueStatus
from daogov.models.governance import MemberVotingPower, QuorumThreshold
from daogov.models.treasury import TreasuryBalance

router = APIRouter()


class VotingPowerListResponse(BaseModel):
    dao_id: str
    members: list[MemberVotingPower]
    total_voting_power: int


class TreasuryBalanceResponse(BaseModel):
    dao_id: str
    balances: list[TreasuryBalance]


# =============================================================================
# Voting Power
# =============================================================================

@router.get(
    "/daos/{dao_id}/members/{member_id}/voting-power",
    response_model=MemberVotingPower,
)
async def get_member_voting_power(
    dao_id: str,
    member_id: str,
    resolver: VotingWeightDep,
    caller_id: CallerIdDep,
) -> MemberVotingPower:
    return (await resolver.get_member_voting_power(dao_id, member_id)).unwrap()


@router.post("/daos/{dao_id}/voting-power/recalculate", response_model=VotingPowerListResponse)
async def recalculate_voting_power(
    dao_id: str,
    resolver: VotingWeightDep,
    caller_id: CallerIdDep,
) -> VotingPowerListResponse:
    """
    Recompute role-based voting power for every active member (admin only).

    CHAIR holds 51, ADMIN 19, and plain members share 30 evenly.
    """
    powers = (await resolver.update_dao_voting_powers(dao_id, caller_id)).unwrap()
    return VotingPowerListResponse(
        dao_id=dao_id,
        members=powers,
        total_voting_power=sum(p.voting_power for p in powers),
    )


@router.get("/daos/{dao_id}/quorum-threshold", response_model=QuorumThreshold)
async def get_quorum_threshold(
    dao_id: str,
    resolver: VotingWeightDep,
    caller_id: CallerIdDep,
    percentage: float = Query(default=50.0, ge=0, le=100),
) -> QuorumThreshold:
    """Voting power needed to reach ``percentage``% of the DAO's active power."""
    return await resolver.quorum_threshold(dao_id, percentage)


# =============================================================================
# Execution Queue
# =============================================================================

@router.get("/daos/{dao_id}/execution-queue", response_model=QueueStatus)
async def get_execution_queue(
    dao_id: str,
    queue: ExecutionQueueDep,
    caller_id: CallerIdDep,
) -> QueueStatus:
    return (await queue.queue_status_for(dao_id, caller_id)).unwrap()


# =============================================================================
# Treasury
# =============================================================================

@router.get("/daos/{dao_id}/treasury/balance", response_model=TreasuryBalanceResponse)
async def get_treasury_balance(
    dao_id: str,
    treasury: TreasuryServiceDep,
    caller_id: CallerIdDep,
) -> TreasuryBalanceResponse:
    return TreasuryBalanceResponse(
        dao_id=dao_id,
        balances=await treasury.get_dao_balance(dao_id),
    )
