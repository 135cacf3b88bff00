"""
Voting Weight Resolver

Computes member voting power and evaluates proposal outcomes.

Two different pass rules exist and both are intentional:

- ``majority_outcome`` is applied after every vote. More than 50% of the
  votes cast FOR closes voting as PASSED, more than 50% AGAINST closes it as
  FAILED. It ignores quorum and the proposal's threshold.
- ``evaluate`` is applied at execution time. The proposal passes only if
  quorum is reached and the FOR percentage is at least ``threshold``.

A proposal auto-closed as PASSED can therefore still fail at execution.
"""

from typing import Literal

import structlog

from daogov.config import Settings, get_settings
from daogov.models.base import ProposalStatus
from daogov.models.governance import (
    DAOMember,
    DAOProposal,
    MemberRole,
    MemberVotingPower,
    QuorumThreshold,
    ThresholdCheck,
)
from daogov.repositories.dao_repository import MemberRepository
from daogov.repositories.proposal_repository import ProposalRepository
from daogov.services.results import (
    ADMIN_ONLY_RECALCULATE,
    MEMBER_NOT_FOUND,
    PROPOSAL_NOT_FOUND,
    ErrorKind,
    GovernanceResult,
)

logger = structlog.get_logger(__name__)

# Fixed role weights; plain members share MEMBER_POOL evenly.
CHAIR_WEIGHT = 51
ADMIN_WEIGHT = 19
MEMBER_POOL = 30

AUTO_CLOSE_MAJORITY = 50.0


def majority_outcome(proposal: DAOProposal) -> ProposalStatus | None:
    """
    Auto-close decision on post-vote tallies.

    Returns PASSED or FAILED when one side holds strictly more than 50% of
    the votes cast, otherwise None.
    """
    if proposal.total_votes <= 0:
        return None
    if proposal.for_percentage > AUTO_CLOSE_MAJORITY:
        return ProposalStatus.PASSED
    if proposal.against_percentage > AUTO_CLOSE_MAJORITY:
        return ProposalStatus.FAILED
    return None


def evaluate(proposal: DAOProposal, required_quorum: float) -> ThresholdCheck:
    """Execution-time quorum and threshold check."""
    quorum_reached = proposal.total_votes >= required_quorum
    for_percentage = proposal.for_percentage
    return ThresholdCheck(
        passed=quorum_reached and for_percentage >= proposal.threshold,
        quorum_reached=quorum_reached,
        for_percentage=for_percentage,
        against_percentage=proposal.against_percentage,
        total_votes=proposal.total_votes,
        required_quorum=required_quorum,
        threshold=proposal.threshold,
    )


def calculate_voting_power(member: DAOMember, active_plain_members: int) -> int:
    """
    Role-based voting power.

    CHAIR 51, ADMIN 19, and each ACTIVE plain MEMBER an equal integer share
    of 30 (at least 1).
    """
    if member.role == MemberRole.CHAIR:
        return CHAIR_WEIGHT
    if member.role == MemberRole.ADMIN:
        return ADMIN_WEIGHT
    if active_plain_members <= 0:
        return 1
    return max(1, MEMBER_POOL // active_plain_members)


class VotingWeightResolver:
    """Voting power lookups and quorum/threshold evaluation."""

    def __init__(
        self,
        proposals: ProposalRepository,
        members: MemberRepository,
        settings: Settings | None = None,
    ):
        self.proposals = proposals
        self.members = members
        self.settings = settings or get_settings()

    @property
    def quorum_mode(self) -> Literal["percent_of_power", "absolute"]:
        return self.settings.quorum_mode

    async def calculate_quorum_threshold(self, dao_id: str, percentage: float) -> float:
        """Voting power needed for ``percentage``% of the DAO's active power."""
        total = await self.members.total_active_voting_power(dao_id)
        return total * percentage / 100

    async def required_quorum(self, proposal: DAOProposal) -> float:
        if self.quorum_mode == "absolute":
            return float(proposal.quorum)
        return await self.calculate_quorum_threshold(proposal.dao_id, proposal.quorum)

    async def check_proposal_threshold(self, proposal_id: str) -> GovernanceResult[ThresholdCheck]:
        proposal = await self.proposals.get_by_id(proposal_id)
        if proposal is None:
            return GovernanceResult.fail(ErrorKind.NOT_FOUND, PROPOSAL_NOT_FOUND)
        return GovernanceResult.ok(await self.check(proposal))

    async def check(self, proposal: DAOProposal) -> ThresholdCheck:
        """Evaluate an already loaded proposal."""
        required = await self.required_quorum(proposal)
        result = evaluate(proposal, required)
        logger.debug(
            "threshold_checked",
            proposal_id=proposal.id,
            passed=result.passed,
            quorum_reached=result.quorum_reached,
            for_percentage=round(result.for_percentage, 2),
            required_quorum=required,
        )
        return result

    async def quorum_threshold(self, dao_id: str, percentage: float) -> QuorumThreshold:
        total = await self.members.total_active_voting_power(dao_id)
        return QuorumThreshold(
            dao_id=dao_id,
            percentage=percentage,
            total_voting_power=total,
            threshold=total * percentage / 100,
        )

    async def get_member_voting_power(
        self, dao_id: str, member_id: str
    ) -> GovernanceResult[MemberVotingPower]:
        member = await self.members.get_by_id(member_id)
        if member is None or member.dao_id != dao_id:
            return GovernanceResult.fail(ErrorKind.NOT_FOUND, MEMBER_NOT_FOUND)
        return GovernanceResult.ok(
            MemberVotingPower(
                member_id=member.id,
                user_id=member.user_id,
                role=member.role,
                voting_power=member.effective_voting_power,
            )
        )

    async def update_dao_voting_powers(
        self, dao_id: str, user_id: str
    ) -> GovernanceResult[list[MemberVotingPower]]:
        """Recompute and store role-based power for every ACTIVE member (admin only)."""
        caller = await self.members.get_membership(dao_id, user_id)
        if caller is None or not caller.is_admin:
            return GovernanceResult.fail(ErrorKind.FORBIDDEN, ADMIN_ONLY_RECALCULATE)

        active = await self.members.list_active(dao_id)
        plain_count = sum(1 for m in active if m.role == MemberRole.MEMBER)
        powers = {m.id: calculate_voting_power(m, plain_count) for m in active}
        await self.members.set_voting_powers(dao_id, powers)

        logger.info("dao_voting_powers_recalculated", dao_id=dao_id, members=len(powers))
        return GovernanceResult.ok(
            [
                MemberVotingPower(
                    member_id=m.id, user_id=m.user_id, role=m.role, voting_power=powers[m.id]
                )
                for m in active
            ]
        )
