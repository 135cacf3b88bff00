"""
Vote Recorder

Validates and persists a single member's vote.
"""

from collections.abc import Callable
from datetime import datetime

import structlog

from daogov.models.base import ProposalStatus, utc_now
from daogov.models.governance import DAOProposal, DAOVote, VoteCreate
from daogov.repositories.dao_repository import MemberRepository
from daogov.repositories.proposal_repository import (
    ProposalRepository,
    VoteAlreadyRecordedError,
    VoterNotFoundError,
    VotingClosedError,
)
from daogov.services.results import (
    ALREADY_VOTED,
    NOT_A_MEMBER_VOTE,
    PROPOSAL_NOT_FOUND,
    VOTING_NOT_ACTIVE,
    ErrorKind,
    GovernanceResult,
    VotingInactiveReason,
)
from daogov.services.voting_weight import majority_outcome

logger = structlog.get_logger(__name__)


def voting_inactive_reason(proposal: DAOProposal, now: datetime) -> VotingInactiveReason | None:
    """Why ``proposal`` would refuse a vote at ``now``, or None if it accepts one."""
    if proposal.status != ProposalStatus.ACTIVE:
        return VotingInactiveReason.NOT_ACTIVE
    if now < proposal.start_time:
        return VotingInactiveReason.NOT_OPEN
    if now > proposal.end_time:
        return VotingInactiveReason.EXPIRED
    return None


class VoteRecorder:
    """
    Casts votes.

    The store write (vote, tallies, member counters and any auto-close) is a
    single transaction; see ``ProposalRepository.record_vote``.
    """

    def __init__(
        self,
        proposals: ProposalRepository,
        members: MemberRepository,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.proposals = proposals
        self.members = members
        self.clock = clock

    async def cast_vote(
        self,
        proposal_id: str,
        user_id: str,
        data: VoteCreate,
    ) -> GovernanceResult[DAOVote]:
        proposal = await self.proposals.get_by_id(proposal_id)
        if proposal is None:
            return GovernanceResult.fail(ErrorKind.NOT_FOUND, PROPOSAL_NOT_FOUND)

        now = self.clock()
        reason = voting_inactive_reason(proposal, now)
        if reason is not None:
            return self._inactive(proposal_id, reason)

        member = await self.members.get_membership(proposal.dao_id, user_id)
        if member is None:
            return GovernanceResult.fail(ErrorKind.FORBIDDEN, NOT_A_MEMBER_VOTE)

        if await self.proposals.get_vote(proposal_id, member.id) is not None:
            return GovernanceResult.fail(ErrorKind.DUPLICATE_VOTE, ALREADY_VOTED)

        power = member.effective_voting_power

        try:
            vote, updated = await self.proposals.record_vote(
                proposal_id=proposal_id,
                member_id=member.id,
                vote_type=data.vote_type,
                voting_power=power,
                reason=data.reason,
                now=now,
                decide_outcome=majority_outcome,
            )
        except VoteAlreadyRecordedError:
            logger.info("duplicate_vote_rejected", proposal_id=proposal_id, member_id=member.id)
            return GovernanceResult.fail(ErrorKind.DUPLICATE_VOTE, ALREADY_VOTED)
        except VotingClosedError:
            # Lost a race with a concurrent close or cancel
            return self._inactive(proposal_id, VotingInactiveReason.NOT_ACTIVE)
        except VoterNotFoundError:
            logger.info("vote_rejected_member_gone", proposal_id=proposal_id, member_id=member.id)
            return GovernanceResult.fail(ErrorKind.FORBIDDEN, NOT_A_MEMBER_VOTE)

        logger.info(
            "vote_cast",
            proposal_id=proposal_id,
            member_id=member.id,
            vote_type=vote.vote_type,
            voting_power=power,
            status=updated.status,
            votes_for=updated.votes_for,
            votes_against=updated.votes_against,
            total_votes=updated.total_votes,
        )
        if updated.status != ProposalStatus.ACTIVE:
            logger.info("proposal_auto_closed", proposal_id=proposal_id, status=updated.status)

        return GovernanceResult.ok(vote)

    def _inactive(self, proposal_id: str, reason: VotingInactiveReason) -> GovernanceResult[DAOVote]:
        logger.info("vote_rejected_inactive", proposal_id=proposal_id, reason=reason.value)
        return GovernanceResult.fail(
            ErrorKind.VOTING_NOT_ACTIVE, VOTING_NOT_ACTIVE, reason=reason.value
        )
