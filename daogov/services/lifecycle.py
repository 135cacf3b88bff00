"""
Proposal Lifecycle Manager

Drives proposal status transitions and the admin actions on proposals:
create, activate, cancel, delete and execute, plus list/get queries.
"""

from collections.abc import Callable
from datetime import datetime, timedelta

import structlog

from daogov.config import Settings, get_settings
from daogov.models.base import TERMINAL_STATUSES, ProposalStatus, utc_now
from daogov.models.execution import ExecutionStatus
from daogov.models.governance import (
    DAOMember,
    DAOProposal,
    ExecutionReceipt,
    ProposalCreate,
    ProposalPage,
    ProposalView,
)
from daogov.repositories.dao_repository import DAORepository, MemberRepository
from daogov.repositories.proposal_repository import ProposalRepository
from daogov.services.execution_queue import ExecutionQueue
from daogov.services.results import (
    ADMIN_ONLY_EXECUTE,
    ADMIN_OR_PROPOSER,
    DAO_NOT_FOUND,
    INSUFFICIENT_TREASURY,
    NOT_A_MEMBER_CREATE,
    PROPOSAL_NOT_FOUND,
    VOTING_NOT_FINISHED,
    ErrorKind,
    GovernanceResult,
)
from daogov.services.treasury import TreasuryService
from daogov.services.voting_weight import VotingWeightResolver

logger = structlog.get_logger(__name__)


class ProposalLifecycleManager:
    """
    Proposal workflow.

    Status graph:
        DRAFT -> ACTIVE              (activate)
        ACTIVE -> PASSED | FAILED    (auto-close on a vote, or execute)
        PASSED -> EXECUTED           (execution queue, after the timelock)
        any non-terminal -> CANCELLED
    """

    def __init__(
        self,
        proposals: ProposalRepository,
        members: MemberRepository,
        daos: DAORepository,
        resolver: VotingWeightResolver,
        treasury: TreasuryService,
        queue: ExecutionQueue,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.proposals = proposals
        self.members = members
        self.daos = daos
        self.resolver = resolver
        self.treasury = treasury
        self.queue = queue
        self.settings = settings or get_settings()
        self.clock = clock

    # ═══════════════════════════════════════════════════════════════
    # QUERIES
    # ═══════════════════════════════════════════════════════════════

    async def list_proposals(
        self,
        dao_id: str,
        status: ProposalStatus | None = None,
        category: str | None = None,
        page: int = 1,
        per_page: int = 20,
        caller_id: str | None = None,
    ) -> GovernanceResult[ProposalPage]:
        proposals, total = await self.proposals.list_for_dao(
            dao_id,
            status=status,
            category=category,
            skip=(page - 1) * per_page,
            limit=per_page,
        )
        views = await self._views(dao_id, proposals, caller_id)
        return GovernanceResult.ok(
            ProposalPage(items=views, total=total, page=page, per_page=per_page)
        )

    async def get_proposal(
        self,
        proposal_id: str,
        caller_id: str | None = None,
    ) -> GovernanceResult[ProposalView]:
        proposal = await self.proposals.get_by_id(proposal_id)
        if proposal is None:
            return GovernanceResult.fail(ErrorKind.NOT_FOUND, PROPOSAL_NOT_FOUND)
        views = await self._views(proposal.dao_id, [proposal], caller_id)
        return GovernanceResult.ok(views[0])

    async def _views(
        self,
        dao_id: str,
        proposals: list[DAOProposal],
        caller_id: str | None,
    ) -> list[ProposalView]:
        if not proposals:
            return []
        ids = [p.id for p in proposals]
        counts = await self.proposals.count_votes(ids)

        my_votes = {}
        if caller_id is not None:
            member = await self.members.get_membership(dao_id, caller_id)
            if member is not None:
                my_votes = await self.proposals.votes_by_member(ids, member.id)

        return [
            ProposalView(proposal=p, vote_count=counts.get(p.id, 0), my_vote=my_votes.get(p.id))
            for p in proposals
        ]

    # ═══════════════════════════════════════════════════════════════
    # COMMANDS
    # ═══════════════════════════════════════════════════════════════

    async def create_proposal(
        self,
        dao_id: str,
        user_id: str,
        data: ProposalCreate,
    ) -> GovernanceResult[DAOProposal]:
        member = await self.members.get_membership(dao_id, user_id)
        if member is None:
            return GovernanceResult.fail(ErrorKind.FORBIDDEN, NOT_A_MEMBER_CREATE)

        dao = await self.daos.get_by_id(dao_id)
        if dao is None:
            return GovernanceResult.fail(ErrorKind.NOT_FOUND, DAO_NOT_FOUND)

        now = self.clock()
        period_days = data.voting_period_days or dao.voting_period or self.settings.default_voting_period_days
        threshold = data.threshold if data.threshold is not None else self.settings.default_approval_threshold

        proposal = await self.proposals.create(
            data,
            dao=dao,
            member=member,
            start_time=now,
            end_time=now + timedelta(days=period_days),
            threshold=threshold,
        )
        return GovernanceResult.ok(proposal)

    async def activate_proposal(self, proposal_id: str, user_id: str) -> GovernanceResult[DAOProposal]:
        proposal, denied = await self._authorize(proposal_id, user_id, "activate")
        if denied is not None:
            return denied

        if proposal.status != ProposalStatus.DRAFT:
            return GovernanceResult.fail(
                ErrorKind.INVALID_STATE, "Only draft proposals can be activated", status=proposal.status
            )

        updated = await self.proposals.transition(
            proposal_id, ProposalStatus.ACTIVE, from_statuses=[ProposalStatus.DRAFT]
        )
        if updated is None:
            return GovernanceResult.fail(
                ErrorKind.INVALID_STATE, "Only draft proposals can be activated"
            )
        return GovernanceResult.ok(updated)

    async def cancel_proposal(self, proposal_id: str, user_id: str) -> GovernanceResult[DAOProposal]:
        proposal, denied = await self._authorize(proposal_id, user_id, "cancel")
        if denied is not None:
            return denied

        message = "Cannot cancel an executed or already cancelled proposal"
        if proposal.status in TERMINAL_STATUSES:
            return GovernanceResult.fail(ErrorKind.INVALID_STATE, message, status=proposal.status)

        # A PASSED proposal may be sitting in the execution queue
        await self.queue.abort_pending(proposal_id)

        updated = await self.proposals.transition(
            proposal_id,
            ProposalStatus.CANCELLED,
            from_statuses=[
                ProposalStatus.DRAFT,
                ProposalStatus.ACTIVE,
                ProposalStatus.PASSED,
                ProposalStatus.FAILED,
            ],
        )
        if updated is None:
            return GovernanceResult.fail(ErrorKind.INVALID_STATE, message)
        return GovernanceResult.ok(updated)

    async def delete_proposal(self, proposal_id: str, user_id: str) -> GovernanceResult[str]:
        proposal, denied = await self._authorize(proposal_id, user_id, "delete")
        if denied is not None:
            return denied

        if proposal.status == ProposalStatus.EXECUTED:
            return GovernanceResult.fail(
                ErrorKind.INVALID_STATE, "Cannot delete an executed proposal"
            )

        has_votes = "Cannot delete a proposal that has votes"
        counts = await self.proposals.count_votes([proposal_id])
        if counts.get(proposal_id, 0) > 0:
            return GovernanceResult.fail(ErrorKind.HAS_VOTES, has_votes)

        if not await self.proposals.delete_if_unvoted(proposal_id):
            return GovernanceResult.fail(ErrorKind.HAS_VOTES, has_votes)
        return GovernanceResult.ok(proposal_id)

    async def execute_proposal(
        self,
        proposal_id: str,
        user_id: str,
    ) -> GovernanceResult[ExecutionReceipt]:
        proposal = await self.proposals.get_by_id(proposal_id)
        if proposal is None:
            return GovernanceResult.fail(ErrorKind.NOT_FOUND, PROPOSAL_NOT_FOUND)

        member = await self.members.get_membership(proposal.dao_id, user_id)
        if member is None or not member.is_admin:
            return GovernanceResult.fail(ErrorKind.FORBIDDEN, ADMIN_ONLY_EXECUTE)

        if proposal.status in (
            ProposalStatus.FAILED,
            ProposalStatus.EXECUTED,
            ProposalStatus.CANCELLED,
        ):
            return GovernanceResult.fail(
                ErrorKind.INVALID_STATE,
                f"Proposal cannot be executed from status {proposal.status}",
                status=proposal.status,
            )

        now = self.clock()
        concluded = proposal.status == ProposalStatus.PASSED or (
            proposal.status == ProposalStatus.ACTIVE and now >= proposal.end_time
        )
        if not concluded:
            return GovernanceResult.fail(ErrorKind.VOTING_NOT_CONCLUDED, VOTING_NOT_FINISHED)

        check = await self.resolver.check(proposal)
        if not check.passed:
            await self.proposals.transition(
                proposal_id,
                ProposalStatus.FAILED,
                from_statuses=[ProposalStatus.ACTIVE, ProposalStatus.PASSED],
            )
            logger.info(
                "proposal_failed_at_execution",
                proposal_id=proposal_id,
                quorum_reached=check.quorum_reached,
                for_percentage=round(check.for_percentage, 2),
            )
            details = {
                "for_percentage": check.for_percentage,
                "total_votes": check.total_votes,
                "required_quorum": check.required_quorum,
                "threshold": check.threshold,
            }
            if not check.quorum_reached:
                return GovernanceResult.fail(
                    ErrorKind.QUORUM_NOT_REACHED,
                    f"Quorum not reached: {check.total_votes} of {check.required_quorum:g} required votes",
                    **details,
                )
            return GovernanceResult.fail(
                ErrorKind.THRESHOLD_NOT_MET,
                f"Threshold not met: {check.for_percentage:.2f}% for, {check.threshold:g}% required",
                **details,
            )

        if proposal.requested_amount and proposal.requested_amount > 0:
            available = await self.treasury.check_funds_availability(
                proposal.dao_id, proposal.requested_amount
            )
            if not available:
                return GovernanceResult.fail(
                    ErrorKind.INSUFFICIENT_FUNDS,
                    INSUFFICIENT_TREASURY,
                    requested_amount=proposal.requested_amount,
                )

        task = await self.queue.queue_proposal_execution(proposal)
        if task.status not in (ExecutionStatus.PENDING, ExecutionStatus.EXECUTING):
            return GovernanceResult.fail(
                ErrorKind.INVALID_STATE,
                f"Proposal execution already ended with status {task.status}",
                execution_status=task.status,
            )

        logger.info(
            "proposal_queued_for_execution",
            proposal_id=proposal_id,
            executed_by=member.id,
            execution_time=task.scheduled_time.isoformat(),
        )
        return GovernanceResult.ok(
            ExecutionReceipt(
                proposal_id=proposal_id,
                message="Proposal queued for execution",
                execution_time=task.scheduled_time,
            )
        )

    async def _authorize(
        self,
        proposal_id: str,
        user_id: str,
        action: str,
    ) -> tuple[DAOProposal, None] | tuple[None, GovernanceResult]:
        """Load a proposal and require the caller to be an admin or its proposer."""
        proposal = await self.proposals.get_by_id(proposal_id)
        if proposal is None:
            return None, GovernanceResult.fail(ErrorKind.NOT_FOUND, PROPOSAL_NOT_FOUND)

        member: DAOMember | None = await self.members.get_membership(proposal.dao_id, user_id)
        if member is None or not (member.is_admin or member.address == proposal.proposer):
            return None, GovernanceResult.fail(
                ErrorKind.FORBIDDEN, ADMIN_OR_PROPOSER.format(action=action)
            )
        return proposal, None
