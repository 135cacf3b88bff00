"""
Execution Queue

Timelocked execution of passed proposals.

A passed proposal is queued with ``scheduled_time = queued_at + timelock``
(24 hours, never less). A background pass claims due tasks and, for each,
runs the category action and marks the proposal EXECUTED in one store
transaction that holds the proposal's lock. A proposal cancelled first is
left untouched. The EXECUTED write is guarded on
``queued_at + timelock <= now``, so the timelock holds even if a task is
claimed early; a refused write rolls the action back.
"""

import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

import structlog
from neo4j import AsyncTransaction

from daogov.config import Settings, get_settings
from daogov.database.client import Neo4jClient
from daogov.models.base import ProposalStatus, utc_now
from daogov.models.execution import ExecutionStatus, ExecutionTask, QueueStatus
from daogov.models.governance import DAOProposal, DAOUpdate, MemberCreate, MemberRole
from daogov.models.treasury import (
    TransactionStatus,
    TransactionType,
    TreasuryTransactionCreate,
)
from daogov.repositories.dao_repository import DAORepository, MemberRepository
from daogov.repositories.execution_repository import ExecutionRepository
from daogov.repositories.proposal_repository import ExecutionBlockedError, ProposalRepository
from daogov.repositories.treasury_repository import TreasuryRepository
from daogov.services.results import (
    ADMIN_ONLY_QUEUE,
    PROPOSAL_NOT_FOUND,
    ErrorKind,
    GovernanceResult,
)
from daogov.services.treasury import TreasuryService

logger = structlog.get_logger(__name__)

QUORUM_PATTERN = re.compile(r"quorumThreshold:\s*(\d+)")
VOTING_PERIOD_PATTERN = re.compile(r"votingPeriod:\s*(\d+)")
ADD_MEMBER_PATTERN = re.compile(r"userId=(\w+),\s*address=(\w+),\s*role=(\w+)")


class ExecutionError(Exception):
    """A category action could not be carried out."""

    pass


def parse_governance_changes(description: str) -> DAOUpdate | None:
    """Read ``quorumThreshold: N`` / ``votingPeriod: N`` directives."""
    changes: dict[str, int] = {}
    if match := QUORUM_PATTERN.search(description):
        changes["quorum_threshold"] = int(match.group(1))
    if match := VOTING_PERIOD_PATTERN.search(description):
        changes["voting_period"] = int(match.group(1))
    return DAOUpdate(**changes) if changes else None


def parse_membership_changes(description: str) -> list[MemberCreate]:
    """Read ``ADD_MEMBER: userId=…, address=…, role=…`` lines."""
    members = []
    for line in description.splitlines():
        if "ADD_MEMBER" not in line:
            continue
        match = ADD_MEMBER_PATTERN.search(line)
        if not match:
            continue
        user_id, address, role = match.groups()
        try:
            member_role = MemberRole(role.upper())
        except ValueError as e:
            raise ExecutionError(f"Unknown member role: {role}") from e
        members.append(MemberCreate(user_id=user_id, address=address, role=member_role))
    return members


@dataclass
class ProcessingStats:
    """Outcome counts of one processing pass."""

    claimed: int = 0
    completed: int = 0
    retried: int = 0
    failed: int = 0
    cancelled: int = 0
    errored: int = 0


class ExecutionQueue:
    def __init__(
        self,
        executions: ExecutionRepository,
        proposals: ProposalRepository,
        daos: DAORepository,
        members: MemberRepository,
        treasury: TreasuryService,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.executions = executions
        self.proposals = proposals
        self.daos = daos
        self.members = members
        self.treasury = treasury
        self.settings = settings or get_settings()
        self.clock = clock

    @property
    def timelock(self) -> timedelta:
        return timedelta(hours=self.settings.execution_timelock_hours)

    @property
    def lease(self) -> timedelta:
        return timedelta(seconds=self.settings.execution_lease_seconds)

    # ═══════════════════════════════════════════════════════════════
    # QUEUEING
    # ═══════════════════════════════════════════════════════════════

    async def queue_proposal_execution(self, proposal: DAOProposal) -> ExecutionTask:
        """
        Queue a passed proposal. Idempotent: a proposal that is already
        queued gets its existing task back.
        """
        now = self.clock()
        task, created = await self.executions.queue(
            proposal,
            queued_at=now,
            scheduled_time=now + self.timelock,
            max_retries=self.settings.execution_max_retries,
        )
        if not created:
            logger.info("execution_already_queued", proposal_id=proposal.id, task_id=task.id)
        return task

    async def cancel_execution(
        self, proposal_id: str, user_id: str
    ) -> GovernanceResult[ExecutionTask]:
        """Cancel a PENDING execution and the proposal with it (admin only)."""
        proposal = await self.proposals.get_by_id(proposal_id)
        if proposal is None:
            return GovernanceResult.fail(ErrorKind.NOT_FOUND, PROPOSAL_NOT_FOUND)
        if not await self._is_admin(proposal.dao_id, user_id):
            return GovernanceResult.fail(ErrorKind.FORBIDDEN, ADMIN_ONLY_QUEUE)

        now = self.clock()
        task = await self.executions.cancel_pending(proposal_id, now)
        if task is None:
            return GovernanceResult.fail(
                ErrorKind.NOT_FOUND, "No pending execution found for this proposal"
            )

        await self.proposals.transition(
            proposal_id,
            ProposalStatus.CANCELLED,
            from_statuses=[ProposalStatus.PASSED, ProposalStatus.ACTIVE],
        )
        logger.info("execution_cancelled", proposal_id=proposal_id, task_id=task.id)
        return GovernanceResult.ok(task)

    async def abort_pending(self, proposal_id: str) -> ExecutionTask | None:
        """Cancel a proposal's PENDING task, leaving the proposal to the caller."""
        return await self.executions.cancel_pending(proposal_id, self.clock())

    async def queue_status_for(self, dao_id: str, user_id: str) -> GovernanceResult[QueueStatus]:
        """A DAO's pending and executing tasks (admin only)."""
        if not await self._is_admin(dao_id, user_id):
            return GovernanceResult.fail(ErrorKind.FORBIDDEN, ADMIN_ONLY_QUEUE)
        return GovernanceResult.ok(await self.get_queue_status(dao_id))

    async def _is_admin(self, dao_id: str, user_id: str) -> bool:
        member = await self.members.get_membership(dao_id, user_id)
        return member is not None and member.is_admin

    async def get_queue_status(self, dao_id: str | None = None) -> QueueStatus:
        tasks = await self.executions.list_by_status(
            [ExecutionStatus.PENDING, ExecutionStatus.EXECUTING], dao_id=dao_id
        )
        pending = [t for t in tasks if t.status == ExecutionStatus.PENDING]
        executing = [t for t in tasks if t.status == ExecutionStatus.EXECUTING]
        return QueueStatus(
            pending=pending,
            executing=executing,
            total_pending=len(pending),
            total_executing=len(executing),
        )

    # ═══════════════════════════════════════════════════════════════
    # PROCESSING
    # ═══════════════════════════════════════════════════════════════

    async def process_due_executions(self) -> ProcessingStats:
        """
        Claim and run every task whose timelock has expired.

        Each task runs on its own: an error in one is logged and the pass
        moves on. A task left EXECUTING by such an error is claimed again
        once its lease runs out.
        """
        now = self.clock()
        tasks = await self.executions.claim_due(
            now,
            self.settings.execution_batch_size,
            lease_expired_before=now - self.lease,
        )
        stats = ProcessingStats(claimed=len(tasks))

        for task in tasks:
            try:
                outcome = await self._run_task(task)
            except Exception as e:
                logger.error(
                    "execution_task_errored",
                    proposal_id=task.proposal_id,
                    task_id=task.id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                outcome = "errored"
            setattr(stats, outcome, getattr(stats, outcome) + 1)

        if tasks:
            logger.info("execution_pass_finished", **stats.__dict__)
        return stats

    async def _run_task(self, task: ExecutionTask) -> str:
        now = self.clock()

        try:
            proposal = await self.proposals.execute_locked(
                task.proposal_id,
                now,
                self.settings.execution_timelock_hours,
                self._execute_action,
            )
        except ExecutionBlockedError:
            return await self._handle_blocked(task)
        except Exception as e:
            return await self._handle_failure(task, e)

        if proposal is None or proposal.status != ProposalStatus.EXECUTED:
            await self.executions.set_status(
                task.id,
                ExecutionStatus.CANCELLED,
                now,
                error=PROPOSAL_NOT_FOUND if proposal is None else f"Proposal is {proposal.status}",
            )
            logger.info("execution_skipped", proposal_id=task.proposal_id, task_id=task.id)
            return "cancelled"

        await self.executions.complete(task.id, now)
        logger.info(
            "proposal_execution_completed",
            proposal_id=proposal.id,
            task_id=task.id,
            category=proposal.category,
        )
        return "completed"

    async def _handle_blocked(self, task: ExecutionTask) -> str:
        """The timelock guard refused the EXECUTED write; fail task and proposal."""
        now = self.clock()
        await self.executions.set_status(
            task.id, ExecutionStatus.FAILED, now, error="Execution blocked by timelock"
        )
        await self.proposals.transition(
            task.proposal_id, ProposalStatus.FAILED, from_statuses=[ProposalStatus.PASSED]
        )
        logger.error("proposal_execution_blocked", proposal_id=task.proposal_id, task_id=task.id)
        return "failed"

    async def _handle_failure(self, task: ExecutionTask, error: Exception) -> str:
        now = self.clock()
        retry_at = now + timedelta(seconds=self.settings.execution_retry_delay_seconds)
        updated = await self.executions.record_failure(task.id, str(error), now, retry_at)

        if updated is not None and updated.status == ExecutionStatus.FAILED:
            await self.proposals.transition(
                task.proposal_id, ProposalStatus.FAILED, from_statuses=[ProposalStatus.PASSED]
            )
            logger.error(
                "proposal_execution_failed",
                proposal_id=task.proposal_id,
                task_id=task.id,
                attempts=updated.retry_count,
                error=str(error),
                error_type=type(error).__name__,
            )
            return "failed"

        logger.warning(
            "proposal_execution_retry_scheduled",
            proposal_id=task.proposal_id,
            task_id=task.id,
            attempt=updated.retry_count if updated else None,
            retry_at=retry_at.isoformat(),
            error=str(error),
        )
        return "retried"

    async def _execute_action(self, proposal: DAOProposal, tx: AsyncTransaction) -> None:
        category = proposal.category.upper()

        if category == "TREASURY":
            await self._execute_treasury(proposal, tx)
        elif category == "INVESTMENT":
            await self._execute_investment(proposal, tx)
        elif category == "GOVERNANCE":
            await self._execute_governance(proposal, tx)
        elif category == "MEMBERSHIP":
            await self._execute_membership(proposal, tx)
        else:
            logger.info("execution_no_action", proposal_id=proposal.id, category=category)

    async def _execute_treasury(self, proposal: DAOProposal, tx: AsyncTransaction) -> None:
        if not proposal.requested_amount:
            raise ExecutionError("Treasury proposal has no requested amount")

        dao = await self.daos.get_by_id(proposal.dao_id)
        await self.treasury.record_transaction(
            proposal.dao_id,
            TreasuryTransactionCreate(
                type=TransactionType.WITHDRAWAL,
                amount=proposal.requested_amount,
                token=self.settings.treasury_default_token,
                from_address=dao.treasury_address if dao else None,
                to_address=proposal.proposer,
                description=f"Execution of proposal: {proposal.title}",
                proposal_id=proposal.id,
                status=TransactionStatus.CONFIRMED,
            ),
            tx=tx,
        )

    async def _execute_investment(self, proposal: DAOProposal, tx: AsyncTransaction) -> None:
        if not proposal.requested_amount:
            return
        await self.treasury.record_transaction(
            proposal.dao_id,
            TreasuryTransactionCreate(
                type=TransactionType.INVESTMENT,
                amount=proposal.requested_amount,
                token=self.settings.treasury_default_token,
                description=f"Investment: {proposal.title}",
                proposal_id=proposal.id,
                status=TransactionStatus.CONFIRMED,
            ),
            tx=tx,
        )

    async def _execute_governance(self, proposal: DAOProposal, tx: AsyncTransaction) -> None:
        changes = parse_governance_changes(proposal.description)
        if changes is None:
            return
        updated = await self.daos.update(proposal.dao_id, changes, tx=tx)
        if updated is None:
            raise ExecutionError(f"DAO {proposal.dao_id} not found")

    async def _execute_membership(self, proposal: DAOProposal, tx: AsyncTransaction) -> None:
        for member in parse_membership_changes(proposal.description):
            await self.members.create(proposal.dao_id, member, tx=tx)


def build_execution_queue(
    client: Neo4jClient,
    settings: Settings | None = None,
    clock: Callable[[], datetime] = utc_now,
) -> ExecutionQueue:
    """Wire an ExecutionQueue and its repositories onto one client."""
    settings = settings or get_settings()
    return ExecutionQueue(
        executions=ExecutionRepository(client),
        proposals=ProposalRepository(client),
        daos=DAORepository(client),
        members=MemberRepository(client),
        treasury=TreasuryService(TreasuryRepository(client), settings=settings, clock=clock),
        settings=settings,
        clock=clock,
    )
