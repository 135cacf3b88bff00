"""
DAO Governance - Test Fixtures

Shared pytest fixtures for all test modules.

Service and route tests run against an in-memory store whose repositories
mirror the Neo4j repositories' contracts (guarded transitions, one vote per
member, timelock check on EXECUTED). Repository tests use ``mock_db_client``
and assert on the Cypher sent to it.
"""

from __future__ import annotations

import os
from collections.abc import Awaitable, Callable, Generator, Iterable
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

# =============================================================================
# TEST ENVIRONMENT SETUP
# =============================================================================
# These are TEST-ONLY credentials. APP_ENV="testing" keeps them out of
# production.

_current_env = os.environ.get("APP_ENV", "")
if _current_env == "production":
    raise RuntimeError(
        "SECURITY ERROR: Test fixtures cannot be loaded in production environment. "
        "Do not import conftest.py in production code."
    )

os.environ["APP_ENV"] = "testing"

# setdefault lets CI point integration runs at its own database
os.environ.setdefault("NEO4J_URI", "bolt://localhost:7687")
os.environ.setdefault("NEO4J_USER", "neo4j")
os.environ.setdefault("NEO4J_PASSWORD", "testpassword")  # TEST ONLY
os.environ.setdefault(
    "JWT_SECRET_KEY", "test-secret-key-at-least-32-characters-long-for-testing"
)  # TEST ONLY
os.environ.setdefault("SCHEDULER_ENABLED", "false")

from fastapi import FastAPI  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from daogov.config import Settings  # noqa: E402
from daogov.models.base import ProposalStatus  # noqa: E402
from daogov.models.execution import ExecutionStatus, ExecutionTask  # noqa: E402
from daogov.models.governance import (  # noqa: E402
    DAO,
    DAOMember,
    DAOProposal,
    DAOUpdate,
    DAOVote,
    MemberCreate,
    MemberRole,
    MemberStatus,
    ProposalCreate,
    VoteType,
)
from daogov.models.treasury import (  # noqa: E402
    INFLOW_TYPES,
    OUTFLOW_TYPES,
    TransactionStatus,
    TransactionType,
    TreasuryBalance,
    TreasuryTransaction,
    TreasuryTransactionCreate,
)
from daogov.repositories.proposal_repository import (  # noqa: E402
    ExecutionBlockedError,
    VoteAlreadyRecordedError,
    VoterNotFoundError,
    VotingClosedError,
)

NOW = datetime(2026, 1, 15, 12, 0, tzinfo=UTC)

# Stands in for the open transaction handed to execution actions
FAKE_TX = object()


# =============================================================================
# Clock
# =============================================================================


class FakeClock:
    """Controllable replacement for ``utc_now``."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


# =============================================================================
# In-Memory Store
# =============================================================================


class InMemoryStore:
    """Backing data shared by the fake repositories of one test."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.daos: dict[str, DAO] = {}
        self.members: dict[str, DAOMember] = {}
        self.proposals: dict[str, DAOProposal] = {}
        self.votes: dict[tuple[str, str], DAOVote] = {}
        self.tasks: dict[str, ExecutionTask] = {}  # keyed by proposal id
        self.transactions: list[TreasuryTransaction] = []

    def snapshot(self) -> dict:
        """Copy of every collection, for rolling back a failed transaction."""
        return {name: value.copy() for name, value in vars(self).items() if name != "clock"}

    def restore(self, snapshot: dict) -> None:
        for name, value in snapshot.items():
            setattr(self, name, value)


class FakeDAORepository:
    def __init__(self, store: InMemoryStore):
        self.store = store

    async def get_by_id(self, dao_id: str) -> DAO | None:
        dao = self.store.daos.get(dao_id)
        return dao.model_copy() if dao else None

    async def update(self, dao_id: str, data: DAOUpdate, tx=None) -> DAO | None:
        dao = self.store.daos.get(dao_id)
        if dao is None:
            return None
        updated = dao.model_copy(
            update={**data.model_dump(exclude_none=True), "updated_at": self.store.clock()}
        )
        self.store.daos[dao_id] = updated
        return updated.model_copy()


class FakeMemberRepository:
    def __init__(self, store: InMemoryStore):
        self.store = store

    async def create(self, dao_id: str, data: MemberCreate, tx=None) -> DAOMember:
        existing = await self.get_membership(dao_id, data.user_id)
        if existing is not None:
            return existing
        member = DAOMember(
            id=str(uuid4()),
            dao_id=dao_id,
            user_id=data.user_id,
            address=data.address,
            role=data.role,
            voting_power=data.voting_power,
        )
        self.store.members[member.id] = member
        return member.model_copy()

    async def get_by_id(self, member_id: str) -> DAOMember | None:
        member = self.store.members.get(member_id)
        return member.model_copy() if member else None

    async def get_membership(self, dao_id: str, user_id: str) -> DAOMember | None:
        for member in self.store.members.values():
            if member.dao_id == dao_id and member.user_id == user_id:
                return member.model_copy()
        return None

    async def list_active(self, dao_id: str) -> list[DAOMember]:
        return [
            m.model_copy()
            for m in self.store.members.values()
            if m.dao_id == dao_id and m.is_active
        ]

    async def total_active_voting_power(self, dao_id: str) -> int:
        return sum(m.effective_voting_power for m in await self.list_active(dao_id))

    async def set_voting_powers(self, dao_id: str, powers: dict[str, int]) -> int:
        updated = 0
        for member_id, power in powers.items():
            member = self.store.members.get(member_id)
            if member is None or member.dao_id != dao_id:
                continue
            self.store.members[member_id] = member.model_copy(update={"voting_power": power})
            updated += 1
        return updated


class FakeProposalRepository:
    def __init__(self, store: InMemoryStore):
        self.store = store

    async def create(
        self,
        data: ProposalCreate,
        *,
        dao: DAO,
        member: DAOMember,
        start_time: datetime,
        end_time: datetime,
        threshold: float,
        status: ProposalStatus = ProposalStatus.ACTIVE,
    ) -> DAOProposal:
        if end_time <= start_time:
            raise ValueError("end_time must be after start_time")
        proposal = DAOProposal(
            id=str(uuid4()),
            dao_id=dao.id,
            proposer=member.address,
            status=status,
            quorum=dao.quorum_threshold,
            threshold=threshold,
            start_time=start_time,
            end_time=end_time,
            created_at=start_time,
            updated_at=start_time,
            **data.model_dump(exclude={"voting_period_days", "threshold"}),
        )
        self.store.proposals[proposal.id] = proposal
        stored = self.store.members[member.id]
        self.store.members[member.id] = stored.model_copy(
            update={"proposals_created": stored.proposals_created + 1}
        )
        return proposal.model_copy()

    async def get_by_id(self, proposal_id: str) -> DAOProposal | None:
        proposal = self.store.proposals.get(proposal_id)
        return proposal.model_copy() if proposal else None

    async def list_for_dao(
        self,
        dao_id: str,
        status: ProposalStatus | None = None,
        category: str | None = None,
        skip: int = 0,
        limit: int = 20,
    ) -> tuple[list[DAOProposal], int]:
        matching = [
            p
            for p in self.store.proposals.values()
            if p.dao_id == dao_id
            and (status is None or p.status == status)
            and (not category or p.category == category.upper())
        ]
        matching.sort(key=lambda p: p.created_at, reverse=True)
        page = matching[skip : skip + limit]
        return [p.model_copy() for p in page], len(matching)

    async def transition(
        self,
        proposal_id: str,
        new_status: ProposalStatus,
        from_statuses: Iterable[ProposalStatus],
        end_time: datetime | None = None,
    ) -> DAOProposal | None:
        proposal = self.store.proposals.get(proposal_id)
        if proposal is None or proposal.status not in [ProposalStatus(s).value for s in from_statuses]:
            return None
        update = {"status": ProposalStatus(new_status).value, "updated_at": self.store.clock()}
        if end_time is not None:
            update["end_time"] = end_time
        self.store.proposals[proposal_id] = proposal.model_copy(update=update)
        return self.store.proposals[proposal_id].model_copy()

    async def execute_locked(
        self,
        proposal_id: str,
        now: datetime,
        timelock_hours: int,
        action: Callable[[DAOProposal, object], Awaitable[None]],
    ) -> DAOProposal | None:
        proposal = self.store.proposals.get(proposal_id)
        if proposal is None:
            return None
        if proposal.status != ProposalStatus.PASSED:
            return proposal.model_copy()

        snapshot = self.store.snapshot()
        try:
            await action(proposal.model_copy(), FAKE_TX)
            task = self.store.tasks.get(proposal_id)
            if task is None or task.queued_at + timedelta(hours=timelock_hours) > now:
                raise ExecutionBlockedError(proposal_id)
        except Exception:
            self.store.restore(snapshot)
            raise

        self.store.proposals[proposal_id] = proposal.model_copy(
            update={"status": ProposalStatus.EXECUTED.value, "executed_at": now, "updated_at": now}
        )
        return self.store.proposals[proposal_id].model_copy()

    async def delete_if_unvoted(self, proposal_id: str) -> bool:
        proposal = self.store.proposals.get(proposal_id)
        if proposal is None or proposal.status == ProposalStatus.EXECUTED:
            return False
        if any(pid == proposal_id for pid, _ in self.store.votes):
            return False
        del self.store.proposals[proposal_id]
        return True

    async def get_vote(self, proposal_id: str, member_id: str) -> DAOVote | None:
        vote = self.store.votes.get((proposal_id, member_id))
        return vote.model_copy() if vote else None

    async def count_votes(self, proposal_ids: list[str]) -> dict[str, int]:
        return {
            pid: sum(1 for (vote_pid, _) in self.store.votes if vote_pid == pid)
            for pid in proposal_ids
        }

    async def votes_by_member(self, proposal_ids: list[str], member_id: str) -> dict[str, DAOVote]:
        return {
            pid: vote.model_copy()
            for (pid, mid), vote in self.store.votes.items()
            if mid == member_id and pid in proposal_ids
        }

    async def record_vote(
        self,
        proposal_id: str,
        member_id: str,
        vote_type: VoteType,
        voting_power: int,
        reason: str | None,
        now: datetime,
        decide_outcome: Callable[[DAOProposal], ProposalStatus | None],
    ) -> tuple[DAOVote, DAOProposal]:
        proposal = self.store.proposals.get(proposal_id)
        if member_id not in self.store.members:
            raise VoterNotFoundError(member_id)
        if proposal is None or not proposal.is_voting_open(now):
            raise VotingClosedError(proposal_id)
        if (proposal_id, member_id) in self.store.votes:
            raise VoteAlreadyRecordedError(proposal_id, member_id)

        vote = DAOVote(
            id=str(uuid4()),
            proposal_id=proposal_id,
            member_id=member_id,
            vote_type=vote_type,
            voting_power=voting_power,
            reason=reason,
            timestamp=now,
        )
        self.store.votes[(proposal_id, member_id)] = vote

        tally = {
            VoteType.FOR: "votes_for",
            VoteType.AGAINST: "votes_against",
            VoteType.ABSTAIN: "votes_abstain",
        }[VoteType(vote_type)]
        proposal = proposal.model_copy(
            update={
                tally: getattr(proposal, tally) + voting_power,
                "total_votes": proposal.total_votes + voting_power,
                "updated_at": now,
            }
        )
        outcome = decide_outcome(proposal)
        if outcome is not None:
            proposal = proposal.model_copy(
                update={"status": ProposalStatus(outcome).value, "end_time": now}
            )
        self.store.proposals[proposal_id] = proposal

        member = self.store.members[member_id]
        self.store.members[member_id] = member.model_copy(
            update={"votes_participated": member.votes_participated + 1, "last_activity": now}
        )
        return vote.model_copy(), proposal.model_copy()


class FakeExecutionRepository:
    def __init__(self, store: InMemoryStore):
        self.store = store

    def _by_id(self, task_id: str) -> ExecutionTask | None:
        return next((t for t in self.store.tasks.values() if t.id == task_id), None)

    def _save(self, task: ExecutionTask, **update) -> ExecutionTask:
        updated = task.model_copy(update=update)
        self.store.tasks[task.proposal_id] = updated
        return updated.model_copy()

    async def queue(
        self,
        proposal: DAOProposal,
        queued_at: datetime,
        scheduled_time: datetime,
        max_retries: int,
    ) -> tuple[ExecutionTask, bool]:
        existing = self.store.tasks.get(proposal.id)
        if existing is not None:
            return existing.model_copy(), False

        task = ExecutionTask(
            id=str(uuid4()),
            proposal_id=proposal.id,
            dao_id=proposal.dao_id,
            category=proposal.category,
            queued_at=queued_at,
            scheduled_time=scheduled_time,
            max_retries=max_retries,
            created_at=queued_at,
            updated_at=queued_at,
        )
        self.store.tasks[proposal.id] = task

        stored = self.store.proposals.get(proposal.id)
        if stored is not None and stored.status == ProposalStatus.ACTIVE:
            self.store.proposals[proposal.id] = stored.model_copy(
                update={"status": ProposalStatus.PASSED.value, "updated_at": queued_at}
            )
        return task.model_copy(), True

    async def get_by_proposal(self, proposal_id: str) -> ExecutionTask | None:
        task = self.store.tasks.get(proposal_id)
        return task.model_copy() if task else None

    async def claim_due(
        self,
        now: datetime,
        limit: int,
        lease_expired_before: datetime | None = None,
    ) -> list[ExecutionTask]:
        def ready(t: ExecutionTask) -> bool:
            if t.status == ExecutionStatus.PENDING:
                return t.scheduled_time <= now
            return (
                t.status == ExecutionStatus.EXECUTING
                and lease_expired_before is not None
                and t.updated_at <= lease_expired_before
            )

        due = sorted(
            (t for t in self.store.tasks.values() if ready(t)),
            key=lambda t: t.scheduled_time,
        )[:limit]
        return [self._save(t, status=ExecutionStatus.EXECUTING.value, updated_at=now) for t in due]

    async def complete(self, task_id: str, now: datetime) -> ExecutionTask | None:
        task = self._by_id(task_id)
        if task is None or task.status != ExecutionStatus.EXECUTING:
            return None
        return self._save(
            task,
            status=ExecutionStatus.COMPLETED.value,
            completed_at=now,
            error=None,
            updated_at=now,
        )

    async def record_failure(
        self,
        task_id: str,
        error: str,
        now: datetime,
        retry_at: datetime,
    ) -> ExecutionTask | None:
        task = self._by_id(task_id)
        if task is None:
            return None
        retry_count = task.retry_count + 1
        if retry_count >= task.max_retries:
            return self._save(
                task,
                retry_count=retry_count,
                error=error[:2000],
                status=ExecutionStatus.FAILED.value,
                completed_at=now,
                updated_at=now,
            )
        return self._save(
            task,
            retry_count=retry_count,
            error=error[:2000],
            status=ExecutionStatus.PENDING.value,
            scheduled_time=retry_at,
            updated_at=now,
        )

    async def set_status(
        self,
        task_id: str,
        status: ExecutionStatus,
        now: datetime,
        error: str | None = None,
    ) -> ExecutionTask | None:
        task = self._by_id(task_id)
        if task is None:
            return None
        return self._save(
            task,
            status=ExecutionStatus(status).value,
            error=error if error is not None else task.error,
            updated_at=now,
        )

    async def cancel_pending(self, proposal_id: str, now: datetime) -> ExecutionTask | None:
        task = self.store.tasks.get(proposal_id)
        if task is None or task.status != ExecutionStatus.PENDING:
            return None
        return self._save(task, status=ExecutionStatus.CANCELLED.value, updated_at=now)

    async def list_by_status(
        self,
        statuses: list[ExecutionStatus],
        dao_id: str | None = None,
    ) -> list[ExecutionTask]:
        wanted = {ExecutionStatus(s).value for s in statuses}
        tasks = [
            t
            for t in self.store.tasks.values()
            if t.status in wanted and (dao_id is None or t.dao_id == dao_id)
        ]
        return [t.model_copy() for t in sorted(tasks, key=lambda t: t.scheduled_time)]


class FakeTreasuryRepository:
    def __init__(self, store: InMemoryStore):
        self.store = store

    async def create(
        self,
        dao_id: str,
        data: TreasuryTransactionCreate,
        timestamp: datetime,
        tx=None,
    ) -> TreasuryTransaction:
        transaction = TreasuryTransaction(
            id=str(uuid4()), dao_id=dao_id, timestamp=timestamp, **data.model_dump()
        )
        self.store.transactions.append(transaction)
        return transaction.model_copy()

    async def balances(self, dao_id: str) -> list[TreasuryBalance]:
        totals: dict[str, float] = {}
        for t in self.store.transactions:
            if t.dao_id != dao_id or t.status != TransactionStatus.CONFIRMED:
                continue
            sign = 1 if t.type in INFLOW_TYPES else -1 if t.type in OUTFLOW_TYPES else 0
            totals[t.token] = totals.get(t.token, 0.0) + sign * t.amount
        return [TreasuryBalance(token=token, balance=balance) for token, balance in totals.items()]

    async def list_for_dao(self, dao_id: str, limit: int = 50) -> list[TreasuryTransaction]:
        matching = [t for t in self.store.transactions if t.dao_id == dao_id]
        return sorted(matching, key=lambda t: t.timestamp, reverse=True)[:limit]


# =============================================================================
# Mock Database Client
# =============================================================================


@pytest.fixture
def mock_db_client():
    """Create a mock Neo4j client."""
    client = AsyncMock()
    client.execute = AsyncMock(return_value=[])
    client.execute_single = AsyncMock(return_value=None)
    client.run_in_transaction = AsyncMock()
    client.verify_connection = AsyncMock(return_value=True)
    client.connect = AsyncMock()
    client.close = AsyncMock()
    client._driver = MagicMock()
    return client


# =============================================================================
# Store, Repositories and Services
# =============================================================================


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    """Settings for services under test (independent of the cached global)."""
    return Settings(
        execution_timelock_hours=24,
        execution_max_retries=3,
        execution_retry_delay_seconds=60,
        execution_lease_seconds=600,
        default_approval_threshold=60.0,
        default_voting_period_days=7,
        quorum_mode="percent_of_power",
        scheduler_enabled=False,
    )


@pytest.fixture
def store(clock) -> InMemoryStore:
    return InMemoryStore(clock)


@pytest.fixture
def dao_repo(store) -> FakeDAORepository:
    return FakeDAORepository(store)


@pytest.fixture
def member_repo(store) -> FakeMemberRepository:
    return FakeMemberRepository(store)


@pytest.fixture
def proposal_repo(store) -> FakeProposalRepository:
    return FakeProposalRepository(store)


@pytest.fixture
def execution_repo(store) -> FakeExecutionRepository:
    return FakeExecutionRepository(store)


@pytest.fixture
def treasury_repo(store) -> FakeTreasuryRepository:
    return FakeTreasuryRepository(store)


@pytest.fixture
def treasury_service(treasury_repo, settings, clock):
    from daogov.services.treasury import TreasuryService

    return TreasuryService(treasury_repo, settings=settings, clock=clock)


@pytest.fixture
def resolver(proposal_repo, member_repo, settings):
    from daogov.services.voting_weight import VotingWeightResolver

    return VotingWeightResolver(proposal_repo, member_repo, settings=settings)


@pytest.fixture
def recorder(proposal_repo, member_repo, clock):
    from daogov.services.vote_recorder import VoteRecorder

    return VoteRecorder(proposal_repo, member_repo, clock=clock)


@pytest.fixture
def execution_queue(execution_repo, proposal_repo, dao_repo, member_repo, treasury_service, settings, clock):
    from daogov.services.execution_queue import ExecutionQueue

    return ExecutionQueue(
        execution_repo,
        proposal_repo,
        dao_repo,
        member_repo,
        treasury_service,
        settings=settings,
        clock=clock,
    )


@pytest.fixture
def lifecycle(proposal_repo, member_repo, dao_repo, resolver, treasury_service, execution_queue, settings, clock):
    from daogov.services.lifecycle import ProposalLifecycleManager

    return ProposalLifecycleManager(
        proposal_repo,
        member_repo,
        dao_repo,
        resolver,
        treasury_service,
        execution_queue,
        settings=settings,
        clock=clock,
    )


# =============================================================================
# Test Data Generators
# =============================================================================


@pytest.fixture
def dao_factory(store):
    """Factory for seeding DAOs."""

    def _create_dao(
        dao_id: str | None = None,
        name: str | None = None,
        quorum_threshold: float = 50,
        voting_period: int = 7,
        treasury_address: str | None = "0xtreasury",
    ) -> DAO:
        dao = DAO(
            id=dao_id or str(uuid4()),
            name=name or f"Test DAO {uuid4().hex[:8]}",
            quorum_threshold=quorum_threshold,
            voting_period=voting_period,
            treasury_address=treasury_address,
            created_at=store.clock(),
            updated_at=store.clock(),
        )
        store.daos[dao.id] = dao
        return dao

    return _create_dao


@pytest.fixture
def member_factory(store):
    """Factory for seeding memberships."""

    def _create_member(
        dao: DAO,
        user_id: str | None = None,
        role: MemberRole = MemberRole.MEMBER,
        voting_power: int | None = 1,
        address: str | None = None,
        status: MemberStatus = MemberStatus.ACTIVE,
    ) -> DAOMember:
        user_id = user_id or f"user_{uuid4().hex[:8]}"
        member = DAOMember(
            id=str(uuid4()),
            dao_id=dao.id,
            user_id=user_id,
            address=address or f"0x{uuid4().hex[:12]}",
            role=role,
            status=status,
            voting_power=voting_power,
        )
        store.members[member.id] = member
        return member

    return _create_member


@pytest.fixture
def proposal_factory(store):
    """Factory for seeding proposals directly into the store."""

    def _create_proposal(
        dao: DAO,
        proposer: DAOMember,
        status: ProposalStatus = ProposalStatus.ACTIVE,
        category: str = "GENERAL",
        description: str = "A test proposal for governance.",
        requested_amount: float | None = None,
        threshold: float = 60,
        quorum: float | None = None,
        start_time: datetime | None = None,
        end_time: datetime | None = None,
        votes_for: int = 0,
        votes_against: int = 0,
        votes_abstain: int = 0,
    ) -> DAOProposal:
        start = start_time or store.clock()
        proposal = DAOProposal(
            id=str(uuid4()),
            dao_id=dao.id,
            title=f"Test Proposal {uuid4().hex[:8]}",
            description=description,
            category=category,
            proposer=proposer.address,
            status=status,
            requested_amount=requested_amount,
            quorum=dao.quorum_threshold if quorum is None else quorum,
            threshold=threshold,
            start_time=start,
            end_time=end_time or start + timedelta(days=7),
            votes_for=votes_for,
            votes_against=votes_against,
            votes_abstain=votes_abstain,
            total_votes=votes_for + votes_against + votes_abstain,
            created_at=start,
            updated_at=start,
        )
        store.proposals[proposal.id] = proposal
        return proposal

    return _create_proposal


@pytest.fixture
def fund_treasury(store):
    """Record a CONFIRMED deposit into a DAO treasury."""

    def _fund(dao: DAO, amount: float, token: str = "USDC") -> TreasuryTransaction:
        transaction = TreasuryTransaction(
            id=str(uuid4()),
            dao_id=dao.id,
            type=TransactionType.DEPOSIT,
            amount=amount,
            token=token,
            status=TransactionStatus.CONFIRMED,
            timestamp=store.clock(),
        )
        store.transactions.append(transaction)
        return transaction

    return _fund


# =============================================================================
# JWT Token Fixtures
# =============================================================================


@pytest.fixture
def auth_headers_for():
    """Build bearer headers for a user id."""
    from daogov.security.tokens import create_access_token

    def _headers(user_id: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user_id)}"}

    return _headers


# =============================================================================
# FastAPI Test Client
# =============================================================================


def _provide(service):
    def _dependency():
        return service

    return _dependency


@pytest.fixture
def app(mock_db_client, lifecycle, recorder, resolver, execution_queue, treasury_service) -> FastAPI:
    """Create a test FastAPI application.

    Creates the app WITHOUT the production lifespan (which requires Neo4j)
    and points every service dependency at the in-memory store.
    """
    from daogov.api import dependencies
    from daogov.api.app import GovernanceApp, create_app

    container = GovernanceApp()
    container.db_client = mock_db_client

    @asynccontextmanager
    async def _test_lifespan(application: FastAPI):
        container.is_ready = True
        yield
        container.is_ready = False

    application = create_app(
        title="DAO Governance Test",
        version="test",
        docs_url=None,
        redoc_url=None,
        container=container,
    )
    application.router.lifespan_context = _test_lifespan

    overrides = {
        dependencies.get_lifecycle_manager: lifecycle,
        dependencies.get_vote_recorder: recorder,
        dependencies.get_voting_weight_resolver: resolver,
        dependencies.get_execution_queue: execution_queue,
        dependencies.get_treasury_service: treasury_service,
    }
    for dependency, service in overrides.items():
        application.dependency_overrides[dependency] = _provide(service)

    return application


@pytest.fixture
def client(app: FastAPI) -> Generator[TestClient, None, None]:
    """Create a synchronous test client."""
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c
