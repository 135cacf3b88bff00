"""
Proposal Repository

Proposals and the votes cast on them. Vote recording runs in one explicit
transaction that holds the proposal's write lock from the status re-check
until the auto-close decision has been written.
"""

import json
from collections.abc import Awaitable, Callable, Iterable
from datetime import datetime
from typing import Any

from neo4j import AsyncTransaction
from neo4j.exceptions import ConstraintError

from daogov.database.client import Neo4jClient, tx_single
from daogov.models.base import ProposalStatus
from daogov.models.governance import (
    DAO,
    DAOMember,
    DAOProposal,
    DAOVote,
    ProposalCreate,
    VoteType,
)
from daogov.repositories.base import BaseRepository, to_iso


class VoteAlreadyRecordedError(Exception):
    """The (proposal, member) vote uniqueness constraint rejected a vote."""

    def __init__(self, proposal_id: str, member_id: str):
        super().__init__(f"Member {member_id} already voted on proposal {proposal_id}")
        self.proposal_id = proposal_id
        self.member_id = member_id


class VotingClosedError(Exception):
    """The proposal stopped accepting votes before the vote was written."""

    def __init__(self, proposal_id: str):
        super().__init__(f"Proposal {proposal_id} is not accepting votes")
        self.proposal_id = proposal_id


class VoterNotFoundError(Exception):
    """The voting member's node no longer exists."""

    def __init__(self, member_id: str):
        super().__init__(f"Member {member_id} not found")
        self.member_id = member_id


class ExecutionBlockedError(Exception):
    """The EXECUTED write was refused because the timelock has not elapsed."""

    def __init__(self, proposal_id: str):
        super().__init__(f"Execution of proposal {proposal_id} blocked by timelock")
        self.proposal_id = proposal_id


_RECORD_VOTE_QUERY = """
MATCH (p:DAOProposal {id: $proposal_id})
SET p.updated_at = $now
WITH p
WHERE p.status = 'ACTIVE'
  AND datetime(p.start_time) <= datetime($now)
  AND datetime($now) <= datetime(p.end_time)
MATCH (m:DAOMember {id: $member_id})
CREATE (v:DAOVote {
    id: $vote_id,
    proposal_id: p.id,
    member_id: m.id,
    vote_type: $vote_type,
    voting_power: $voting_power,
    reason: $reason,
    timestamp: $now
})
CREATE (m)-[:CAST]->(v)-[:ON]->(p)
SET p.votes_for = coalesce(p.votes_for, 0)
        + CASE WHEN $vote_type = 'FOR' THEN $voting_power ELSE 0 END,
    p.votes_against = coalesce(p.votes_against, 0)
        + CASE WHEN $vote_type = 'AGAINST' THEN $voting_power ELSE 0 END,
    p.votes_abstain = coalesce(p.votes_abstain, 0)
        + CASE WHEN $vote_type = 'ABSTAIN' THEN $voting_power ELSE 0 END,
    p.total_votes = coalesce(p.total_votes, 0) + $voting_power,
    m.votes_participated = coalesce(m.votes_participated, 0) + 1,
    m.last_activity = $now
RETURN v {.*} AS vote, p {.*} AS proposal
"""

_CLOSE_VOTING_QUERY = """
MATCH (p:DAOProposal {id: $proposal_id})
WHERE p.status = 'ACTIVE'
SET p.status = $status, p.end_time = $now, p.updated_at = $now
RETURN p {.*} AS entity
"""

_VOTER_EXISTS_QUERY = """
MATCH (m:DAOMember {id: $member_id})
RETURN m.id AS id
"""

_LOCK_PROPOSAL_QUERY = """
MATCH (p:DAOProposal {id: $id})
SET p.updated_at = $now
RETURN p {.*} AS entity
"""

_MARK_EXECUTED_QUERY = """
MATCH (p:DAOProposal {id: $id})
MATCH (t:ExecutionTask {proposal_id: $id})
WHERE p.status = 'PASSED'
  AND datetime(t.queued_at) + duration({hours: $timelock_hours}) <= datetime($now)
SET p.status = 'EXECUTED',
    p.executed_at = $now,
    p.updated_at = $now
RETURN p {.*} AS entity
"""


class ProposalRepository(BaseRepository[DAOProposal]):
    """
    Repository for proposals and votes.

    Status changes go through guarded writes: each transition names the
    statuses it may leave from, and returns None when the stored proposal
    is no longer in one of them.
    """

    def __init__(self, client: Neo4jClient):
        super().__init__(client)

    @property
    def node_label(self) -> str:
        return "DAOProposal"

    @property
    def model_class(self) -> type[DAOProposal]:
        return DAOProposal

    # ═══════════════════════════════════════════════════════════════
    # PROPOSALS
    # ═══════════════════════════════════════════════════════════════

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
        """
        Create a proposal and bump the proposer's ``proposals_created``.

        Both writes happen in one statement.
        """
        if end_time <= start_time:
            raise ValueError("end_time must be after start_time")

        proposal_id = self._generate_id()
        now = to_iso(start_time)

        query = """
        MATCH (m:DAOMember {id: $member_id})
        CREATE (p:DAOProposal {
            id: $id,
            dao_id: $dao_id,
            title: $title,
            description: $description,
            category: $category,
            proposer: $proposer,
            status: $status,
            requested_amount: $requested_amount,
            quorum: $quorum,
            threshold: $threshold,
            start_time: $start_time,
            end_time: $end_time,
            votes_for: 0,
            votes_against: 0,
            votes_abstain: 0,
            total_votes: 0,
            discussion: $discussion,
            attachments: $attachments,
            created_at: $now,
            updated_at: $now
        })
        CREATE (m)-[:PROPOSED]->(p)
        SET m.proposals_created = coalesce(m.proposals_created, 0) + 1,
            m.last_activity = $now
        RETURN p {.*} AS entity
        """

        result = await self.client.execute_single(
            query,
            {
                "id": proposal_id,
                "member_id": member.id,
                "dao_id": dao.id,
                "title": data.title,
                "description": data.description,
                "category": data.category,
                "proposer": member.address,
                "status": ProposalStatus(status).value,
                "requested_amount": data.requested_amount,
                "quorum": dao.quorum_threshold,
                "threshold": threshold,
                "start_time": to_iso(start_time),
                "end_time": to_iso(end_time),
                "discussion": data.discussion,
                "attachments": json.dumps(data.attachments),
                "now": now,
            },
        )

        proposal = self._require_model(result)
        self.logger.info(
            "proposal_created",
            proposal_id=proposal_id,
            dao_id=dao.id,
            category=data.category,
            proposer=member.address,
        )
        return proposal

    async def list_for_dao(
        self,
        dao_id: str,
        status: ProposalStatus | None = None,
        category: str | None = None,
        skip: int = 0,
        limit: int = 20,
    ) -> tuple[list[DAOProposal], int]:
        """
        List a DAO's proposals, newest first.

        Returns:
            Tuple of (proposals, total count)
        """
        conditions = ["p.dao_id = $dao_id"]
        params: dict[str, Any] = {
            "dao_id": dao_id,
            "skip": max(0, skip),
            "limit": min(max(1, limit), 100),
        }

        if status is not None:
            conditions.append("p.status = $status")
            params["status"] = ProposalStatus(status).value
        if category:
            conditions.append("p.category = $category")
            params["category"] = category.upper()

        where_clause = " AND ".join(conditions)

        count_query = f"""
        MATCH (p:DAOProposal)
        WHERE {where_clause}
        RETURN count(p) AS total
        """
        count_result = await self.client.execute_single(count_query, params)
        total = count_result.get("total", 0) if count_result else 0

        query = f"""
        MATCH (p:DAOProposal)
        WHERE {where_clause}
        RETURN p {{.*}} AS entity
        ORDER BY p.created_at DESC
        SKIP $skip
        LIMIT $limit
        """
        results = await self.client.execute(query, params)
        proposals = self._to_models([r["entity"] for r in results if r.get("entity")])

        return proposals, total

    async def transition(
        self,
        proposal_id: str,
        new_status: ProposalStatus,
        from_statuses: Iterable[ProposalStatus],
        end_time: datetime | None = None,
    ) -> DAOProposal | None:
        """
        Move a proposal to ``new_status`` if it is currently in one of
        ``from_statuses``.

        Returns:
            Updated proposal, or None if it is missing or the guard failed
        """
        query = """
        MATCH (p:DAOProposal {id: $id})
        WHERE p.status IN $from_statuses
        SET p.status = $status,
            p.end_time = coalesce($end_time, p.end_time),
            p.updated_at = $now
        RETURN p {.*} AS entity
        """

        result = await self.client.execute_single(
            query,
            {
                "id": proposal_id,
                "status": ProposalStatus(new_status).value,
                "from_statuses": [ProposalStatus(s).value for s in from_statuses],
                "end_time": to_iso(end_time),
                "now": to_iso(self._now()),
            },
        )

        if result and result.get("entity"):
            self.logger.info("proposal_status_changed", proposal_id=proposal_id, status=new_status)
            return self._to_model(result["entity"])
        return None

    async def execute_locked(
        self,
        proposal_id: str,
        now: datetime,
        timelock_hours: int,
        action: Callable[[DAOProposal, AsyncTransaction], Awaitable[None]],
    ) -> DAOProposal | None:
        """
        Run ``action`` and set the proposal EXECUTED in one transaction.

        The proposal's write lock is taken first and its status re-checked
        under it, so a concurrent cancel either lands before (and nothing
        runs) or waits for the commit (and finds EXECUTED). ``action`` must
        do its writes through the transaction it is given. The EXECUTED
        write only happens if the task was queued at least
        ``timelock_hours`` before ``now``.

        Returns:
            The EXECUTED proposal; the proposal as found if it is no longer
            PASSED (``action`` is not run); None if it does not exist

        Raises:
            ExecutionBlockedError: The timelock guard refused the write;
                everything ``action`` wrote is rolled back
        """
        params = {"id": proposal_id, "now": to_iso(now), "timelock_hours": timelock_hours}

        async def work(tx: AsyncTransaction) -> DAOProposal | None:
            locked = await tx_single(tx, _LOCK_PROPOSAL_QUERY, params)
            if not locked or not locked.get("entity"):
                return None
            proposal = self._require_model(locked)
            if proposal.status != ProposalStatus.PASSED:
                return proposal

            await action(proposal, tx)

            executed = await tx_single(tx, _MARK_EXECUTED_QUERY, params)
            if not executed or not executed.get("entity"):
                raise ExecutionBlockedError(proposal_id)
            return self._require_model(executed)

        try:
            proposal = await self.client.run_in_transaction(work)
        except ExecutionBlockedError:
            self.logger.warning("proposal_execution_blocked", proposal_id=proposal_id)
            raise

        if proposal is not None and proposal.status == ProposalStatus.EXECUTED:
            self.logger.info("proposal_executed", proposal_id=proposal_id)
        return proposal

    async def delete_if_unvoted(self, proposal_id: str) -> bool:
        """
        Hard-delete a proposal that has no votes and was never executed.

        The write lock is taken before the vote check so a vote racing the
        delete either lands first (and blocks it) or finds no proposal.
        """
        query = """
        MATCH (p:DAOProposal {id: $id})
        SET p.updated_at = $now
        WITH p
        WHERE p.status <> 'EXECUTED'
          AND NOT EXISTS { MATCH (:DAOVote {proposal_id: $id}) }
        DETACH DELETE p
        RETURN count(*) AS deleted
        """

        result = await self.client.execute_single(
            query, {"id": proposal_id, "now": to_iso(self._now())}
        )
        deleted = result.get("deleted", 0) if result else 0

        if deleted > 0:
            self.logger.info("proposal_deleted", proposal_id=proposal_id)
        return deleted > 0

    # ═══════════════════════════════════════════════════════════════
    # VOTES
    # ═══════════════════════════════════════════════════════════════

    async def get_vote(self, proposal_id: str, member_id: str) -> DAOVote | None:
        query = """
        MATCH (v:DAOVote {proposal_id: $proposal_id, member_id: $member_id})
        RETURN v {.*} AS vote
        """
        result = await self.client.execute_single(
            query, {"proposal_id": proposal_id, "member_id": member_id}
        )
        if result and result.get("vote"):
            return DAOVote.model_validate(result["vote"])
        return None

    async def count_votes(self, proposal_ids: list[str]) -> dict[str, int]:
        """Number of votes per proposal id."""
        query = """
        UNWIND $ids AS pid
        OPTIONAL MATCH (v:DAOVote {proposal_id: pid})
        RETURN pid AS proposal_id, count(v) AS votes
        """
        results = await self.client.execute(query, {"ids": proposal_ids})
        return {r["proposal_id"]: r["votes"] for r in results}

    async def votes_by_member(self, proposal_ids: list[str], member_id: str) -> dict[str, DAOVote]:
        """A member's votes on the given proposals, keyed by proposal id."""
        query = """
        MATCH (v:DAOVote {member_id: $member_id})
        WHERE v.proposal_id IN $ids
        RETURN v {.*} AS vote
        """
        results = await self.client.execute(query, {"ids": proposal_ids, "member_id": member_id})
        votes = (DAOVote.model_validate(r["vote"]) for r in results if r.get("vote"))
        return {v.proposal_id: v for v in votes}

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
        """
        Persist a vote, update tallies and apply the auto-close outcome.

        ``decide_outcome`` sees the proposal with post-increment tallies and
        returns the status to close it with, or None to leave it open.

        Raises:
            VotingClosedError: The proposal was not open for votes at ``now``
            VoterNotFoundError: The member node is gone
            VoteAlreadyRecordedError: The member had already voted
        """
        params = {
            "proposal_id": proposal_id,
            "member_id": member_id,
            "vote_id": self._generate_id(),
            "vote_type": VoteType(vote_type).value,
            "voting_power": voting_power,
            "reason": reason,
            "now": to_iso(now),
        }

        async def work(tx: AsyncTransaction) -> tuple[DAOVote, DAOProposal]:
            record = await tx_single(tx, _RECORD_VOTE_QUERY, params)
            if record is None:
                if await tx_single(tx, _VOTER_EXISTS_QUERY, {"member_id": member_id}) is None:
                    raise VoterNotFoundError(member_id)
                raise VotingClosedError(proposal_id)

            vote = DAOVote.model_validate(record["vote"])
            proposal = self._require_model(record, key="proposal")

            outcome = decide_outcome(proposal)
            if outcome is not None:
                closed = await tx_single(
                    tx,
                    _CLOSE_VOTING_QUERY,
                    {
                        "proposal_id": proposal_id,
                        "status": ProposalStatus(outcome).value,
                        "now": params["now"],
                    },
                )
                proposal = self._require_model(closed)
            return vote, proposal

        try:
            vote, proposal = await self.client.run_in_transaction(work)
        except ConstraintError as e:
            raise VoteAlreadyRecordedError(proposal_id, member_id) from e

        self.logger.info(
            "vote_recorded",
            proposal_id=proposal_id,
            member_id=member_id,
            vote_type=params["vote_type"],
            voting_power=voting_power,
            status=proposal.status,
        )
        return vote, proposal
