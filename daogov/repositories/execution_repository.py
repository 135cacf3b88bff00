"""
Execution Task Repository

Persistent queue of timelocked proposal executions.
"""

from datetime import datetime
from typing import Any

from daogov.database.client import Neo4jClient
from daogov.models.execution import ExecutionStatus, ExecutionTask
from daogov.models.governance import DAOProposal
from daogov.repositories.base import BaseRepository, to_iso


class ExecutionRepository(BaseRepository[ExecutionTask]):
    """Repository for execution tasks (one per proposal)."""

    def __init__(self, client: Neo4jClient):
        super().__init__(client)

    @property
    def node_label(self) -> str:
        return "ExecutionTask"

    @property
    def model_class(self) -> type[ExecutionTask]:
        return ExecutionTask

    async def queue(
        self,
        proposal: DAOProposal,
        queued_at: datetime,
        scheduled_time: datetime,
        max_retries: int,
    ) -> tuple[ExecutionTask, bool]:
        """
        Create the PENDING task for a proposal and mark the proposal PASSED.

        MERGE on proposal_id makes this idempotent: a proposal that already
        has a task gets that task back untouched.

        Returns:
            Tuple of (task, whether it was created by this call)
        """
        task_id = self._generate_id()

        query = """
        MATCH (p:DAOProposal {id: $proposal_id})
        MERGE (t:ExecutionTask {proposal_id: $proposal_id})
        ON CREATE SET
            t.id = $id,
            t.dao_id = $dao_id,
            t.category = $category,
            t.status = 'PENDING',
            t.queued_at = $queued_at,
            t.scheduled_time = $scheduled_time,
            t.retry_count = 0,
            t.max_retries = $max_retries,
            t.created_at = $queued_at,
            t.updated_at = $queued_at
        MERGE (t)-[:EXECUTES]->(p)
        FOREACH (ignored IN CASE WHEN p.status = 'ACTIVE' THEN [1] ELSE [] END |
            SET p.status = 'PASSED', p.updated_at = $queued_at
        )
        RETURN t {.*} AS entity, t.id = $id AS created
        """

        result = await self.client.execute_single(
            query,
            {
                "id": task_id,
                "proposal_id": proposal.id,
                "dao_id": proposal.dao_id,
                "category": proposal.category,
                "queued_at": to_iso(queued_at),
                "scheduled_time": to_iso(scheduled_time),
                "max_retries": max_retries,
            },
        )

        task = self._require_model(result)
        created = bool(result.get("created")) if result else False
        if created:
            self.logger.info(
                "execution_queued",
                proposal_id=proposal.id,
                task_id=task.id,
                scheduled_time=to_iso(scheduled_time),
            )
        return task, created

    async def get_by_proposal(self, proposal_id: str) -> ExecutionTask | None:
        query = """
        MATCH (t:ExecutionTask {proposal_id: $proposal_id})
        RETURN t {.*} AS entity
        """
        result = await self.client.execute_single(query, {"proposal_id": proposal_id})
        if result and result.get("entity"):
            return self._to_model(result["entity"])
        return None

    async def claim_due(
        self,
        now: datetime,
        limit: int,
        lease_expired_before: datetime | None = None,
    ) -> list[ExecutionTask]:
        """
        Claim tasks ready to run and mark them EXECUTING.

        A task is ready when it is PENDING with its scheduled time passed, or
        EXECUTING but untouched since ``lease_expired_before`` (its processor
        died or lost the database mid-run). The condition is re-checked after
        the write lock is taken, so two processors polling at once never
        claim the same task.
        """
        query = """
        MATCH (t:ExecutionTask)
        WHERE (t.status = 'PENDING' AND datetime(t.scheduled_time) <= datetime($now))
           OR (t.status = 'EXECUTING' AND $lease_expired_before IS NOT NULL
               AND datetime(t.updated_at) <= datetime($lease_expired_before))
        WITH t ORDER BY t.scheduled_time ASC LIMIT $limit
        SET t.updated_at = t.updated_at
        WITH t
        WHERE (t.status = 'PENDING' AND datetime(t.scheduled_time) <= datetime($now))
           OR (t.status = 'EXECUTING' AND $lease_expired_before IS NOT NULL
               AND datetime(t.updated_at) <= datetime($lease_expired_before))
        SET t.status = 'EXECUTING', t.updated_at = $now
        RETURN t {.*} AS entity
        """
        results = await self.client.execute(
            query,
            {
                "now": to_iso(now),
                "limit": limit,
                "lease_expired_before": to_iso(lease_expired_before),
            },
        )
        return self._to_models([r["entity"] for r in results if r.get("entity")])

    async def complete(self, task_id: str, now: datetime) -> ExecutionTask | None:
        query = """
        MATCH (t:ExecutionTask {id: $id})
        WHERE t.status = 'EXECUTING'
        SET t.status = 'COMPLETED', t.completed_at = $now, t.error = null, t.updated_at = $now
        RETURN t {.*} AS entity
        """
        result = await self.client.execute_single(query, {"id": task_id, "now": to_iso(now)})
        if result and result.get("entity"):
            return self._to_model(result["entity"])
        return None

    async def record_failure(
        self,
        task_id: str,
        error: str,
        now: datetime,
        retry_at: datetime,
    ) -> ExecutionTask | None:
        """
        Count a failed attempt.

        The task goes back to PENDING at ``retry_at`` until ``max_retries``
        attempts have failed, then becomes FAILED.
        """
        query = """
        MATCH (t:ExecutionTask {id: $id})
        SET t.retry_count = coalesce(t.retry_count, 0) + 1,
            t.error = $error,
            t.updated_at = $now
        WITH t
        SET t.status = CASE WHEN t.retry_count >= t.max_retries THEN 'FAILED' ELSE 'PENDING' END,
            t.scheduled_time = CASE WHEN t.retry_count >= t.max_retries
                THEN t.scheduled_time ELSE $retry_at END,
            t.completed_at = CASE WHEN t.retry_count >= t.max_retries THEN $now ELSE null END
        RETURN t {.*} AS entity
        """
        result = await self.client.execute_single(
            query,
            {
                "id": task_id,
                "error": error[:2000],
                "now": to_iso(now),
                "retry_at": to_iso(retry_at),
            },
        )
        if result and result.get("entity"):
            return self._to_model(result["entity"])
        return None

    async def set_status(
        self,
        task_id: str,
        status: ExecutionStatus,
        now: datetime,
        error: str | None = None,
    ) -> ExecutionTask | None:
        query = """
        MATCH (t:ExecutionTask {id: $id})
        SET t.status = $status, t.error = coalesce($error, t.error), t.updated_at = $now
        RETURN t {.*} AS entity
        """
        result = await self.client.execute_single(
            query,
            {"id": task_id, "status": ExecutionStatus(status).value, "error": error, "now": to_iso(now)},
        )
        if result and result.get("entity"):
            return self._to_model(result["entity"])
        return None

    async def cancel_pending(self, proposal_id: str, now: datetime) -> ExecutionTask | None:
        """Cancel a proposal's task if it has not started executing."""
        query = """
        MATCH (t:ExecutionTask {proposal_id: $proposal_id})
        WHERE t.status = 'PENDING'
        SET t.status = 'CANCELLED', t.updated_at = $now
        RETURN t {.*} AS entity
        """
        result = await self.client.execute_single(
            query, {"proposal_id": proposal_id, "now": to_iso(now)}
        )
        if result and result.get("entity"):
            self.logger.info("execution_cancelled", proposal_id=proposal_id)
            return self._to_model(result["entity"])
        return None

    async def list_by_status(
        self,
        statuses: list[ExecutionStatus],
        dao_id: str | None = None,
    ) -> list[ExecutionTask]:
        conditions = ["t.status IN $statuses"]
        params: dict[str, Any] = {"statuses": [ExecutionStatus(s).value for s in statuses]}
        if dao_id is not None:
            conditions.append("t.dao_id = $dao_id")
            params["dao_id"] = dao_id

        query = f"""
        MATCH (t:ExecutionTask)
        WHERE {' AND '.join(conditions)}
        RETURN t {{.*}} AS entity
        ORDER BY t.scheduled_time ASC
        """
        results = await self.client.execute(query, params)
        return self._to_models([r["entity"] for r in results if r.get("entity")])
