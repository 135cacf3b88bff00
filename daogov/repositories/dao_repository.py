"""
DAO Repository

DAOs and their memberships.
"""

from typing import Any

from neo4j import AsyncTransaction

from daogov.database.client import Neo4jClient
from daogov.models.governance import (
    DAO,
    DAOCreate,
    DAOMember,
    DAOUpdate,
    MemberCreate,
    MemberStatus,
)
from daogov.repositories.base import BaseRepository, to_iso


class DAORepository(BaseRepository[DAO]):
    """Repository for DAO nodes."""

    def __init__(self, client: Neo4jClient):
        super().__init__(client)

    @property
    def node_label(self) -> str:
        return "DAO"

    @property
    def model_class(self) -> type[DAO]:
        return DAO

    async def create(self, data: DAOCreate) -> DAO:
        """Create a DAO. Used for seeding; no route creates DAOs."""
        now = to_iso(self._now())
        dao_id = self._generate_id()

        query = """
        CREATE (d:DAO {
            id: $id,
            name: $name,
            description: $description,
            treasury_address: $treasury_address,
            governance_token: $governance_token,
            total_supply: $total_supply,
            quorum_threshold: $quorum_threshold,
            voting_period: $voting_period,
            created_by: $created_by,
            created_at: $now,
            updated_at: $now
        })
        RETURN d {.*} AS entity
        """

        result = await self.client.execute_single(
            query,
            {
                "id": dao_id,
                "now": now,
                **data.model_dump(),
            },
        )

        self.logger.info("dao_created", dao_id=dao_id, name=data.name)
        return self._require_model(result)

    async def update(
        self,
        dao_id: str,
        data: DAOUpdate,
        tx: AsyncTransaction | None = None,
    ) -> DAO | None:
        """Apply governance parameter changes."""
        set_parts = ["d.updated_at = $now"]
        params: dict[str, Any] = {"id": dao_id, "now": to_iso(self._now())}

        for field, value in data.model_dump(exclude_none=True).items():
            set_parts.append(f"d.{field} = ${field}")
            params[field] = value

        query = f"""
        MATCH (d:DAO {{id: $id}})
        SET {', '.join(set_parts)}
        RETURN d {{.*}} AS entity
        """

        result = await self._single(query, params, tx)
        if result and result.get("entity"):
            self.logger.info("dao_updated", dao_id=dao_id, fields=sorted(params.keys() - {"id", "now"}))
            return self._to_model(result["entity"])
        return None


class MemberRepository(BaseRepository[DAOMember]):
    """Repository for DAO memberships."""

    def __init__(self, client: Neo4jClient):
        super().__init__(client)

    @property
    def node_label(self) -> str:
        return "DAOMember"

    @property
    def model_class(self) -> type[DAOMember]:
        return DAOMember

    async def create(
        self,
        dao_id: str,
        data: MemberCreate,
        tx: AsyncTransaction | None = None,
    ) -> DAOMember:
        """
        Add a member to a DAO.

        Idempotent per (dao_id, user_id): an existing membership is returned
        unchanged.
        """
        now = to_iso(self._now())

        query = """
        MATCH (d:DAO {id: $dao_id})
        MERGE (m:DAOMember {dao_id: $dao_id, user_id: $user_id})
        ON CREATE SET
            m.id = $id,
            m.address = $address,
            m.role = $role,
            m.status = $status,
            m.voting_power = $voting_power,
            m.proposals_created = 0,
            m.votes_participated = 0,
            m.created_at = $now,
            m.updated_at = $now
        MERGE (m)-[:MEMBER_OF]->(d)
        RETURN m {.*} AS entity
        """

        result = await self._single(
            query,
            {
                "id": self._generate_id(),
                "dao_id": dao_id,
                "user_id": data.user_id,
                "address": data.address,
                "role": data.role,
                "status": MemberStatus.ACTIVE.value,
                "voting_power": data.voting_power,
                "now": now,
            },
            tx,
        )

        member = self._require_model(result)
        self.logger.info("member_added", dao_id=dao_id, member_id=member.id, role=member.role)
        return member

    async def get_membership(self, dao_id: str, user_id: str) -> DAOMember | None:
        """Resolve a user's membership in a DAO."""
        query = """
        MATCH (m:DAOMember {dao_id: $dao_id, user_id: $user_id})
        RETURN m {.*} AS entity
        """
        result = await self.client.execute_single(query, {"dao_id": dao_id, "user_id": user_id})
        if result and result.get("entity"):
            return self._to_model(result["entity"])
        return None

    async def list_active(self, dao_id: str) -> list[DAOMember]:
        """All ACTIVE members of a DAO."""
        query = """
        MATCH (m:DAOMember {dao_id: $dao_id})
        WHERE coalesce(m.status, 'ACTIVE') = 'ACTIVE'
        RETURN m {.*} AS entity
        ORDER BY m.created_at
        """
        results = await self.client.execute(query, {"dao_id": dao_id})
        return self._to_models([r["entity"] for r in results if r.get("entity")])

    async def total_active_voting_power(self, dao_id: str) -> int:
        """Sum of effective voting power (unset or 0 counts as 1) over ACTIVE members."""
        query = """
        MATCH (m:DAOMember {dao_id: $dao_id})
        WHERE coalesce(m.status, 'ACTIVE') = 'ACTIVE'
        RETURN sum(CASE WHEN coalesce(m.voting_power, 0) = 0 THEN 1 ELSE m.voting_power END) AS total
        """
        result = await self.client.execute_single(query, {"dao_id": dao_id})
        return int(result.get("total") or 0) if result else 0

    async def set_voting_powers(self, dao_id: str, powers: dict[str, int]) -> int:
        """Store recomputed voting power per member id. Returns members updated."""
        query = """
        UNWIND $rows AS row
        MATCH (m:DAOMember {id: row.member_id, dao_id: $dao_id})
        SET m.voting_power = row.voting_power, m.updated_at = $now
        RETURN count(m) AS updated
        """
        rows = [{"member_id": k, "voting_power": v} for k, v in powers.items()]
        result = await self.client.execute_single(
            query,
            {"dao_id": dao_id, "rows": rows, "now": to_iso(self._now())},
        )
        updated = result.get("updated", 0) if result else 0
        self.logger.info("voting_powers_updated", dao_id=dao_id, updated=updated)
        return updated
