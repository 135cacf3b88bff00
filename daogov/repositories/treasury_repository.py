"""
Treasury Repository

Append-only ledger of a DAO's treasury movements.
"""

from datetime import datetime

from neo4j import AsyncTransaction

from daogov.database.client import Neo4jClient
from daogov.models.treasury import (
    INFLOW_TYPES,
    OUTFLOW_TYPES,
    TreasuryBalance,
    TreasuryTransaction,
    TreasuryTransactionCreate,
)
from daogov.repositories.base import BaseRepository, to_iso


class TreasuryRepository(BaseRepository[TreasuryTransaction]):
    """Repository for treasury transactions."""

    def __init__(self, client: Neo4jClient):
        super().__init__(client)

    @property
    def node_label(self) -> str:
        return "TreasuryTransaction"

    @property
    def model_class(self) -> type[TreasuryTransaction]:
        return TreasuryTransaction

    async def create(
        self,
        dao_id: str,
        data: TreasuryTransactionCreate,
        timestamp: datetime,
        tx: AsyncTransaction | None = None,
    ) -> TreasuryTransaction:
        """Record a treasury movement."""
        tx_id = self._generate_id()

        query = """
        MATCH (d:DAO {id: $dao_id})
        CREATE (t:TreasuryTransaction {
            id: $id,
            dao_id: $dao_id,
            type: $type,
            amount: $amount,
            token: $token,
            from_address: $from_address,
            to_address: $to_address,
            description: $description,
            proposal_id: $proposal_id,
            status: $status,
            timestamp: $timestamp
        })
        CREATE (t)-[:OF_TREASURY]->(d)
        RETURN t {.*} AS entity
        """

        result = await self._single(
            query,
            {
                "id": tx_id,
                "dao_id": dao_id,
                "timestamp": to_iso(timestamp),
                **data.model_dump(),
            },
            tx,
        )

        transaction = self._require_model(result)
        self.logger.info(
            "treasury_transaction_recorded",
            dao_id=dao_id,
            transaction_id=tx_id,
            type=data.type,
            amount=data.amount,
            token=data.token,
            proposal_id=data.proposal_id,
        )
        return transaction

    async def balances(self, dao_id: str) -> list[TreasuryBalance]:
        """
        Balance per token from CONFIRMED transactions.

        Returns every token seen, including zero and negative balances.
        """
        query = """
        MATCH (t:TreasuryTransaction {dao_id: $dao_id, status: 'CONFIRMED'})
        WITH t.token AS token,
             sum(CASE
                 WHEN t.type IN $inflow THEN t.amount
                 WHEN t.type IN $outflow THEN -t.amount
                 ELSE 0
             END) AS balance
        RETURN token, balance
        ORDER BY balance DESC
        """
        results = await self.client.execute(
            query,
            {
                "dao_id": dao_id,
                "inflow": sorted(t.value for t in INFLOW_TYPES),
                "outflow": sorted(t.value for t in OUTFLOW_TYPES),
            },
        )
        return [TreasuryBalance(token=r["token"], balance=r["balance"]) for r in results]

    async def list_for_dao(self, dao_id: str, limit: int = 50) -> list[TreasuryTransaction]:
        query = """
        MATCH (t:TreasuryTransaction {dao_id: $dao_id})
        RETURN t {.*} AS entity
        ORDER BY t.timestamp DESC
        LIMIT $limit
        """
        results = await self.client.execute(
            query, {"dao_id": dao_id, "limit": min(max(1, limit), 500)}
        )
        return self._to_models([r["entity"] for r in results if r.get("entity")])
