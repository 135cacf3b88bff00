"""
Treasury Service

Funds checks and disbursement records for a DAO treasury.
"""

from collections.abc import Callable
from datetime import datetime

import structlog
from neo4j import AsyncTransaction

from daogov.config import Settings, get_settings
from daogov.models.base import utc_now
from daogov.models.treasury import (
    TreasuryBalance,
    TreasuryTransaction,
    TreasuryTransactionCreate,
)
from daogov.repositories.treasury_repository import TreasuryRepository

logger = structlog.get_logger(__name__)


class TreasuryService:
    def __init__(
        self,
        transactions: TreasuryRepository,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.transactions = transactions
        self.settings = settings or get_settings()
        self.clock = clock

    async def get_dao_balance(self, dao_id: str) -> list[TreasuryBalance]:
        """Positive balances per token, largest first."""
        balances = await self.transactions.balances(dao_id)
        positive = [b for b in balances if b.balance > 0]
        return sorted(positive, key=lambda b: b.balance, reverse=True)

    async def check_funds_availability(
        self,
        dao_id: str,
        amount: float,
        token: str | None = None,
    ) -> bool:
        """True if the DAO holds at least ``amount`` of ``token``."""
        token = token or self.settings.treasury_default_token
        balances = await self.transactions.balances(dao_id)
        available = next((b.balance for b in balances if b.token == token), 0.0)
        sufficient = available >= amount

        if not sufficient:
            logger.info(
                "treasury_funds_insufficient",
                dao_id=dao_id,
                token=token,
                requested=amount,
                available=available,
            )
        return sufficient

    async def record_transaction(
        self,
        dao_id: str,
        data: TreasuryTransactionCreate,
        tx: AsyncTransaction | None = None,
    ) -> TreasuryTransaction:
        """Record a movement stamped with the service clock, inside ``tx`` if given."""
        return await self.transactions.create(dao_id, data, timestamp=self.clock(), tx=tx)
