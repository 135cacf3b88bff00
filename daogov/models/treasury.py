"""
Treasury Models

Ledger entries of a DAO treasury.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import Field, field_validator

from daogov.models.base import DaoGovModel, convert_neo4j_datetime


class TransactionType(str, Enum):
    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"
    INVESTMENT = "INVESTMENT"
    REWARD = "REWARD"
    FEE = "FEE"
    MILESTONE_PAYMENT = "MILESTONE_PAYMENT"


class TransactionStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    FAILED = "FAILED"


# Types that add to / subtract from the balance once CONFIRMED.
INFLOW_TYPES = frozenset({TransactionType.DEPOSIT, TransactionType.REWARD})
OUTFLOW_TYPES = frozenset(
    {
        TransactionType.WITHDRAWAL,
        TransactionType.INVESTMENT,
        TransactionType.FEE,
        TransactionType.MILESTONE_PAYMENT,
    }
)


class TreasuryTransactionCreate(DaoGovModel):
    """Schema for recording a treasury movement."""

    type: TransactionType
    amount: float = Field(gt=0)
    token: str = Field(default="USDC", min_length=1, max_length=20)
    from_address: str | None = None
    to_address: str | None = None
    description: str | None = Field(default=None, max_length=2000)
    proposal_id: str | None = None
    status: TransactionStatus = TransactionStatus.PENDING


class TreasuryTransaction(TreasuryTransactionCreate):
    """A recorded treasury movement."""

    id: str
    dao_id: str
    timestamp: datetime

    @field_validator("timestamp", mode="before")
    @classmethod
    def convert_timestamp(cls, v: Any) -> datetime | None:
        return convert_neo4j_datetime(v)


class TreasuryBalance(DaoGovModel):
    token: str
    balance: float
