"""
DAO Governance Models

Pydantic models for all domain entities.
"""

from daogov.models.base import (
    TERMINAL_STATUSES,
    DaoGovModel,
    ProposalStatus,
    TimestampMixin,
)
from daogov.models.execution import ExecutionStatus, ExecutionTask, QueueStatus
from daogov.models.governance import (
    DAO,
    DAOCreate,
    DAOMember,
    DAOProposal,
    DAOUpdate,
    DAOVote,
    ExecutionReceipt,
    MemberCreate,
    MemberRole,
    MemberStatus,
    MemberVotingPower,
    ProposalCreate,
    ProposalPage,
    ProposalView,
    QuorumThreshold,
    ThresholdCheck,
    VoteCreate,
    VoteType,
)
from daogov.models.treasury import (
    TransactionStatus,
    TransactionType,
    TreasuryBalance,
    TreasuryTransaction,
    TreasuryTransactionCreate,
)
from daogov.models.user import TokenPayload

__all__ = [
    # Base
    "DaoGovModel",
    "TimestampMixin",
    "ProposalStatus",
    "TERMINAL_STATUSES",
    # Governance
    "DAO",
    "DAOCreate",
    "DAOUpdate",
    "DAOMember",
    "MemberCreate",
    "MemberRole",
    "MemberStatus",
    "MemberVotingPower",
    "DAOProposal",
    "ProposalCreate",
    "ProposalView",
    "ProposalPage",
    "DAOVote",
    "VoteCreate",
    "VoteType",
    "ThresholdCheck",
    "QuorumThreshold",
    "ExecutionReceipt",
    # Execution
    "ExecutionStatus",
    "ExecutionTask",
    "QueueStatus",
    # Treasury
    "TransactionType",
    "TransactionStatus",
    "TreasuryTransaction",
    "TreasuryTransactionCreate",
    "TreasuryBalance",
    # Identity
    "TokenPayload",
]
