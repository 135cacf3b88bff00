"""
DAO Governance Repositories

Data access layer over Neo4j for DAOs, members, proposals, votes,
execution tasks and treasury transactions.
"""

from daogov.repositories.base import BaseRepository
from daogov.repositories.dao_repository import DAORepository, MemberRepository
from daogov.repositories.execution_repository import ExecutionRepository
from daogov.repositories.proposal_repository import (
    ExecutionBlockedError,
    ProposalRepository,
    VoteAlreadyRecordedError,
    VoterNotFoundError,
    VotingClosedError,
)
from daogov.repositories.treasury_repository import TreasuryRepository

__all__ = [
    "BaseRepository",
    "DAORepository",
    "MemberRepository",
    "ProposalRepository",
    "ExecutionRepository",
    "TreasuryRepository",
    "ExecutionBlockedError",
    "VoteAlreadyRecordedError",
    "VoterNotFoundError",
    "VotingClosedError",
]
