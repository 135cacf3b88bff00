"""
Governance Results

Services return a GovernanceResult instead of raising for expected domain
failures (not a member, voting closed, quorum missed, ...). The HTTP layer
unwraps results and turns failures into responses.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Domain error taxonomy."""

    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    INVALID_STATE = "invalid_state"
    VOTING_NOT_ACTIVE = "voting_not_active"
    VOTING_NOT_CONCLUDED = "voting_not_concluded"
    DUPLICATE_VOTE = "duplicate_vote"
    HAS_VOTES = "has_votes"
    THRESHOLD_NOT_MET = "threshold_not_met"
    QUORUM_NOT_REACHED = "quorum_not_reached"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    INTERNAL_ERROR = "internal_error"


class VotingInactiveReason(str, Enum):
    """Why a vote was refused with VOTING_NOT_ACTIVE."""

    NOT_ACTIVE = "not_active"
    NOT_OPEN = "not_open"
    EXPIRED = "expired"


@dataclass(frozen=True)
class GovernanceError:
    kind: ErrorKind
    message: str
    details: dict[str, Any] = field(default_factory=dict)


class GovernanceFailure(Exception):
    """Raised when a failed result is unwrapped."""

    def __init__(self, error: GovernanceError):
        super().__init__(error.message)
        self.error = error

    @property
    def kind(self) -> ErrorKind:
        return self.error.kind


@dataclass
class GovernanceResult(Generic[T]):
    """Result returned from a governance operation."""

    success: bool
    value: T | None = None
    error: GovernanceError | None = None

    @classmethod
    def ok(cls, value: T | None = None) -> "GovernanceResult[T]":
        """Create a successful result."""
        return cls(success=True, value=value)

    @classmethod
    def fail(
        cls,
        kind: ErrorKind,
        message: str,
        **details: Any,
    ) -> "GovernanceResult[T]":
        """Create a failed result."""
        return cls(success=False, error=GovernanceError(kind, message, details))

    def unwrap(self) -> T:
        """Return the value, or raise GovernanceFailure for a failed result."""
        if self.error is not None:
            raise GovernanceFailure(self.error)
        return self.value  # type: ignore[return-value]


# Messages shared between services and tests
PROPOSAL_NOT_FOUND = "Proposal not found"
DAO_NOT_FOUND = "DAO not found"
MEMBER_NOT_FOUND = "Member not found"
VOTING_NOT_ACTIVE = "Voting is not active for this proposal"
NOT_A_MEMBER_VOTE = "You must be a DAO member to vote"
NOT_A_MEMBER_CREATE = "You must be a DAO member to create proposals"
ALREADY_VOTED = "You have already voted on this proposal"
ADMIN_OR_PROPOSER = "Only admins or proposal creator can {action} proposals"
ADMIN_ONLY_EXECUTE = "Only admins can execute proposals"
ADMIN_ONLY_RECALCULATE = "Only admins can recalculate voting power"
VOTING_NOT_FINISHED = "Proposal must finish voting before execution"
INSUFFICIENT_TREASURY = "Insufficient treasury funds to execute proposal"
ADMIN_ONLY_QUEUE = "Only admins can manage the execution queue"
