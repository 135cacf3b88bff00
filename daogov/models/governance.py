"""
Governance Models

DAOs, memberships, proposals and stake-weighted votes.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import Field, field_validator, model_validator

from daogov.models.base import (
    DaoGovModel,
    ProposalStatus,
    TimestampMixin,
    convert_neo4j_datetime,
)


class VoteType(str, Enum):
    """Vote options."""

    FOR = "FOR"
    AGAINST = "AGAINST"
    ABSTAIN = "ABSTAIN"

    @classmethod
    def from_string(cls, value: str) -> "VoteType":
        """
        Case-insensitive conversion from request input.

        Accepts the canonical names plus the common aliases
        YES/APPROVE (FOR) and NO/REJECT (AGAINST).

        Raises:
            ValueError: If value is not a valid vote type
        """
        if not isinstance(value, str):
            raise ValueError(f"VoteType must be string, got {type(value)}")

        normalized = value.strip().upper()
        alias_map = {
            "YES": "FOR",
            "APPROVE": "FOR",
            "NO": "AGAINST",
            "REJECT": "AGAINST",
        }
        canonical = alias_map.get(normalized, normalized)

        try:
            return cls(canonical)
        except ValueError as exc:
            raise ValueError(
                f"Invalid vote type '{value}'. Valid types: FOR, AGAINST, ABSTAIN"
            ) from exc


class MemberRole(str, Enum):
    """Roles a member can hold inside a DAO."""

    ADMIN = "ADMIN"
    MEMBER = "MEMBER"
    CHAIR = "CHAIR"


class MemberStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


# ═══════════════════════════════════════════════════════════════
# DAO
# ═══════════════════════════════════════════════════════════════


class DAOBase(DaoGovModel):
    """Base DAO fields."""

    name: str = Field(min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=5000)
    treasury_address: str | None = None
    governance_token: str | None = None
    total_supply: float = Field(default=1_000_000, ge=0)
    quorum_threshold: float = Field(
        default=50,
        ge=0,
        description="Quorum copied onto new proposals",
    )
    voting_period: int = Field(
        default=7,
        ge=1,
        le=365,
        description="Default voting period in days",
    )


class DAOCreate(DAOBase):
    """Schema for creating a DAO (seeding and admin tooling)."""

    created_by: str | None = None


class DAOUpdate(DaoGovModel):
    """Governance parameters that executed proposals may change."""

    quorum_threshold: float | None = Field(default=None, ge=0)
    voting_period: int | None = Field(default=None, ge=1, le=365)
    description: str | None = None


class DAO(DAOBase, TimestampMixin):
    """Complete DAO schema."""

    id: str
    created_by: str | None = None


# ═══════════════════════════════════════════════════════════════
# MEMBERSHIP
# ═══════════════════════════════════════════════════════════════


class MemberCreate(DaoGovModel):
    """Schema for adding a member to a DAO."""

    user_id: str = Field(min_length=1)
    address: str = Field(min_length=1)
    role: MemberRole = MemberRole.MEMBER
    voting_power: int = Field(default=1, ge=0)


class DAOMember(DaoGovModel, TimestampMixin):
    """A user's membership in one DAO."""

    id: str
    dao_id: str
    user_id: str
    address: str
    role: MemberRole = MemberRole.MEMBER
    status: MemberStatus = MemberStatus.ACTIVE
    voting_power: int | None = 1
    proposals_created: int = 0
    votes_participated: int = 0
    last_activity: datetime | None = None

    @field_validator("last_activity", mode="before")
    @classmethod
    def convert_activity(cls, v: Any) -> datetime | None:
        return convert_neo4j_datetime(v)

    @property
    def effective_voting_power(self) -> int:
        """Stored voting power, with unset or zero counting as 1."""
        return self.voting_power or 1

    @property
    def is_admin(self) -> bool:
        return self.role == MemberRole.ADMIN

    @property
    def is_active(self) -> bool:
        return self.status == MemberStatus.ACTIVE


# ═══════════════════════════════════════════════════════════════
# PROPOSALS
# ═══════════════════════════════════════════════════════════════


class ProposalBase(DaoGovModel):
    """Base proposal fields."""

    title: str = Field(min_length=1, max_length=200)
    description: str = Field(min_length=1, max_length=10000)
    category: str = Field(min_length=1, max_length=50)
    requested_amount: float | None = Field(default=None, ge=0)
    discussion: str | None = Field(default=None, max_length=2000)
    attachments: list[str] = Field(default_factory=list)

    @field_validator("category", mode="after")
    @classmethod
    def uppercase_category(cls, v: str) -> str:
        return v.upper()

    @field_validator("attachments", mode="before")
    @classmethod
    def parse_attachments(cls, v: Any) -> list[str]:
        """Handle attachments stored as a JSON string in the database."""
        if isinstance(v, str):
            try:
                parsed = json.loads(v)
            except json.JSONDecodeError:
                return []
            return parsed if isinstance(parsed, list) else []
        return v if v else []


class ProposalCreate(ProposalBase):
    """Schema for creating a proposal."""

    voting_period_days: int | None = Field(
        default=None,
        ge=1,
        le=365,
        description="Overrides the DAO's voting period",
    )
    threshold: float | None = Field(
        default=None,
        gt=0,
        le=100,
        description="FOR percentage required to pass",
    )


class DAOProposal(ProposalBase, TimestampMixin):
    """Complete proposal schema."""

    id: str
    dao_id: str
    proposer: str
    status: ProposalStatus = ProposalStatus.DRAFT
    quorum: float = 0
    threshold: float = 60
    start_time: datetime
    end_time: datetime
    votes_for: int = 0
    votes_against: int = 0
    votes_abstain: int = 0
    total_votes: int = 0
    executed_at: datetime | None = None

    @field_validator("start_time", "end_time", "executed_at", mode="before")
    @classmethod
    def convert_times(cls, v: Any) -> datetime | None:
        return convert_neo4j_datetime(v)

    @property
    def for_percentage(self) -> float:
        if self.total_votes <= 0:
            return 0.0
        return self.votes_for / self.total_votes * 100

    @property
    def against_percentage(self) -> float:
        if self.total_votes <= 0:
            return 0.0
        return self.votes_against / self.total_votes * 100

    def is_voting_open(self, now: datetime) -> bool:
        """Check whether a vote cast at ``now`` would be accepted."""
        return self.status == ProposalStatus.ACTIVE and self.start_time <= now <= self.end_time


# ═══════════════════════════════════════════════════════════════
# VOTES
# ═══════════════════════════════════════════════════════════════


class VoteCreate(DaoGovModel):
    """Schema for casting a vote."""

    vote_type: VoteType
    reason: str | None = Field(
        default=None,
        max_length=1000,
        description="Optional reason for vote",
    )

    @field_validator("vote_type", mode="before")
    @classmethod
    def normalize_vote_type(cls, v: Any) -> Any:
        if isinstance(v, str):
            return VoteType.from_string(v)
        return v


class DAOVote(DaoGovModel):
    """A single immutable vote."""

    id: str
    proposal_id: str
    member_id: str
    vote_type: VoteType
    voting_power: int = Field(ge=1)
    reason: str | None = None
    timestamp: datetime

    @field_validator("timestamp", mode="before")
    @classmethod
    def convert_timestamp(cls, v: Any) -> datetime | None:
        return convert_neo4j_datetime(v)


# ═══════════════════════════════════════════════════════════════
# RESULTS AND VIEWS
# ═══════════════════════════════════════════════════════════════


class ThresholdCheck(DaoGovModel):
    """Outcome of evaluating quorum and approval threshold."""

    passed: bool
    quorum_reached: bool
    for_percentage: float
    against_percentage: float = 0.0
    total_votes: int = 0
    required_quorum: float = 0.0
    threshold: float = 0.0


class ProposalView(DaoGovModel):
    """A proposal as returned to callers."""

    proposal: DAOProposal
    vote_count: int = 0
    my_vote: DAOVote | None = None


class ProposalPage(DaoGovModel):
    """Page of proposal views."""

    items: list[ProposalView]
    total: int
    page: int
    per_page: int

    @property
    def total_pages(self) -> int:
        if self.per_page <= 0:
            return 0
        return (self.total + self.per_page - 1) // self.per_page


class ExecutionReceipt(DaoGovModel):
    """Returned when a proposal is queued for execution."""

    proposal_id: str
    message: str
    execution_time: datetime


class MemberVotingPower(DaoGovModel):
    member_id: str
    user_id: str
    role: MemberRole
    voting_power: int


class QuorumThreshold(DaoGovModel):
    dao_id: str
    percentage: float = Field(ge=0, le=100)
    total_voting_power: int
    threshold: float

    @model_validator(mode="after")
    def check_threshold(self) -> "QuorumThreshold":
        if self.threshold > self.total_voting_power:
            raise ValueError("threshold cannot exceed total voting power")
        return self
