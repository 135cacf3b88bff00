"""
Base Models and Common Types

Foundation classes for all governance models including enums,
mixins, and base model configuration.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def convert_neo4j_datetime(value: Any) -> datetime | None:
    """
    Convert a stored timestamp to an aware Python datetime.

    Accepts Neo4j DateTime objects, ISO strings (as written by the
    repositories) and naive datetimes, which are taken to be UTC.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value
    if hasattr(value, "to_native"):
        native: datetime = value.to_native()
        return native if native.tzinfo else native.replace(tzinfo=UTC)
    if isinstance(value, str):
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    return value


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


class DaoGovModel(BaseModel):
    """Base model for all governance entities with common configuration."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        str_strip_whitespace=True,
        validate_assignment=True,
        use_enum_values=True,
    )


class TimestampMixin(BaseModel):
    """Mixin providing created_at and updated_at fields."""

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def convert_datetime(cls, v: Any) -> datetime:
        """Convert Neo4j DateTime to Python datetime."""
        return convert_neo4j_datetime(v) or utc_now()


class ProposalStatus(str, Enum):
    """
    Lifecycle states of a DAO proposal.

    DRAFT -> ACTIVE -> PASSED | FAILED, PASSED -> EXECUTED, and any
    non-terminal state -> CANCELLED. EXECUTED and CANCELLED are terminal.
    """

    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    PASSED = "PASSED"
    FAILED = "FAILED"
    EXECUTED = "EXECUTED"
    CANCELLED = "CANCELLED"


TERMINAL_STATUSES = frozenset({ProposalStatus.EXECUTED, ProposalStatus.CANCELLED})
