"""
Execution Models

Timelocked execution tasks for passed proposals.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import Field, field_validator

from daogov.models.base import DaoGovModel, TimestampMixin, convert_neo4j_datetime


class ExecutionStatus(str, Enum):
    """Lifecycle of an execution task."""

    PENDING = "PENDING"
    EXECUTING = "EXECUTING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class ExecutionTask(DaoGovModel, TimestampMixin):
    """One queued execution; at most one exists per proposal."""

    id: str
    proposal_id: str
    dao_id: str
    category: str
    status: ExecutionStatus = ExecutionStatus.PENDING
    queued_at: datetime
    scheduled_time: datetime
    retry_count: int = Field(default=0, ge=0)
    max_retries: int = Field(default=3, ge=1)
    error: str | None = None
    completed_at: datetime | None = None

    @field_validator("queued_at", "scheduled_time", "completed_at", mode="before")
    @classmethod
    def convert_times(cls, v: Any) -> datetime | None:
        return convert_neo4j_datetime(v)

    @property
    def retries_exhausted(self) -> bool:
        return self.retry_count >= self.max_retries


class QueueStatus(DaoGovModel):
    """Snapshot of the execution queue."""

    pending: list[ExecutionTask] = Field(default_factory=list)
    executing: list[ExecutionTask] = Field(default_factory=list)
    total_pending: int = 0
    total_executing: int = 0
