"""
DAO Governance Services Module

Contains the governance workflow:
- VoteRecorder: validates and records votes, auto-closes on majority
- ProposalLifecycleManager: status transitions and admin actions
- VotingWeightResolver: voting power, quorum and threshold evaluation
- ExecutionQueue: timelocked execution of passed proposals
- TreasuryService: funds checks and disbursement records
- BackgroundScheduler: periodic execution processing
"""

from .execution_queue import (
    ExecutionError,
    ExecutionQueue,
    ProcessingStats,
    build_execution_queue,
)
from .lifecycle import ProposalLifecycleManager
from .results import (
    ErrorKind,
    GovernanceError,
    GovernanceFailure,
    GovernanceResult,
    VotingInactiveReason,
)
from .scheduler import (
    BackgroundScheduler,
    ScheduledTask,
    SchedulerStats,
    get_scheduler,
    setup_scheduler,
)
from .treasury import TreasuryService
from .vote_recorder import VoteRecorder
from .voting_weight import VotingWeightResolver, calculate_voting_power

__all__ = [
    # Results
    "ErrorKind",
    "GovernanceError",
    "GovernanceFailure",
    "GovernanceResult",
    "VotingInactiveReason",
    # Workflow
    "VoteRecorder",
    "ProposalLifecycleManager",
    "VotingWeightResolver",
    "calculate_voting_power",
    "ExecutionQueue",
    "ExecutionError",
    "ProcessingStats",
    "build_execution_queue",
    "TreasuryService",
    # Scheduler
    "BackgroundScheduler",
    "ScheduledTask",
    "SchedulerStats",
    "get_scheduler",
    "setup_scheduler",
]
