"""
DAO Governance - Proposal Voting and Execution Service

Vote tallying, quorum and threshold checks, majority auto-close and
timelocked execution of passed proposals.
"""

__version__ = "1.0.0"

from daogov.config import settings

__all__ = ["settings", "__version__"]
