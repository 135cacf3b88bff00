"""
DAO Governance - FastAPI Dependencies
Dependency injection for API routes.

Provides:
- Database client injection
- Caller identity extraction from the bearer JWT
- Repository and service instances
- Pagination and request context
"""

from typing import Annotated, Any

import structlog
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from daogov.config import Settings, get_settings
from daogov.database.client import Neo4jClient
from daogov.monitoring.logging import bind_context
from daogov.repositories.dao_repository import DAORepository, MemberRepository
from daogov.repositories.execution_repository import ExecutionRepository
from daogov.repositories.proposal_repository import ProposalRepository
from daogov.repositories.treasury_repository import TreasuryRepository
from daogov.security.tokens import TokenError, verify_token
from daogov.services.execution_queue import ExecutionQueue
from daogov.services.lifecycle import ProposalLifecycleManager
from daogov.services.treasury import TreasuryService
from daogov.services.vote_recorder import VoteRecorder
from daogov.services.voting_weight import VotingWeightResolver

logger = structlog.get_logger(__name__)

# Security scheme
security = HTTPBearer(auto_error=False)


# =============================================================================
# Settings
# =============================================================================

def get_app_settings() -> Settings:
    """Get application settings."""
    return get_settings()


SettingsDep = Annotated[Settings, Depends(get_app_settings)]


# =============================================================================
# App Access
# =============================================================================

def get_governance_app(request: Request) -> Any:
    """Get the GovernanceApp instance from request state."""
    if not hasattr(request.app.state, 'governance'):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Governance application not initialized",
        )
    return request.app.state.governance


# =============================================================================
# Database
# =============================================================================

async def get_db_client(request: Request) -> Neo4jClient:
    """Get database client."""
    governance = get_governance_app(request)
    if not governance.db_client:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database not connected",
        )
    return governance.db_client


DbClientDep = Annotated[Neo4jClient, Depends(get_db_client)]


# =============================================================================
# Repositories
# =============================================================================

async def get_dao_repository(db: DbClientDep) -> DAORepository:
    return DAORepository(db)


async def get_member_repository(db: DbClientDep) -> MemberRepository:
    return MemberRepository(db)


async def get_proposal_repository(db: DbClientDep) -> ProposalRepository:
    return ProposalRepository(db)


async def get_execution_repository(db: DbClientDep) -> ExecutionRepository:
    return ExecutionRepository(db)


async def get_treasury_repository(db: DbClientDep) -> TreasuryRepository:
    return TreasuryRepository(db)


DAORepoDep = Annotated[DAORepository, Depends(get_dao_repository)]
MemberRepoDep = Annotated[MemberRepository, Depends(get_member_repository)]
ProposalRepoDep = Annotated[ProposalRepository, Depends(get_proposal_repository)]
ExecutionRepoDep = Annotated[ExecutionRepository, Depends(get_execution_repository)]
TreasuryRepoDep = Annotated[TreasuryRepository, Depends(get_treasury_repository)]


# =============================================================================
# Services
# =============================================================================

async def get_treasury_service(
    transactions: TreasuryRepoDep,
    settings: SettingsDep,
) -> TreasuryService:
    return TreasuryService(transactions, settings=settings)


TreasuryServiceDep = Annotated[TreasuryService, Depends(get_treasury_service)]


async def get_voting_weight_resolver(
    proposals: ProposalRepoDep,
    members: MemberRepoDep,
    settings: SettingsDep,
) -> VotingWeightResolver:
    return VotingWeightResolver(proposals, members, settings=settings)


async def get_vote_recorder(
    proposals: ProposalRepoDep,
    members: MemberRepoDep,
) -> VoteRecorder:
    return VoteRecorder(proposals, members)


async def get_execution_queue(
    executions: ExecutionRepoDep,
    proposals: ProposalRepoDep,
    daos: DAORepoDep,
    members: MemberRepoDep,
    treasury: TreasuryServiceDep,
    settings: SettingsDep,
) -> ExecutionQueue:
    return ExecutionQueue(executions, proposals, daos, members, treasury, settings=settings)


VotingWeightDep = Annotated[VotingWeightResolver, Depends(get_voting_weight_resolver)]
VoteRecorderDep = Annotated[VoteRecorder, Depends(get_vote_recorder)]
ExecutionQueueDep = Annotated[ExecutionQueue, Depends(get_execution_queue)]


async def get_lifecycle_manager(
    proposals: ProposalRepoDep,
    members: MemberRepoDep,
    daos: DAORepoDep,
    resolver: VotingWeightDep,
    treasury: TreasuryServiceDep,
    queue: ExecutionQueueDep,
    settings: SettingsDep,
) -> ProposalLifecycleManager:
    """Get the proposal lifecycle manager with its collaborators."""
    return ProposalLifecycleManager(
        proposals, members, daos, resolver, treasury, queue, settings=settings
    )


LifecycleDep = Annotated[ProposalLifecycleManager, Depends(get_lifecycle_manager)]


# =============================================================================
# Authentication
# =============================================================================

async def get_optional_caller_id(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    settings: SettingsDep,
) -> str | None:
    """
    Caller identity from the bearer token's ``sub`` claim.

    Returns None when no token is sent or the token does not verify.
    """
    if credentials is None:
        return None

    try:
        payload = verify_token(credentials.credentials, settings.jwt_secret_key)
    except TokenError as e:
        logger.info("token_rejected", reason=str(e))
        return None

    request.state.caller_id = payload.sub
    bind_context(caller_id=payload.sub)
    return payload.sub


async def get_caller_id(
    caller_id: Annotated[str | None, Depends(get_optional_caller_id)],
) -> str:
    """Require an authenticated caller."""
    if not caller_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return caller_id


OptionalCallerDep = Annotated[str | None, Depends(get_optional_caller_id)]
CallerIdDep = Annotated[str, Depends(get_caller_id)]


# =============================================================================
# Pagination
# =============================================================================

class PaginationParams:
    """Standard pagination parameters."""

    def __init__(
        self,
        page: int = 1,
        per_page: int = 20,
        max_per_page: int = 100,
    ):
        self.page = max(1, page)
        self.per_page = min(max(1, per_page), max_per_page)
        self.offset = (self.page - 1) * self.per_page


def get_pagination(
    page: int = 1,
    per_page: int = 20,
) -> PaginationParams:
    """Get pagination parameters from query."""
    return PaginationParams(page=page, per_page=per_page)


PaginationDep = Annotated[PaginationParams, Depends(get_pagination)]


# =============================================================================
# Request Context
# =============================================================================

async def get_correlation_id(request: Request) -> str:
    """Get request correlation ID."""
    return getattr(request.state, 'correlation_id', 'unknown')


CorrelationIdDep = Annotated[str, Depends(get_correlation_id)]


# =============================================================================
# Export
# =============================================================================

__all__ = [
    # Settings
    "SettingsDep",
    "get_app_settings",
    # Database
    "DbClientDep",
    "get_db_client",
    # Repositories
    "DAORepoDep",
    "MemberRepoDep",
    "ProposalRepoDep",
    "ExecutionRepoDep",
    "TreasuryRepoDep",
    # Services
    "TreasuryServiceDep",
    "VotingWeightDep",
    "VoteRecorderDep",
    "ExecutionQueueDep",
    "LifecycleDep",
    # Auth
    "OptionalCallerDep",
    "CallerIdDep",
    "get_caller_id",
    "get_optional_caller_id",
    # Pagination
    "PaginationParams",
    "PaginationDep",
    # Context
    "CorrelationIdDep",
]
