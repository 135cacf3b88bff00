"""
DAO Governance API Routes Module

Exports all API routers for inclusion in the main FastAPI application.
"""

from daogov.api.routes.governance import router as governance_router
from daogov.api.routes.proposals import router as proposals_router

__all__ = [
    "governance_router",
    "proposals_router",
]
