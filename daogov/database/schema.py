"""
Neo4j Schema Manager

Creates the constraints and indexes the governance store relies on. The
uniqueness constraints are load-bearing: one vote per member per proposal,
one membership per user per DAO and one execution task per proposal are all
enforced here rather than in application code.
"""

import re
from typing import Any

import structlog
from neo4j.exceptions import (
    ClientError,
    ConstraintError,
    DatabaseError,
    ServiceUnavailable,
)

from daogov.config import get_settings
from daogov.database.client import Neo4jClient

logger = structlog.get_logger(__name__)


_SAFE_IDENTIFIER_PATTERN = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")


def _validate_identifier(name: str) -> bool:
    """Return True if a constraint/index name is safe to interpolate."""
    if not name or len(name) > 128:
        return False
    return bool(_SAFE_IDENTIFIER_PATTERN.match(name))


CONSTRAINTS: list[tuple[str, str]] = [
    (
        "dao_id_unique",
        "CREATE CONSTRAINT dao_id_unique IF NOT EXISTS "
        "FOR (d:DAO) REQUIRE d.id IS UNIQUE"
    ),
    (
        "daomember_id_unique",
        "CREATE CONSTRAINT daomember_id_unique IF NOT EXISTS "
        "FOR (m:DAOMember) REQUIRE m.id IS UNIQUE"
    ),
    (
        "daomember_dao_user_unique",
        "CREATE CONSTRAINT daomember_dao_user_unique IF NOT EXISTS "
        "FOR (m:DAOMember) REQUIRE (m.dao_id, m.user_id) IS UNIQUE"
    ),
    (
        "daoproposal_id_unique",
        "CREATE CONSTRAINT daoproposal_id_unique IF NOT EXISTS "
        "FOR (p:DAOProposal) REQUIRE p.id IS UNIQUE"
    ),
    (
        "daovote_id_unique",
        "CREATE CONSTRAINT daovote_id_unique IF NOT EXISTS "
        "FOR (v:DAOVote) REQUIRE v.id IS UNIQUE"
    ),
    (
        "daovote_proposal_member_unique",
        "CREATE CONSTRAINT daovote_proposal_member_unique IF NOT EXISTS "
        "FOR (v:DAOVote) REQUIRE (v.proposal_id, v.member_id) IS UNIQUE"
    ),
    (
        "executiontask_id_unique",
        "CREATE CONSTRAINT executiontask_id_unique IF NOT EXISTS "
        "FOR (t:ExecutionTask) REQUIRE t.id IS UNIQUE"
    ),
    (
        "executiontask_proposal_unique",
        "CREATE CONSTRAINT executiontask_proposal_unique IF NOT EXISTS "
        "FOR (t:ExecutionTask) REQUIRE t.proposal_id IS UNIQUE"
    ),
    (
        "treasurytx_id_unique",
        "CREATE CONSTRAINT treasurytx_id_unique IF NOT EXISTS "
        "FOR (t:TreasuryTransaction) REQUIRE t.id IS UNIQUE"
    ),
]

INDEXES: list[tuple[str, str]] = [
    (
        "daomember_dao_idx",
        "CREATE INDEX daomember_dao_idx IF NOT EXISTS "
        "FOR (m:DAOMember) ON (m.dao_id)"
    ),
    (
        "daoproposal_dao_idx",
        "CREATE INDEX daoproposal_dao_idx IF NOT EXISTS "
        "FOR (p:DAOProposal) ON (p.dao_id)"
    ),
    (
        "daoproposal_status_idx",
        "CREATE INDEX daoproposal_status_idx IF NOT EXISTS "
        "FOR (p:DAOProposal) ON (p.status)"
    ),
    (
        "daoproposal_created_idx",
        "CREATE INDEX daoproposal_created_idx IF NOT EXISTS "
        "FOR (p:DAOProposal) ON (p.created_at)"
    ),
    (
        "executiontask_status_idx",
        "CREATE INDEX executiontask_status_idx IF NOT EXISTS "
        "FOR (t:ExecutionTask) ON (t.status)"
    ),
    (
        "executiontask_scheduled_idx",
        "CREATE INDEX executiontask_scheduled_idx IF NOT EXISTS "
        "FOR (t:ExecutionTask) ON (t.scheduled_time)"
    ),
    (
        "treasurytx_dao_idx",
        "CREATE INDEX treasurytx_dao_idx IF NOT EXISTS "
        "FOR (t:TreasuryTransaction) ON (t.dao_id)"
    ),
]


class SchemaManager:
    """
    Manages Neo4j schema setup.

    Schema statements are DDL and run one per implicit transaction, so a
    failed run can leave a partial schema. Every statement uses IF NOT EXISTS;
    running setup_all() again skips what exists and retries what failed.
    """

    def __init__(self, client: Neo4jClient):
        self.client = client

    async def setup_all(self) -> dict[str, bool]:
        """
        Set up all schema elements.

        Returns:
            Dict of schema element names to success status
        """
        results = {}
        results.update(await self.create_constraints())
        results.update(await self.create_indexes())

        logger.info(
            "schema_setup_complete",
            total=len(results),
            successful=sum(1 for v in results.values() if v),
            failed=sum(1 for v in results.values() if not v),
        )

        return results

    async def create_constraints(self) -> dict[str, bool]:
        """Create uniqueness constraints."""
        return await self._apply("constraint", CONSTRAINTS)

    async def create_indexes(self) -> dict[str, bool]:
        """Create lookup indexes for listing and the execution poller."""
        return await self._apply("index", INDEXES)

    async def _apply(self, kind: str, statements: list[tuple[str, str]]) -> dict[str, bool]:
        results = {}
        for name, query in statements:
            try:
                await self.client.execute(query)
                results[name] = True
                logger.debug("schema_element_created", kind=kind, name=name)
            except ConstraintError as e:
                # Existing data violates the constraint
                results[name] = False
                logger.warning("schema_constraint_conflict", kind=kind, name=name, error=str(e))
            except ClientError as e:
                results[name] = False
                logger.error("schema_client_error", kind=kind, name=name, error=str(e))
            except DatabaseError as e:
                results[name] = False
                logger.error("schema_database_error", kind=kind, name=name, error=str(e))
            except ServiceUnavailable as e:
                logger.critical("schema_database_unavailable", kind=kind, name=name, error=str(e))
                raise
            except Exception as e:
                results[name] = False
                logger.error(
                    "schema_unexpected_error",
                    kind=kind,
                    name=name,
                    error_type=type(e).__name__,
                    error=str(e),
                )

        return results

    async def drop_all(self, force: bool = False) -> dict[str, bool]:
        """
        Drop the governance constraints and indexes (for testing/reset).

        Raises:
            RuntimeError: If called in production without force=True
        """
        settings = get_settings()
        if settings.app_env == "production" and not force:
            logger.error("drop_all_blocked", environment=settings.app_env)
            raise RuntimeError(
                "drop_all() is blocked in production environment. "
                "Set force=True only if you need to reset the schema."
            )

        logger.warning("drop_all_executing", environment=settings.app_env, force=force)

        results = {}
        for kind, statements in (("CONSTRAINT", CONSTRAINTS), ("INDEX", INDEXES)):
            for name, _ in statements:
                if not _validate_identifier(name):
                    results[name] = False
                    continue
                try:
                    await self.client.execute(f"DROP {kind} {name} IF EXISTS")
                    results[name] = True
                except (ClientError, DatabaseError) as e:
                    results[name] = False
                    logger.error("schema_drop_failed", kind=kind, name=name, error=str(e))

        return results

    async def verify_schema(self) -> dict[str, Any]:
        """
        Verify that all required schema elements exist.

        Returns:
            Verification results with missing elements
        """
        expected_constraints = {name for name, _ in CONSTRAINTS}
        expected_indexes = {name for name, _ in INDEXES}

        constraints = await self.client.execute(
            "SHOW CONSTRAINTS YIELD name RETURN name"
        )
        existing_constraints = {c["name"] for c in constraints}

        indexes = await self.client.execute(
            "SHOW INDEXES YIELD name, type RETURN name, type"
        )
        existing_indexes = {i["name"] for i in indexes}

        missing_constraints = expected_constraints - existing_constraints
        missing_indexes = expected_indexes - existing_indexes

        return {
            "constraints": {
                "expected": len(expected_constraints),
                "found": len(existing_constraints & expected_constraints),
                "missing": sorted(missing_constraints),
            },
            "indexes": {
                "expected": len(expected_indexes),
                "found": len(existing_indexes & expected_indexes),
                "missing": sorted(missing_indexes),
            },
            "is_complete": not missing_constraints and not missing_indexes,
        }
