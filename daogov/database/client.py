"""
Neo4j Async Client

Async wrapper for Neo4j Python driver with connection pooling,
transaction management, and retry logic.
"""

from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, TypeVar

import structlog
from neo4j import AsyncDriver, AsyncGraphDatabase, AsyncSession, AsyncTransaction
from neo4j.exceptions import (
    ServiceUnavailable,
    SessionExpired,
    TransientError,
)
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from daogov.config import settings

logger = structlog.get_logger(__name__)

R = TypeVar("R")

# Retry configuration for transient errors
RETRYABLE_EXCEPTIONS = (ServiceUnavailable, SessionExpired, TransientError)


async def tx_single(
    tx: AsyncTransaction,
    query: str,
    parameters: dict[str, Any] | None = None,
) -> dict[str, Any] | None:
    """Run a query inside an open transaction and return one record."""
    result = await tx.run(query, parameters or {})
    record = await result.single()
    return dict(record) if record else None




class Neo4jClient:
    """
    Async Neo4j client for the governance store.

    Provides connection pooling, transaction management,
    and helper methods for common operations.
    """

    def __init__(
        self,
        uri: str | None = None,
        user: str | None = None,
        password: str | None = None,
        database: str | None = None,
    ):
        """
        Initialize Neo4j client.

        Args:
            uri: Neo4j connection URI (defaults to settings)
            user: Username (defaults to settings)
            password: Password (defaults to settings)
            database: Database name (defaults to settings)
        """
        self._uri = uri or settings.neo4j_uri
        self._user = user or settings.neo4j_user
        self._password = password or settings.neo4j_password
        self._database = database or settings.neo4j_database

        self._driver: AsyncDriver | None = None
        self._connected = False

    async def connect(self) -> None:
        """Establish connection to Neo4j."""
        if self._driver is not None:
            return

        logger.info("neo4j_connecting", uri=self._uri, database=self._database)

        self._driver = AsyncGraphDatabase.driver(
            self._uri,
            auth=(self._user, self._password),
            max_connection_lifetime=settings.neo4j_max_connection_lifetime,
            max_connection_pool_size=settings.neo4j_max_connection_pool_size,
            connection_timeout=settings.neo4j_connection_timeout,
        )

        try:
            await self._driver.verify_connectivity()
            self._connected = True
            logger.info("neo4j_connected")
        except Exception as e:
            logger.error("neo4j_connection_failed", error=str(e))
            await self._driver.close()
            self._driver = None
            raise

    async def close(self) -> None:
        """Close the Neo4j connection."""
        if self._driver is not None:
            await self._driver.close()
            self._driver = None
            self._connected = False
            logger.info("neo4j_connection_closed")

    @property
    def is_connected(self) -> bool:
        """Check if client is connected."""
        return self._connected and self._driver is not None

    def _get_driver(self) -> AsyncDriver:
        """Get the driver instance, raising if not connected."""
        if self._driver is None:
            raise RuntimeError("Neo4j client not connected. Call connect() first.")
        return self._driver

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Get a Neo4j session.

        Usage:
            async with client.session() as session:
                result = await session.run("MATCH (n) RETURN n")
        """
        driver = self._get_driver()
        async with driver.session(database=self._database) as session:
            yield session

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[AsyncTransaction, None]:
        """
        Get a Neo4j transaction.

        Commits on successful context exit, rolls back on exception.
        """
        async with self.session() as session:
            tx = await session.begin_transaction()
            try:
                yield tx
                await tx.commit()
            except Exception:
                if not tx.closed():
                    await tx.rollback()
                raise

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(RETRYABLE_EXCEPTIONS),
    )
    async def run_in_transaction(
        self,
        work: Callable[[AsyncTransaction], Awaitable[R]],
    ) -> R:
        """
        Run a unit of work inside one explicit transaction.

        The whole unit is re-run from the start when a transient error
        aborts it, so ``work`` must not keep state between attempts.

        Args:
            work: Coroutine function receiving the open transaction

        Returns:
            Whatever ``work`` returns, after commit
        """
        async with self.transaction() as tx:
            return await work(tx)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(RETRYABLE_EXCEPTIONS),
    )
    async def execute(
        self,
        query: str,
        parameters: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """
        Execute a Cypher query and return results.

        Args:
            query: Cypher query string
            parameters: Query parameters

        Returns:
            List of result records as dictionaries
        """
        async with self.session() as session:
            result = await session.run(query, parameters or {})
            records = [dict(record) async for record in result]
            return records

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(RETRYABLE_EXCEPTIONS),
    )
    async def execute_single(
        self,
        query: str,
        parameters: dict[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        """
        Execute a query and return a single result.

        Returns:
            Single result record or None
        """
        async with self.session() as session:
            result = await session.run(query, parameters or {})
            record = await result.single()
            return dict(record) if record else None

    async def health_check(self) -> dict[str, Any]:
        """
        Perform a health check on the database connection.

        Returns:
            Health check result
        """
        try:
            result = await self.execute_single(
                "CALL dbms.components() YIELD name, versions, edition "
                "RETURN name, versions, edition LIMIT 1"
            )
            return {
                "status": "healthy",
                "database": self._database,
                "details": result or {},
            }
        except Exception as e:
            logger.error("neo4j_health_check_failed", error=str(e))
            return {
                "status": "unhealthy",
                "database": self._database,
                "error": str(e),
            }

    async def verify_connection(self) -> bool:
        """Return True if the database answers a health check."""
        health = await self.health_check()
        return health.get("status") == "healthy"

