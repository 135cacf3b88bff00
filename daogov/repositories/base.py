"""
Base Repository

Abstract base class for all repositories with common read operations
and Neo4j query patterns.
"""

from abc import ABC, abstractmethod
from datetime import UTC, datetime
from typing import Any, Generic, TypeVar
from uuid import uuid4

import structlog
from pydantic import BaseModel

from neo4j import AsyncTransaction

from daogov.database.client import Neo4jClient, tx_single


def to_iso(value: datetime | None) -> str | None:
    """Serialize a datetime the way every repository stores it."""
    return value.isoformat() if value is not None else None


T = TypeVar("T", bound=BaseModel)


class BaseRepository(ABC, Generic[T]):
    """
    Abstract base repository.

    Timestamps are stored as ISO-8601 strings and compared in Cypher
    through ``datetime()``.
    """

    def __init__(self, client: Neo4jClient):
        self.client = client
        self.logger = structlog.get_logger(self.__class__.__name__)

    @property
    @abstractmethod
    def node_label(self) -> str:
        """The Neo4j node label for this entity."""
        pass

    @property
    @abstractmethod
    def model_class(self) -> type[T]:
        """The Pydantic model class for this entity."""
        pass

    def _generate_id(self) -> str:
        """Generate a new unique ID."""
        return str(uuid4())

    def _now(self) -> datetime:
        """Get current UTC timestamp."""
        return datetime.now(UTC)

    def _to_model(self, record: dict[str, Any] | None) -> T | None:
        """
        Convert a Neo4j record to a Pydantic model.

        Returns:
            Pydantic model instance or None
        """
        if not record:
            return None
        try:
            return self.model_class.model_validate(record)
        except Exception as e:
            self.logger.error(
                "record_conversion_failed",
                entity_type=self.node_label,
                error=str(e),
                record_keys=list(record.keys()),
            )
            return None

    def _to_models(self, records: list[dict[str, Any]]) -> list[T]:
        """Convert multiple Neo4j records, dropping ones that fail validation."""
        return [m for m in (self._to_model(r) for r in records) if m is not None]

    def _require_model(self, record: dict[str, Any] | None, key: str = "entity") -> T:
        """Convert the record of a write that must have produced an entity."""
        if record is None or not record.get(key):
            raise RuntimeError(f"Failed to write {self.node_label}")
        model = self._to_model(record[key])
        if model is None:
            raise RuntimeError(f"Failed to deserialize {self.node_label}")
        return model

    async def _single(
        self,
        query: str,
        parameters: dict[str, Any],
        tx: AsyncTransaction | None = None,
    ) -> dict[str, Any] | None:
        """Run a single-record query, inside ``tx`` when the caller holds one."""
        if tx is not None:
            return await tx_single(tx, query, parameters)
        return await self.client.execute_single(query, parameters)

    async def get_by_id(self, entity_id: str) -> T | None:
        """
        Get an entity by its ID.

        Returns:
            Entity model or None if not found
        """
        query = f"""
        MATCH (n:{self.node_label} {{id: $id}})
        RETURN n {{.*}} AS entity
        """

        result = await self.client.execute_single(query, {"id": entity_id})

        if result and result.get("entity"):
            return self._to_model(result["entity"])
        return None
