"""
DAO Governance Database Layer

Neo4j client and schema management.
"""

from daogov.database.client import Neo4jClient
from daogov.database.schema import SchemaManager

__all__ = [
    "Neo4jClient",
    "SchemaManager",
]
