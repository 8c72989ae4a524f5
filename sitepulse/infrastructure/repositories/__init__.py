# ==============================================================================
# Data Store Infrastructure
# ==============================================================================
"""
DataStore implementations.

Available implementations:
- InMemoryDataStore: dict-backed, for simulation and tests
- PostgreSQLDataStore: psycopg2 against the analytics schema
"""

from sitepulse.infrastructure.repositories.memory import InMemoryDataStore
from sitepulse.infrastructure.repositories.postgresql import PostgreSQLDataStore

__all__ = [
    "InMemoryDataStore",
    "PostgreSQLDataStore",
]
