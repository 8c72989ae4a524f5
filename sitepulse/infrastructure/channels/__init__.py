# ==============================================================================
# Change Channel Infrastructure
# ==============================================================================
"""
ChangeChannel implementations.

Available implementations:
- LocalChangeChannel: in-process, paired with InMemoryDataStore
- ValkeyChangeChannel: Valkey/Redis pub/sub, paired with PostgreSQLDataStore
"""

from sitepulse.infrastructure.channels.local import LocalChangeChannel
from sitepulse.infrastructure.channels.valkey import ValkeyChangeChannel

__all__ = [
    "LocalChangeChannel",
    "ValkeyChangeChannel",
]
