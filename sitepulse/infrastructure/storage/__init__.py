# ==============================================================================
# Context Storage Infrastructure
# ==============================================================================
"""
ContextStorage implementations.

Available implementations:
- MemoryContextStorage: process-local dict
- ValkeyContextStorage: Valkey/Redis keys with TTL
"""

from sitepulse.infrastructure.storage.memory import MemoryContextStorage
from sitepulse.infrastructure.storage.valkey import (
    ValkeyContextStorage,
    get_valkey_client,
)

__all__ = [
    "MemoryContextStorage",
    "ValkeyContextStorage",
    "get_valkey_client",
]
