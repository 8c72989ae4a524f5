# ==============================================================================
# Base Abstract Classes
# ==============================================================================
"""
Abstract base classes defining the ports of the ports-and-adapters architecture.

- DataStore: the managed backend holding analytics_events / analytics_sessions
- ChangeChannel: row-level insert notifications
- ContextStorage: sessionStorage-like storage scoped to one browsing context
"""

from sitepulse.base.channel import (
    CHANNEL_ERROR,
    CLOSED,
    SUBSCRIBED,
    ChangeChannel,
)
from sitepulse.base.data_store import DataStore, StoreResponse
from sitepulse.base.storage import ContextStorage

__all__ = [
    "CHANNEL_ERROR",
    "CLOSED",
    "SUBSCRIBED",
    "ChangeChannel",
    "ContextStorage",
    "DataStore",
    "StoreResponse",
]
