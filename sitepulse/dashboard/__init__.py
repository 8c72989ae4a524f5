# ==============================================================================
# Dashboard
# ==============================================================================
"""
Read side: aggregation snapshots and their realtime refresh.
"""

from sitepulse.dashboard.aggregation import AggregationReader
from sitepulse.dashboard.refresh import ConnectionState, RealtimeRefreshController

__all__ = [
    "AggregationReader",
    "ConnectionState",
    "RealtimeRefreshController",
]
