# ==============================================================================
# Change Channel Abstract Base Class
# ==============================================================================
"""
Abstract interface for row-level change notifications.

A channel delivers one callback per row inserted into a watched table. The
wire format is the implementation's concern; subscribers only see the row as
a dict. Reconnection is the implementation's concern as well: subscribers
observe it through status callbacks.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable

# Subscription status values reported through on_status
SUBSCRIBED = "SUBSCRIBED"
CHANNEL_ERROR = "CHANNEL_ERROR"
CLOSED = "CLOSED"

InsertCallback = Callable[[dict], None]
StatusCallback = Callable[[str], None]
Unsubscribe = Callable[[], None]


class ChangeChannel(ABC):
    """Publish/subscribe channel for table inserts."""

    @abstractmethod
    def publish(self, table: str, row: dict) -> None:
        """
        Announce a row inserted into a table.

        Args:
            table: Table name
            row: The inserted row
        """
        ...

    @abstractmethod
    def subscribe(
        self,
        table: str,
        on_insert: InsertCallback,
        on_status: StatusCallback | None = None,
    ) -> Unsubscribe:
        """
        Watch a table for inserts.

        Callbacks run on the subscriber's event loop.

        Args:
            table: Table name
            on_insert: Called with each inserted row
            on_status: Called with SUBSCRIBED, CHANNEL_ERROR or CLOSED

        Returns:
            Function that cancels the subscription
        """
        ...

    def close(self) -> None:
        """Release resources held by the channel."""
        return None
