# ==============================================================================
# Local Change Channel
# ==============================================================================
"""
In-process ChangeChannel used with the in-memory Data Store.

Callbacks are scheduled on the subscriber's event loop with
call_soon_threadsafe, so publishing never runs subscriber code inline.
"""

import asyncio
import logging
from dataclasses import dataclass

from sitepulse.base.channel import (
    CHANNEL_ERROR,
    CLOSED,
    SUBSCRIBED,
    ChangeChannel,
    InsertCallback,
    StatusCallback,
    Unsubscribe,
)

logger = logging.getLogger(__name__)


@dataclass
class _Subscription:
    table: str
    on_insert: InsertCallback
    on_status: StatusCallback | None
    loop: asyncio.AbstractEventLoop | None


class LocalChangeChannel(ChangeChannel):
    """
    In-process publish/subscribe for table inserts.

    disconnect() and reconnect() simulate the channel dropping and coming
    back; inserts published while disconnected are lost, as with a real
    realtime channel.
    """

    def __init__(self):
        self._subscriptions: list[_Subscription] = []
        self.connected = True

    def _schedule(self, sub: _Subscription, callback, *args) -> None:
        if sub.loop is None or sub.loop.is_closed():
            callback(*args)
        else:
            sub.loop.call_soon_threadsafe(callback, *args)

    def _status(self, sub: _Subscription, status: str) -> None:
        if sub.on_status is not None:
            self._schedule(sub, sub.on_status, status)

    def publish(self, table: str, row: dict) -> None:
        if not self.connected:
            logger.debug("Channel disconnected, dropping %s notification", table)
            return
        for sub in list(self._subscriptions):
            if sub.table == table:
                self._schedule(sub, sub.on_insert, dict(row))

    def subscribe(
        self,
        table: str,
        on_insert: InsertCallback,
        on_status: StatusCallback | None = None,
    ) -> Unsubscribe:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        sub = _Subscription(table, on_insert, on_status, loop)
        self._subscriptions.append(sub)
        self._status(sub, SUBSCRIBED if self.connected else CHANNEL_ERROR)

        def unsubscribe() -> None:
            if sub in self._subscriptions:
                self._subscriptions.remove(sub)
                self._status(sub, CLOSED)

        return unsubscribe

    def subscriber_count(self, table: str | None = None) -> int:
        return sum(1 for sub in self._subscriptions if table is None or sub.table == table)

    def disconnect(self) -> None:
        self.connected = False
        for sub in list(self._subscriptions):
            self._status(sub, CHANNEL_ERROR)

    def reconnect(self) -> None:
        self.connected = True
        for sub in list(self._subscriptions):
            self._status(sub, SUBSCRIBED)

    def close(self) -> None:
        for sub in list(self._subscriptions):
            self._status(sub, CLOSED)
        self._subscriptions.clear()
