# ==============================================================================
# Session Lifecycle Writer
# ==============================================================================
"""
Creates, updates and finalizes the analytics_sessions row of a session.

Creation is check-then-insert: a point lookup by session_id, then an insert
when no row exists. When the store supports insert-if-absent the insert is
sent with conflict_key="session_id" and duplicates are impossible. Otherwise
two concurrent first page views can both see no row and both insert; that
race is accepted and bounded to one duplicate per concurrent pair.

Later page views update page_count and exit_page by key (last writer wins).
Finalization writes ended_at, duration_seconds and is_bounce once; repeated
hide/unload signals are ignored until another page view reopens the session.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from sitepulse.core.errors import Result
from sitepulse.core.models import SESSIONS_TABLE, DeviceInfo, GeoData
from sitepulse.core.session_processor import SessionProcessor
from sitepulse.tracking.delivery import DeliveryLayer

logger = logging.getLogger(__name__)

LOOKUP_COLUMNS = ["session_id", "started_at", "page_count"]


@dataclass
class SessionState:
    """What the writer remembers about a session it has seen."""

    started_at: datetime | str
    page_count: int
    open: bool = True


class SessionLifecycleWriter:
    """
    Session row writer for one telemetry client.

    Args:
        delivery: Delivery layer used for every store call
        clock: Epoch-seconds clock
    """

    def __init__(self, delivery: DeliveryLayer, clock: Callable[[], float] = time.time):
        self._delivery = delivery
        self._clock = clock
        self._sessions: dict[str, SessionState] = {}

    def state(self, session_id: str) -> SessionState | None:
        return self._sessions.get(session_id)

    def _remember(self, row: dict) -> SessionState:
        state = SessionState(started_at=row["started_at"], page_count=row.get("page_count") or 1)
        self._sessions[row["session_id"]] = state
        return state

    async def _lookup(self, session_id: str) -> tuple[Result, dict | None]:
        return await self._delivery.select(
            SESSIONS_TABLE,
            columns=LOOKUP_COLUMNS,
            eq={"session_id": session_id},
            single=True,
        )

    async def _ensure(
        self,
        session_id: str,
        page_url: str,
        geo: GeoData,
        device: DeviceInfo,
        referrer: str | None,
    ) -> tuple[Result, dict | None]:
        """
        Make sure a row exists.

        Returns:
            The Result and the row that already existed, or None when this
            call inserted it (or failed)
        """
        result, existing = await self._lookup(session_id)
        if not result.ok or existing is not None:
            return result, existing

        row = SessionProcessor.create_session(
            session_id, page_url, self._clock(), geo, device, referrer
        )
        store = self._delivery.store
        conflict_key = "session_id" if store.supports_insert_if_absent else None
        result, inserted = await self._delivery.insert(SESSIONS_TABLE, row, conflict_key=conflict_key)
        if not result.ok:
            return result, None
        if inserted is None:
            # Lost the insert-if-absent race; the winner's row is the existing one
            logger.debug("Session %s was created concurrently", session_id)
            return await self._lookup(session_id)

        self._remember({**row, **inserted})
        logger.info("Session %s created (entry_page=%s)", session_id, page_url)
        return result, None

    async def ensure_session(
        self,
        session_id: str,
        page_url: str,
        geo: GeoData,
        device: DeviceInfo,
        referrer: str | None = None,
    ) -> bool:
        """
        Insert the session row if it does not exist yet.

        Returns:
            True if this call inserted the row
        """
        result, existing = await self._ensure(session_id, page_url, geo, device, referrer)
        if existing is not None:
            self._remember(existing)
        return result.ok and existing is None

    async def record_page_view(
        self,
        session_id: str,
        page_url: str,
        geo: GeoData,
        device: DeviceInfo,
        referrer: str | None = None,
    ) -> Result:
        """Create the session on its first page view, otherwise count the page view."""
        result, existing = await self._ensure(session_id, page_url, geo, device, referrer)
        if not result.ok or existing is None:
            return result

        patch = SessionProcessor.page_view_patch(existing.get("page_count") or 0, page_url)
        result, _ = await self._delivery.update(SESSIONS_TABLE, "session_id", session_id, patch)
        if result.ok:
            state = self._remember(existing)
            state.page_count = patch["page_count"]
            logger.debug("Session %s page_count=%d", session_id, state.page_count)
        return result

    async def finalize_session(self, session_id: str) -> Result:
        """
        Close the session: ended_at, duration_seconds and is_bounce.

        Returns:
            Result of the update, or a skipped Result when the session is
            already finalized or has no row
        """
        state = self._sessions.get(session_id)
        if state is None:
            result, row = await self._lookup(session_id)
            if not result.ok:
                return result
            if row is None:
                logger.debug("No session row for %s, nothing to finalize", session_id)
                return Result.skip()
            state = self._remember(row)

        if not state.open:
            return Result.skip()
        state.open = False

        patch = SessionProcessor.finalize_patch(state.started_at, state.page_count, self._clock())
        result, _ = await self._delivery.update(SESSIONS_TABLE, "session_id", session_id, patch)
        if result.ok:
            logger.info(
                "Session %s finalized (duration=%ss, bounce=%s)",
                session_id,
                patch["duration_seconds"],
                patch["is_bounce"],
            )
        return result
