# ==============================================================================
# Tests for CLI Commands
# ==============================================================================
"""
Unit tests for the analytics, watch, simulate, status, config and db commands.

Database access is patched at the module where each command imports it; the
simulate command runs end to end against the in-memory store. CLI output is
captured via typer.testing.CliRunner.
"""

import asyncio
import json
from datetime import timezone
from unittest.mock import patch

import psycopg2
from redis.exceptions import ConnectionError as RedisConnectionError
from typer.testing import CliRunner

from conftest import START_TIME, StaticResolver
from sitepulse.app import app
from sitepulse.cli.analytics import NO_DATA_MESSAGE, render_snapshot
from sitepulse.cli.simulate import ManualClock, run_visit
from sitepulse.cli.status import _collect_postgresql_data, _collect_valkey_data
from sitepulse.core.models import EVENTS_TABLE, SESSIONS_TABLE
from sitepulse.dashboard.aggregation import AggregationReader
from sitepulse.infrastructure.repositories.memory import InMemoryDataStore
from sitepulse.infrastructure.storage.valkey import ValkeyContextStorage
from sitepulse.tracking.geolocation import GeolocationCache

runner = CliRunner()

# Paths to mock (where they are imported)
_FETCH_PATH = "sitepulse.cli.analytics.fetch_snapshot"
_WATCH_STORE_PATH = "sitepulse.cli.watch.build_postgres_store"
_STATUS_PATH = "sitepulse.cli.status.collect_status_data"
_DB_CHECK_PATH = "sitepulse.cli.db.check_db_connection"
_CONTEXT_STORAGE_PATH = "sitepulse.cli.simulate.ValkeyContextStorage"


def _visited_snapshot(clock):
    """Snapshot of a store holding one simulated two-page visit."""
    store = InMemoryDataStore(clock=clock)
    asyncio.run(run_visit(store, clock, ["/home", "/services"], pause=3, stay=9))
    reader = AggregationReader(store, tz=timezone.utc, clock=clock)
    return asyncio.run(reader.fetch_summary())


# ==============================================================================
# run_visit
# ==============================================================================


class TestRunVisit:
    def test_two_page_visit(self, store, clock):
        session_id = asyncio.run(run_visit(store, clock, ["/home", "/services"], pause=3, stay=9))

        (session,) = store.rows(SESSIONS_TABLE)
        assert session["session_id"] == session_id
        assert session["entry_page"] == "/home"
        assert session["exit_page"] == "/services"
        assert session["page_count"] == 2
        assert session["duration_seconds"] == 12
        assert session["is_bounce"] is False

        views = [r for r in store.rows(EVENTS_TABLE) if r["event_type"] == "page_view"]
        assert [v["page_url"] for v in views] == ["/home", "/services"]
        assert views[0]["created_at"] < views[1]["created_at"]
        assert views[1]["properties"]["title"] == "sitepulse demo /services"

    def test_single_page_visit_bounces(self, store, clock):
        asyncio.run(run_visit(store, clock, ["/pricing"], pause=3, stay=4))
        (session,) = store.rows(SESSIONS_TABLE)
        assert session["is_bounce"] is True
        assert session["duration_seconds"] == 4
        assert session["exit_page"] is None

    def test_referrer_and_geolocation(self, store, clock):
        geolocation = GeolocationCache(resolver=StaticResolver(), timeout=1.0, enabled=True)
        asyncio.run(
            run_visit(
                store,
                clock,
                ["/home"],
                pause=0,
                stay=1,
                referrer="https://www.bing.com/",
                geolocation=geolocation,
            )
        )
        session = store.rows(SESSIONS_TABLE)[0]
        assert session["referrer"] == "https://www.bing.com/"
        assert session["country"] == "Germany"

    def test_session_id_kept_in_valkey_storage(self, store, clock, valkey_storage, fake_redis):
        session_id = asyncio.run(
            run_visit(store, clock, ["/home", "/services"], pause=3, stay=9, storage=valkey_storage)
        )

        assert fake_redis.get("sitepulse:context:tab-1:analytics_session_id") == session_id
        assert store.rows(SESSIONS_TABLE)[0]["page_count"] == 2

    def test_manual_clock(self):
        clock = ManualClock(START_TIME)
        clock.advance(2.5)
        assert clock() == START_TIME + 2.5


# ==============================================================================
# simulate
# ==============================================================================


class TestSimulateCommand:
    def test_default_visit(self):
        result = runner.invoke(app, ["simulate"])
        assert result.exit_code == 0
        assert "SIMULATED SESSION" in result.output
        assert "/services" in result.output
        assert "Events (3)" in result.output

    def test_custom_pages(self):
        result = runner.invoke(app, ["simulate", "-p", "/a", "-p", "/b", "-p", "/c", "--pause", "1"])
        assert result.exit_code == 0
        assert "/c" in result.output

    def test_valkey_context(self, fake_redis):
        storage = ValkeyContextStorage("sim-tab", client=fake_redis, ttl_seconds=60)
        with patch(_CONTEXT_STORAGE_PATH, return_value=storage) as factory:
            result = runner.invoke(app, ["simulate", "--valkey-context"])
        assert result.exit_code == 0
        factory.assert_called_once()
        session_id = fake_redis.get("sitepulse:context:sim-tab:analytics_session_id")
        assert session_id is not None
        assert session_id in result.output

    def test_negative_pause_rejected(self):
        result = runner.invoke(app, ["simulate", "--pause", "-1"])
        assert result.exit_code != 0


# ==============================================================================
# analytics
# ==============================================================================


class TestAnalyticsCommand:
    def test_no_data(self):
        with patch(_FETCH_PATH, return_value=(None, "connection refused")):
            result = runner.invoke(app, ["analytics"])
        assert result.exit_code == 1
        assert NO_DATA_MESSAGE in result.output
        assert "connection refused" in result.output

    def test_no_data_json(self):
        with patch(_FETCH_PATH, return_value=(None, "timeout")):
            result = runner.invoke(app, ["analytics", "--json"])
        assert result.exit_code == 1
        assert json.loads(result.output) == {"error": NO_DATA_MESSAGE, "detail": "timeout"}

    def test_formatted_output(self, clock):
        snapshot = _visited_snapshot(clock)
        with patch(_FETCH_PATH, return_value=(snapshot, None)):
            result = runner.invoke(app, ["analytics"])
        assert result.exit_code == 0
        assert "SITEPULSE ANALYTICS" in result.output
        assert "/services" in result.output
        assert "Conversion Funnel" in result.output

    def test_json_output(self, clock):
        snapshot = _visited_snapshot(clock)
        with patch(_FETCH_PATH, return_value=(snapshot, None)):
            result = runner.invoke(app, ["analytics", "--json"])
        data = json.loads(result.output)
        assert data["summary"]["total_page_views"] == 2
        assert data["summary"]["bounce_rate"] == 0.0
        assert len(data["hourly_traffic"]) == 24

    def test_estimated_stages_are_marked(self, clock):
        lines = render_snapshot(_visited_snapshot(clock))
        funnel = [line for line in lines if "Engagement" in line or "Page Views" in line]
        assert any("~" in line for line in funnel if "Engagement" in line)
        assert not any("~" in line for line in funnel if "Page Views" in line and "Engagement" not in line)


# ==============================================================================
# watch
# ==============================================================================


class TestWatchCommand:
    def test_once(self):
        store = InMemoryDataStore()
        with patch(_WATCH_STORE_PATH, return_value=store):
            result = runner.invoke(app, ["watch", "--once"])
        assert result.exit_code == 0
        assert "Page views" in result.output

    def test_once_without_data(self):
        store = InMemoryDataStore()
        store.fail_reads = "connection refused"
        with patch(_WATCH_STORE_PATH, return_value=store):
            result = runner.invoke(app, ["watch", "--once"])
        assert result.exit_code == 1
        assert NO_DATA_MESSAGE in result.output


# ==============================================================================
# status
# ==============================================================================


class TestStatusCommand:
    def test_json(self):
        data = {
            "version": "0.1.0",
            "postgresql": {"status": "connected", "events": 10, "sessions": 3},
            "valkey": {"status": "unreachable", "context_keys": None, "memory": None},
        }
        with patch(_STATUS_PATH, return_value=data):
            result = runner.invoke(app, ["status", "--json"])
        assert result.exit_code == 0
        assert json.loads(result.output) == data

    def test_formatted(self):
        data = {
            "version": "0.1.0",
            "postgresql": {"status": "no_schema", "events": None, "sessions": None},
            "valkey": {"status": "connected", "context_keys": 2, "memory": "1.1M"},
        }
        with patch(_STATUS_PATH, return_value=data):
            result = runner.invoke(app, ["status"])
        assert result.exit_code == 0
        assert "sitepulse db init" in result.output
        assert "1.1M" in result.output

    def test_postgresql_unreachable(self):
        with patch(
            "sitepulse.cli.status._postgresql_counts",
            side_effect=psycopg2.OperationalError("could not connect"),
        ):
            assert _collect_postgresql_data() == {
                "status": "unreachable",
                "events": None,
                "sessions": None,
            }

    def test_valkey_unreachable(self):
        with patch("sitepulse.cli.status._valkey_info", side_effect=RedisConnectionError("refused")):
            assert _collect_valkey_data()["status"] == "unreachable"


# ==============================================================================
# config / db
# ==============================================================================


class TestConfigCommand:
    def test_json(self):
        result = runner.invoke(app, ["config", "show", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert set(data) >= {"postgresql", "valkey", "geolocation", "tracking", "dashboard"}

    def test_formatted(self):
        result = runner.invoke(app, ["config", "show"])
        assert result.exit_code == 0
        assert "Dashboard" in result.output


class TestDbCommands:
    def test_init_without_database(self):
        with patch(_DB_CHECK_PATH, return_value=False):
            result = runner.invoke(app, ["db", "init"])
        assert result.exit_code == 1
        assert "not reachable" in result.output

    def test_init(self):
        with patch(_DB_CHECK_PATH, return_value=True), patch(
            "sitepulse.utils.db.ensure_schema", return_value=True
        ):
            result = runner.invoke(app, ["db", "init"])
        assert result.exit_code == 0
        assert "initialized" in result.output

    def test_reset_requires_confirmation(self):
        with patch(_DB_CHECK_PATH, return_value=True), patch(
            "sitepulse.utils.db.reset_schema"
        ) as reset:
            result = runner.invoke(app, ["db", "reset"], input="n\n")
        assert result.exit_code != 0
        reset.assert_not_called()

    def test_reset_confirmed(self):
        with patch(_DB_CHECK_PATH, return_value=True), patch(
            "sitepulse.utils.db.reset_schema"
        ) as reset:
            result = runner.invoke(app, ["db", "reset", "-y"])
        assert result.exit_code == 0
        reset.assert_called_once()
