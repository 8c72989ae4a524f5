# ==============================================================================
# Tests for the Schema Template
# ==============================================================================
"""
Tests that schema/init.sql renders for a given schema name and defines what
the PostgreSQL Data Store relies on.
"""

from sitepulse.utils.db import get_schema_file, render_schema_sql


class TestSchemaTemplate:
    def test_schema_file_found(self):
        assert get_schema_file() is not None

    def test_renders_schema_name(self):
        rendered = render_schema_sql("analytics")
        assert "{{" not in rendered
        assert "CREATE SCHEMA IF NOT EXISTS analytics;" in rendered
        assert "analytics.analytics_events" in rendered
        assert "analytics.analytics_sessions" in rendered

    def test_session_id_is_unique(self):
        """Insert-if-absent relies on the unique session_id constraint."""
        assert "session_id       TEXT NOT NULL UNIQUE" in render_schema_sql("public")

    def test_defines_summary_function(self):
        assert "public.get_analytics_summary(" in render_schema_sql("public")
