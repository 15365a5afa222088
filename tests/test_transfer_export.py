"""Tests for exporting dashboards and data sources."""

import json

import pytest

from dashstore.core.entities.models import DatabaseType
from dashstore.core.transfer import SCHEMA_VERSION, export_dashboards, export_data_sources


@pytest.fixture
def two_dashboards(workspace, dashboard_id):
    """Workspace with two dashboards, each with a card and a variable."""
    shared = workspace.add_data_source("Warehouse", DatabaseType.REST_API, "https://wh")
    workspace.add_data_source("Unused")
    workspace.add_card(dashboard_id, "Revenue", "SELECT {{year}}", shared.id)
    workspace.add_variable(dashboard_id, "year", "2024")
    other = workspace.add_dashboard("Other")
    workspace.add_card(other.id, "Costs")
    workspace.add_variable(other.id, "region", "EMEA")
    return dashboard_id, other.id


class TestExportDashboards:
    """Tests for export_dashboards()."""

    def test_selection_limits_every_array(self, workspace, two_dashboards) -> None:
        """Test exporting one of two dashboards carries only its own children."""
        d1, _ = two_dashboards

        document = export_dashboards(workspace, [d1])

        assert [d.id for d in document.dashboards] == [d1]
        assert {c.dashboard_id for c in document.cards} == {d1}
        assert {v.scope_id for v in document.variables} == {d1}
        assert [s.name for s in document.data_sources] == ["Warehouse"]

    def test_wire_format(self, workspace, two_dashboards) -> None:
        """Test the JSON document uses the camelCase wire names."""
        d1, _ = two_dashboards

        payload = json.loads(export_dashboards(workspace, [d1]).to_json())

        assert payload["metadata"]["version"] == SCHEMA_VERSION
        assert "exportedAt" in payload["metadata"]
        assert payload["cards"][0]["dashboardId"] == d1
        assert payload["variables"][0]["value"] == "2024"
        assert "dataSources" in payload

    def test_fixed_variables_not_exported(self, workspace, two_dashboards) -> None:
        """Test host-injected variables never appear in an export."""
        d1, _ = two_dashboards
        names = [v.name for v in export_dashboards(workspace, [d1]).variables]
        assert names == ["year"]

    def test_unknown_ids_ignored(self, workspace, two_dashboards) -> None:
        """Test unknown ids are skipped."""
        document = export_dashboards(workspace, ["missing"])
        assert document.dashboards == []
        assert document.has_entities()


class TestExportDataSources:
    """Tests for export_data_sources()."""

    def test_only_data_sources(self, workspace) -> None:
        """Test a data-source export carries only the selected sources."""
        keep = workspace.add_data_source("Keep")
        workspace.add_data_source("Skip")

        payload = export_data_sources(workspace, [keep.id]).to_wire()

        assert [s["name"] for s in payload["dataSources"]] == ["Keep"]
        assert "dashboards" not in payload
