"""
Tests for the dashstore CLI.

Every test runs against a fresh SQLite cache in a temporary directory with
no user or project configuration.
"""

import json

import pytest
from typer.testing import CliRunner

from dashstore import __version__
from dashstore.cli import app

runner = CliRunner()


@pytest.fixture
def cli_env(isolated_config, monkeypatch):
    """Isolated config with the cache file inside the temp directory."""
    monkeypatch.setenv("DASHSTORE_CACHE_PATH", str(isolated_config / "cache.db"))
    # Wide enough that rich tables never wrap names
    monkeypatch.setenv("COLUMNS", "200")
    return isolated_config


def invoke(*args: str):
    return runner.invoke(app, list(args))


class TestBasics:
    """Tests for top-level commands."""

    def test_version(self, cli_env) -> None:
        """Test version prints the package version."""
        result = invoke("version")
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_no_args_shows_help(self, cli_env) -> None:
        """Test running without a command prints usage."""
        result = invoke()
        assert "Usage" in result.output


class TestDashboardCommands:
    """Tests for the dashboards subcommands."""

    def test_first_run_lists_default_dashboard(self, cli_env) -> None:
        """Test a fresh cache starts with Dashboard 1."""
        result = invoke("dashboards", "list")
        assert result.exit_code == 0
        assert "Dashboard 1" in result.output

    def test_add_rename_and_remove(self, cli_env) -> None:
        """Test dashboards persist between invocations."""
        assert invoke("dashboards", "add", "Sales").exit_code == 0
        assert invoke("dashboards", "rename", "Sales", "Revenue").exit_code == 0

        listing = invoke("dashboards", "list").output
        assert "Revenue" in listing
        assert "Sales" not in listing

        result = invoke("dashboards", "rm", "Revenue", "--yes")
        assert result.exit_code == 0
        assert "Revenue" not in invoke("dashboards", "list").output

    def test_duplicate(self, cli_env) -> None:
        """Test duplicating names the copy."""
        result = invoke("dashboards", "duplicate", "Dashboard 1")
        assert result.exit_code == 0
        assert "Dashboard 1 - Copy" in result.output

    def test_library_helpers_used_by_render(self, cli_env) -> None:
        """Test script library helpers can be read by placeholders."""
        helpers = cli_env / "helpers.txt"
        helpers.write_text("# fiscal calendar\nfiscal_year = 2024 + 1\n", encoding="utf-8")

        result = invoke("dashboards", "library", str(helpers))

        assert result.exit_code == 0
        assert "FY 2025" in invoke("render", "FY {{fiscal_year}}").output

    def test_invalid_library_rejected(self, cli_env) -> None:
        """Test a library line that is not a definition is a user error."""
        helpers = cli_env / "helpers.txt"
        helpers.write_text("just some text\n", encoding="utf-8")

        result = invoke("dashboards", "library", str(helpers))

        assert result.exit_code == 2
        assert "Invalid script library" in result.output

    def test_unknown_dashboard(self, cli_env) -> None:
        """Test an unknown reference exits with a user error."""
        result = invoke("dashboards", "use", "nope")
        assert result.exit_code == 2
        assert "Dashboard not found" in result.output


class TestVariableCommands:
    """Tests for vars and render."""

    def test_set_and_render(self, cli_env) -> None:
        """Test variables set on the active dashboard are used by render."""
        assert invoke("vars", "set", "year", "2024").exit_code == 0
        result = invoke("vars", "set", "next_year", "year + 1", "--expr")
        assert "next_year = 2025" in result.output

        rendered = invoke("render", "Report {{year}} / {{next_year}} / {{missing}}")

        assert rendered.exit_code == 0
        assert "Report 2024 / 2025 / {{missing}}" in rendered.output

    def test_update_existing(self, cli_env) -> None:
        """Test setting an existing name updates it."""
        invoke("vars", "set", "year", "2024")
        invoke("vars", "set", "year", "2030")
        assert "2030" in invoke("render", "{{year}}").output

    def test_list_shows_failure_marker(self, cli_env) -> None:
        """Test a broken expression shows its failure marker."""
        invoke("vars", "set", "broken", "1 / 0", "-e")
        result = invoke("vars", "list")
        assert result.exit_code == 0
        assert "EVAL_ERROR" in result.output

    def test_remove(self, cli_env) -> None:
        """Test removing a variable and removing an unknown one."""
        invoke("vars", "set", "year", "2024")
        assert invoke("vars", "rm", "year").exit_code == 0
        assert invoke("vars", "rm", "year").exit_code == 2


class TestSaveAndSyncCommands:
    """Tests for status, sync, export and import."""

    def test_status_reports_pending_changes(self, cli_env) -> None:
        """Test locally committed changes are reported as unsynced."""
        invoke("dashboards", "add", "Sales")
        result = invoke("status")
        assert result.exit_code == 0
        assert "saved-local" in result.output
        assert "Unsynced changes pending" in result.output

    def test_sync_without_remote(self, cli_env) -> None:
        """Test sync exits with a user error when no remote is configured."""
        result = invoke("sync")
        assert result.exit_code == 2
        assert "Remote sync is disabled" in result.output

    def test_export_and_import(self, cli_env) -> None:
        """Test an exported file can be listed and imported back."""
        invoke("vars", "set", "year", "2024")
        export_path = cli_env / "export.json"

        assert invoke("export", "-o", str(export_path)).exit_code == 0
        payload = json.loads(export_path.read_text())
        assert payload["variables"][0]["name"] == "year"

        listing = invoke("import", str(export_path), "--list")
        assert "Dashboard 1" in listing.output

        result = invoke("import", str(export_path))
        assert result.exit_code == 0
        assert "Imported 1 dashboards" in result.output
        assert "Dashboard 1 (1)" in invoke("dashboards", "list").output

    def test_import_rejects_missing_version(self, cli_env) -> None:
        """Test a file without metadata.version is rejected."""
        bad = cli_env / "bad.json"
        bad.write_text(json.dumps({"metadata": {}, "dashboards": []}))
        result = invoke("import", str(bad))
        assert result.exit_code == 2
        assert "metadata.version" in result.output
