"""Tests for the plugroute CLI"""

import json

import pytest
from typer.testing import CliRunner

from plugroute.cli import app
from plugroute.config.loader import CONFIG_ENV_VAR
from tests.conftest import make_definition


@pytest.fixture
def runner(monkeypatch, tmp_path):
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
    monkeypatch.chdir(tmp_path)
    return CliRunner()


def invoke(runner, plugin_tree, *args):
    return runner.invoke(app, ["--dir", str(plugin_tree), *args])


class TestListAndShow:
    """Test browsing definitions"""

    def test_list(self, runner, plugin_tree):
        result = invoke(runner, plugin_tree, "list")
        assert result.exit_code == 0
        for definition_id in ["builder", "summarize", "changelog"]:
            assert definition_id in result.output

    def test_list_by_kind(self, runner, plugin_tree):
        result = invoke(runner, plugin_tree, "list", "--kind", "skill")
        assert result.exit_code == 0
        assert "changelog" in result.output
        assert "builder" not in result.output

    def test_list_empty(self, runner, tmp_path):
        result = runner.invoke(app, ["--dir", str(tmp_path / "empty"), "list"])
        assert result.exit_code == 0
        assert "No definitions found" in result.output

    def test_show(self, runner, plugin_tree):
        result = invoke(runner, plugin_tree, "show", "builder")
        assert result.exit_code == 0
        assert "Tier: fast" in result.output
        assert "Follow the instructions." in result.output

    def test_show_unknown(self, runner, plugin_tree):
        result = invoke(runner, plugin_tree, "show", "ghost")
        assert result.exit_code == 1
        assert "NOT_FOUND" in result.output


class TestRouting:
    """Test match and resolve commands"""

    def test_match(self, runner, plugin_tree):
        result = invoke(runner, plugin_tree, "match", "run build scripts", "--tool", "Bash")
        assert result.exit_code == 0
        assert "Winner: builder" in result.output

    def test_match_no_candidates(self, runner, plugin_tree):
        result = invoke(runner, plugin_tree, "match", "deploy kubernetes")
        assert result.exit_code == 1
        assert "NO_MATCH" in result.output

    def test_resolve_prints_host_json(self, runner, plugin_tree):
        result = invoke(runner, plugin_tree, "resolve", "summarize files", "-t", "Read")
        assert result.exit_code == 0
        response = json.loads(result.output)
        assert response["id"] == "summarize"
        assert response["allowedTools"] == ["read-file", "search-files"]
        assert response["modelTier"] == "balanced"

    def test_resolve_error_envelope(self, runner, plugin_tree):
        result = invoke(runner, plugin_tree, "resolve", "fetch a page", "-t", "WebFetch")
        assert result.exit_code == 1
        assert json.loads(result.output)["error"]["code"] == "NO_MATCH"


class TestAuthorize:
    """Test the authorize command"""

    def test_allowed(self, runner, plugin_tree):
        result = invoke(runner, plugin_tree, "authorize", "builder", "Bash", "read-file")
        assert result.exit_code == 0
        assert "ALLOWED" in result.output

    def test_forbidden(self, runner, plugin_tree):
        result = invoke(runner, plugin_tree, "authorize", "builder", "Write")
        assert result.exit_code == 1
        assert "FORBIDDEN" in result.output
        assert "write-file" in result.output


class TestValidate:
    """Test the validate command"""

    def test_valid_tree(self, runner, plugin_tree):
        result = invoke(runner, plugin_tree, "validate")
        assert result.exit_code == 0
        assert "3 definitions loaded" in result.output

    def test_invalid_definition(self, runner, plugin_tree):
        (plugin_tree / "core" / "agents" / "broken.md").write_text(
            make_definition("broken", "x", ["Teleport"]), encoding="utf-8"
        )
        result = invoke(runner, plugin_tree, "validate")
        assert result.exit_code == 1
        assert "LOAD_FAILED" in result.output
        assert "Teleport" in result.output

    def test_config_checks(self, runner, plugin_tree, tmp_path):
        config = tmp_path / "plugroute.yaml"
        config.write_text("matching:\n  min_score: 0.6\n", encoding="utf-8")
        result = invoke(runner, plugin_tree, "--config", str(config), "validate")
        assert result.exit_code == 0
        assert "matching_validation" in result.output
        assert "min_score 0.6 is high" in result.output
        assert "3 definitions loaded" in result.output

    def test_bad_config_file(self, runner, plugin_tree, tmp_path):
        config = tmp_path / "plugroute.yaml"
        config.write_text("matching:\n  scorer: magic\n", encoding="utf-8")
        result = runner.invoke(app, ["--config", str(config), "--dir", str(plugin_tree), "list"])
        assert result.exit_code == 2

    def test_config_that_is_not_a_mapping(self, runner, plugin_tree, tmp_path):
        config = tmp_path / "plugroute.yaml"
        config.write_text("- a\n", encoding="utf-8")
        result = invoke(runner, plugin_tree, "--config", str(config), "validate")
        assert result.exit_code == 1
        assert isinstance(result.exception, SystemExit)
        assert "mapping" in result.output

    def test_config_with_empty_tools_section(self, runner, plugin_tree, tmp_path):
        config = tmp_path / "plugroute.yaml"
        config.write_text("tools:\nmatching:\n", encoding="utf-8")
        result = invoke(runner, plugin_tree, "--config", str(config), "validate")
        assert result.exit_code == 1
        assert isinstance(result.exception, SystemExit)
        assert "tool_vocabulary" in result.output


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
