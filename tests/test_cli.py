"""CLI tests run in mock mode (no host commands, no network)."""
import pytest
from typer.testing import CliRunner

from pveprov.cli import app

runner = CliRunner()


@pytest.fixture
def mock_env(monkeypatch, tmp_path):
    monkeypatch.setenv("PVEPROV_MOCK", "1")
    return ["--log-file", str(tmp_path / "pveprov.log")]


class TestHelp:
    def test_top_level(self):
        result = runner.invoke(app, ["--help"])

        assert result.exit_code == 0
        assert "talos" in result.stdout
        assert "etesync" in result.stdout

    def test_talos_options(self):
        result = runner.invoke(app, ["talos", "--help"])

        assert result.exit_code == 0
        for option in ("--advanced", "--yes", "--config", "--dry-run", "--skip-checks"):
            assert option in result.stdout


class TestTalos:
    def test_dry_run_with_defaults(self, mock_env):
        result = runner.invoke(app, ["talos", *mock_env])

        assert result.exit_code == 0, result.stdout
        assert "MOCK MODE" in result.stdout
        assert "Created Talos VM talos (100)" in result.stdout
        assert "qm terminal 100" in result.stdout

    def test_dry_run_flag_without_env(self, tmp_path):
        result = runner.invoke(app, ["talos", "--dry-run", "--log-file", str(tmp_path / "log")])

        assert result.exit_code == 0, result.stdout
        assert "MOCK MODE" in result.stdout

    def test_config_file_overrides(self, mock_env, tmp_path):
        config = tmp_path / "pveprov.yml"
        config.write_text("talos:\n  name: cp-1\n  cores: 4\n  version: v1.8.3\n")

        result = runner.invoke(app, ["talos", "--config", str(config), *mock_env])

        assert result.exit_code == 0, result.stdout
        assert "Hostname: cp-1" in result.stdout
        assert "Talos Version: v1.8.3" in result.stdout

    def test_missing_config_file(self, mock_env, tmp_path):
        result = runner.invoke(app, ["talos", "--config", str(tmp_path / "nope.yml"), *mock_env])

        assert result.exit_code == 1
        assert "Error" in result.stdout

    def test_invalid_env_override(self, mock_env, monkeypatch):
        monkeypatch.setenv("PVEPROV_TALOS_CORES", "zero")

        result = runner.invoke(app, ["talos", *mock_env])

        assert result.exit_code == 1
        assert "cores" in result.stdout

    def test_aborted_prompt_exits_cleanly(self, mock_env):
        result = runner.invoke(app, ["talos", "--advanced", *mock_env], input="")

        assert result.exit_code == 0
        assert "User exited script." in result.stdout


class TestEteSync:
    def test_create_dry_run(self, mock_env):
        result = runner.invoke(app, ["etesync", "create", *mock_env])

        assert result.exit_code == 0, result.stdout
        assert "Created EteSync container etesync (100)" in result.stdout
        assert "3735" in result.stdout

    def test_update_dry_run(self, mock_env):
        result = runner.invoke(app, ["etesync", "update", "105", *mock_env])

        assert result.exit_code == 0, result.stdout
        assert "Updated container 105" in result.stdout

    def test_update_requires_vmid(self):
        result = runner.invoke(app, ["etesync", "update"])

        assert result.exit_code != 0
