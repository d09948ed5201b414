"""
Tests for the command-line runner's argument handling.
"""

import pytest

import run_simulation
from groupchat.config import DecisionMode


@pytest.fixture
def no_env(monkeypatch):
    for name in ("OPENAI_API_KEY", "AZURE_OPENAI_ENDPOINT", "AZURE_OPENAI_API_KEY", "CHAT_MAX_TURNS", "CHAT_DECISION_MODE"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr("groupchat.config.load_env", lambda: None)
    return monkeypatch


class TestCliConfig:

    def test_zero_max_turns_is_clamped(self, no_env):
        config = run_simulation.build_config(run_simulation.parse_args(["--max-turns", "0"]))
        assert config.max_turns == 1

    def test_max_turns_and_decisions_override_env(self, no_env):
        no_env.setenv("CHAT_MAX_TURNS", "8")
        args = run_simulation.parse_args(["--max-turns", "3", "--decisions", "rules"])
        config = run_simulation.build_config(args)
        assert config.max_turns == 3
        assert config.decision_mode is DecisionMode.RULES

    def test_env_ceiling_kept_without_flag(self, no_env):
        no_env.setenv("CHAT_MAX_TURNS", "8")
        assert run_simulation.build_config(run_simulation.parse_args([])).max_turns == 8

    def test_log_level_help_names_stderr(self, capsys, monkeypatch):
        monkeypatch.setenv("COLUMNS", "200")
        with pytest.raises(SystemExit):
            run_simulation.parse_args(["--help"])
        out = capsys.readouterr().out
        assert "stderr sink" in out
        assert "stdout sink" not in out

    def test_scenario_options(self):
        assert run_simulation.scenario_options(run_simulation.parse_args(["--device-id", "DEV002"])) == {
            "device_id": "DEV002"
        }
        assert run_simulation.scenario_options(run_simulation.parse_args(["--scenario", "printer", "--seed", "3"])) == {
            "seed": 3
        }
