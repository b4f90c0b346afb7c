"""Tests for configuration."""

import inspect

from geosched.infrastructure import config
from geosched.infrastructure.config import read_env_file
from geosched.infrastructure.logger import setup_logging


class TestReadEnvFile:
    def test_reads_env_values(self, tmp_path, monkeypatch):
        env_file = tmp_path / ".env"
        env_file.write_text("SCHEDULER_POLL_INTERVAL=5\nSTORE_BACKEND=sqlite\n")
        monkeypatch.chdir(tmp_path)

        result = read_env_file(["SCHEDULER_POLL_INTERVAL", "STORE_BACKEND"])
        assert result == {"SCHEDULER_POLL_INTERVAL": "5", "STORE_BACKEND": "sqlite"}

    def test_strips_quotes(self, tmp_path, monkeypatch):
        env_file = tmp_path / ".env"
        env_file.write_text('KEY1="quoted"\nKEY2=\'single\'\n')
        monkeypatch.chdir(tmp_path)

        result = read_env_file(["KEY1", "KEY2"])
        assert result["KEY1"] == "quoted"
        assert result["KEY2"] == "single"

    def test_skips_comments_and_blank_lines(self, tmp_path, monkeypatch):
        env_file = tmp_path / ".env"
        env_file.write_text("# comment\n\nKEY1=value1\nnot a pair\n")
        monkeypatch.chdir(tmp_path)

        assert read_env_file(["KEY1"]) == {"KEY1": "value1"}

    def test_value_may_contain_equals(self, tmp_path, monkeypatch):
        env_file = tmp_path / ".env"
        env_file.write_text("KEY1=a=b\n")
        monkeypatch.chdir(tmp_path)

        assert read_env_file(["KEY1"]) == {"KEY1": "a=b"}

    def test_only_requested_keys(self, tmp_path, monkeypatch):
        env_file = tmp_path / ".env"
        env_file.write_text("KEY1=value1\nKEY2=value2\n")
        monkeypatch.chdir(tmp_path)

        assert "KEY2" not in read_env_file(["KEY1"])

    def test_missing_file_returns_empty(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert read_env_file(["KEY1"]) == {}

    def test_empty_values_skipped(self, tmp_path, monkeypatch):
        env_file = tmp_path / ".env"
        env_file.write_text("KEY1=\n")
        monkeypatch.chdir(tmp_path)

        assert "KEY1" not in read_env_file(["KEY1"])


class TestSettingPrecedence:
    def test_environment_wins_over_env_file(self, monkeypatch):
        monkeypatch.setattr(config, "_env_config", {"STORE_BACKEND": "sqlite"})
        monkeypatch.setenv("STORE_BACKEND", "memory")
        assert config._setting("STORE_BACKEND", "x") == "memory"

    def test_env_file_used_when_unset(self, monkeypatch):
        monkeypatch.setattr(config, "_env_config", {"STORE_BACKEND": "sqlite"})
        monkeypatch.delenv("STORE_BACKEND", raising=False)
        assert config._setting("STORE_BACKEND", "x") == "sqlite"

    def test_default(self, monkeypatch):
        monkeypatch.setattr(config, "_env_config", {})
        monkeypatch.delenv("STORE_BACKEND", raising=False)
        assert config._setting("STORE_BACKEND", "memory") == "memory"


class TestDefaults:
    def test_scheduling_defaults_are_sane(self):
        assert config.SCHEDULER_POLL_INTERVAL > 0
        assert config.MAX_CONCURRENT_EXECUTIONS >= 1
        assert config.DEFAULT_MAX_RETRIES >= 0
        assert config.MAX_PAGE_SIZE >= config.DEFAULT_PAGE_SIZE


class TestLoggingSettings:
    def test_log_keys_read_from_env_file(self, tmp_path, monkeypatch):
        (tmp_path / ".env").write_text("LOG_LEVEL=debug\nLOG_FORMAT=json\n")
        monkeypatch.chdir(tmp_path)

        assert read_env_file(config._ENV_KEYS) == {"LOG_LEVEL": "debug", "LOG_FORMAT": "json"}

    def test_log_format_from_env_file_when_unset(self, monkeypatch):
        monkeypatch.setattr(config, "_env_config", {"LOG_FORMAT": "json"})
        monkeypatch.delenv("LOG_FORMAT", raising=False)
        assert config._setting("LOG_FORMAT", "console") == "json"

    def test_logger_defaults_come_from_config(self):
        params = inspect.signature(setup_logging).parameters
        assert params["log_level"].default == config.LOG_LEVEL
        assert params["log_format"].default == config.LOG_FORMAT
