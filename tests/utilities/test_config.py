"""
Test cases for daemon configuration.
"""

import json
from datetime import timedelta

import pytest
from pydantic import ValidationError

from jobsync.errors import ConfigError
from utilities.config import DEFAULT_FALLBACK_INTERVAL, DaemonConfig, load_config, parse_duration


def make_config(**overrides) -> DaemonConfig:
    return DaemonConfig(_env_file=None, **overrides)


class TestParseDuration:
    """Test cases for parse_duration."""

    @pytest.mark.parametrize("value,expected", [
        ("90s", timedelta(seconds=90)),
        ("1m", timedelta(minutes=1)),
        ("1h30m", timedelta(hours=1, minutes=30)),
        ("250ms", timedelta(milliseconds=250)),
        ("1.5h", timedelta(minutes=90)),
        ("2h45m30s", timedelta(hours=2, minutes=45, seconds=30)),
        ("0", timedelta(0)),
        ("-5m", timedelta(minutes=-5)),
        ("+10s", timedelta(seconds=10)),
        ("100us", timedelta(microseconds=100)),
        ("1500ns", timedelta(microseconds=2)),
        ("2500000ns", timedelta(milliseconds=2, microseconds=500)),
        ("1ns", timedelta(0)),
    ])
    def test_valid_durations(self, value, expected):
        assert parse_duration(value) == expected

    @pytest.mark.parametrize("value", ["", "  ", "10", "m", "5x", "1h 30m", "abc", "5m3"])
    def test_invalid_durations(self, value):
        with pytest.raises(ValueError):
            parse_duration(value)


class TestDaemonConfig:
    """Test cases for DaemonConfig."""

    def test_defaults(self):
        config = make_config()

        assert config.category_prefix == "roapid"
        assert config.wiki_namespace == "Module"
        assert config.get_category_check_interval() == timedelta(minutes=1)
        assert config.get_data_refresh_interval() == timedelta(minutes=5)
        assert "places" in config.authenticated_endpoints
        assert config.get_module_title() == "Module:Roapid"

    @pytest.mark.parametrize("field", ["category_check_interval", "data_refresh_interval"])
    @pytest.mark.parametrize("value", ["0", "-1m", "soon"])
    def test_invalid_scheduling_intervals(self, field, value):
        with pytest.raises(ValidationError):
            make_config(**{field: value})

    def test_invalid_timeout(self):
        with pytest.raises(ValidationError):
            make_config(request_timeout=0)

    def test_log_level_is_normalized(self):
        assert make_config(log_level="debug").log_level == "DEBUG"
        with pytest.raises(ValidationError):
            make_config(log_level="verbose")

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("CATEGORY_PREFIX", "custom")
        monkeypatch.setenv("REFRESH_INTERVALS", '{"badges": "10m"}')

        config = make_config()

        assert config.category_prefix == "custom"
        assert config.refresh_intervals == {"badges": "10m"}


class TestIntervals:
    """Test cases for per-endpoint interval resolution."""

    def test_per_endpoint_interval(self):
        config = make_config(refresh_intervals={"badges": "10m"})
        assert config.resolve_refresh_interval("badges") == timedelta(minutes=10)

    def test_missing_endpoint_uses_data_interval(self):
        config = make_config(refresh_intervals={"badges": "10m"})
        assert config.resolve_refresh_interval("users") == timedelta(minutes=5)

    @pytest.mark.parametrize("raw", ["nonsense", "0", "-2m"])
    def test_bad_per_endpoint_interval(self, raw):
        config = make_config(refresh_intervals={"badges": raw})

        with pytest.raises(ConfigError):
            config.resolve_refresh_interval("badges")
        assert config.interval_resolver("badges") == timedelta(minutes=5)

    def test_resolver_last_resort(self):
        config = make_config()
        config.data_refresh_interval = "broken"
        assert config.interval_resolver("badges") == DEFAULT_FALLBACK_INTERVAL

    def test_documentation_interval_from_its_own_entry(self):
        config = make_config(refresh_intervals={"documentation": "2h", "badges": "10m"})
        assert config.get_documentation_interval() == timedelta(hours=2)

    def test_documentation_interval_falls_back_to_badges(self):
        config = make_config(refresh_intervals={"badges": "10m"})
        assert config.get_documentation_interval() == timedelta(minutes=10)

    def test_sub_microsecond_interval_is_not_positive(self):
        with pytest.raises(ValidationError):
            make_config(data_refresh_interval="1ns")


class TestStartupValidation:
    """Test cases for validate_for_startup."""

    def test_missing_credentials(self):
        with pytest.raises(ConfigError, match="wiki_password"):
            make_config(wiki_api_url="https://wiki/api.php", wiki_username="Bot").validate_for_startup()

    def test_empty_prefix(self):
        config = make_config(
            wiki_api_url="https://wiki/api.php",
            wiki_username="Bot",
            wiki_password="pw",
            category_prefix=""
        )
        with pytest.raises(ConfigError):
            config.validate_for_startup()

    def test_complete(self):
        make_config(wiki_api_url="https://wiki/api.php", wiki_username="Bot", wiki_password="pw").validate_for_startup()


class TestLoadConfig:
    """Test cases for load_config."""

    def test_nested_json_layout(self, tmp_path, monkeypatch):
        monkeypatch.setenv("ROAPID_TEST_PASSWORD", "from-env")
        path = tmp_path / "config.json"
        path.write_text(json.dumps({
            "server": {"categoryCheckInterval": "2m", "dataRefreshInterval": "10m"},
            "wiki": {
                "apiUrl": "https://wiki.example.com/api.php",
                "username": "Bot@sync",
                "password": "$ROAPID_TEST_PASSWORD",
                "namespace": "Module"
            },
            "dynamicEndpoints": {
                "categoryPrefix": "roapid",
                "apiMap": {"badges": "https://badges.roblox.com/v1/badges/%s"},
                "refreshIntervals": {"badges": "30m"}
            },
            "openCloud": {"apiKey": "key"},
            "luaMessages": {"queueNote": "Wait a minute."}
        }))

        config = load_config(str(path))

        assert config.wiki_password == "from-env"
        assert config.get_category_check_interval() == timedelta(minutes=2)
        assert config.api_map == {"badges": "https://badges.roblox.com/v1/badges/%s"}
        assert config.resolve_refresh_interval("badges") == timedelta(minutes=30)
        assert config.open_cloud_api_key == "key"
        assert config.queue_note == "Wait a minute."

    def test_missing_file_uses_environment(self, tmp_path):
        config = load_config(str(tmp_path / "absent.json"))
        assert isinstance(config, DaemonConfig)

    def test_unparseable_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{not json")
        with pytest.raises(ConfigError):
            load_config(str(path))

    def test_invalid_interval_in_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"server": {"categoryCheckInterval": "never"}}))
        with pytest.raises(ValidationError):
            load_config(str(path))
