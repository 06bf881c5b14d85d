"""
Test cases for the daemon entry point.
"""

from datetime import timedelta

import pytest

from jobsync.errors import ConfigError
from roapid_main import build_scheduler_config, load_module_page, main, parse_args, render_module
from utilities.config import DaemonConfig

TEMPLATE = """-- 0.0.17
local NS = "{{NAMESPACE}}"
local PREFIX = "{{CATEGORY_PREFIX}}"
local QUEUE = "{{MSG_QUEUE_NOTE}}"
local MISSING = "{{MSG_FIELD_PATH_NOT_FOUND}}"
"""


@pytest.fixture
def daemon_config():
    return DaemonConfig(
        _env_file=None,
        wiki_namespace="Dev",
        category_prefix="roapid",
        queue_note="Please wait.",
        refresh_intervals={"about": "1h", "documentation": "bogus"}
    )


class TestModuleRendering:
    """Test cases for the Lua module template."""

    def test_placeholders_are_replaced(self, daemon_config):
        rendered = render_module(TEMPLATE, daemon_config)

        assert 'local NS = "Dev"' in rendered
        assert 'local PREFIX = "roapid"' in rendered
        assert 'local QUEUE = "Please wait."' in rendered
        assert "{{" not in rendered

    def test_no_module_file(self, daemon_config):
        assert load_module_page(daemon_config) is None

    def test_module_file(self, daemon_config, tmp_path):
        path = tmp_path / "roapid.lua"
        path.write_text(TEMPLATE)
        daemon_config.module_file = str(path)

        page = load_module_page(daemon_config)

        assert page.title == "Dev:Roapid"
        assert page.version == "0.0.17"
        assert page.content.startswith("-- 0.0.17")

    def test_unreadable_module_file(self, daemon_config, tmp_path):
        daemon_config.module_file = str(tmp_path / "missing.lua")
        with pytest.raises(ConfigError):
            load_module_page(daemon_config)


class TestSchedulerConfigBuilding:
    """Test cases for build_scheduler_config."""

    def test_intervals(self, daemon_config):
        scheduler_config = build_scheduler_config(daemon_config)

        assert scheduler_config.category_check_interval == timedelta(minutes=1)
        assert scheduler_config.data_refresh_interval == timedelta(minutes=5)
        assert scheduler_config.about_interval == timedelta(hours=1)
        # invalid per-endpoint values fall back to the data refresh interval
        assert scheduler_config.documentation_interval == timedelta(minutes=5)


class TestMain:
    """Test cases for main()."""

    def test_parse_args(self):
        args = parse_args(["--once", "--config", "other.json"])
        assert args.once is True
        assert args.config == "other.json"

    @pytest.mark.asyncio
    async def test_missing_credentials_exit_with_error(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        for name in ("WIKI_API_URL", "WIKI_USERNAME", "WIKI_PASSWORD"):
            monkeypatch.delenv(name, raising=False)
        monkeypatch.setenv("LOG_FILE", "")

        assert await main(["--config", str(tmp_path / "absent.json")]) == 1

    @pytest.mark.asyncio
    async def test_unparseable_config_exits_with_error(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        path = tmp_path / "config.json"
        path.write_text("{broken")

        assert await main(["--config", str(path)]) == 1

    @pytest.mark.asyncio
    async def test_invalid_environment_exits_with_error(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("CATEGORY_CHECK_INTERVAL", "0")

        assert await main(["--config", str(tmp_path / "absent.json")]) == 1
