"""
Pytest configuration and shared fixtures.
"""

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from datasource.api_fetcher import ApiFetcher
from datasource.storage import ArtifactStore
from jobsync.change_detector import ChangeDetector
from jobsync.job_executor import JobExecutor
from jobsync.models import ExecutorConfig
from jobsync.schedule_store import ScheduleStore
from wiki.client import WikiClient


class FakeClock:
    """Manually advanced clock for deterministic scheduling tests."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


@pytest.fixture
def clock():
    """Clock fixed at 2024-01-01 12:00 UTC."""
    return FakeClock(datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def data_dir(tmp_path):
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def artifact_store(data_dir):
    return ArtifactStore(data_dir)


@pytest.fixture
def change_detector(artifact_store):
    return ChangeDetector(artifact_store)


@pytest.fixture
def schedule_store(clock):
    """Schedule store with a one hour interval for every endpoint type."""
    return ScheduleStore(interval_resolver=lambda endpoint_type: timedelta(hours=1), clock=clock)


@pytest.fixture
def mock_wiki_client():
    """Create a mock wiki client that accepts every write."""
    client = AsyncMock(spec=WikiClient)
    client.list_categories.return_value = []
    client.page_exists.return_value = True
    client.push.return_value = None
    client.purge_category_members.return_value = None
    client.purge_pages.return_value = None
    return client


@pytest.fixture
def mock_fetcher():
    """Create a mock fetcher returning a small badge payload."""
    fetcher = AsyncMock(spec=ApiFetcher)
    fetcher.fetch.return_value = json.dumps({"id": 123, "name": "Winner"}).encode()
    return fetcher


@pytest.fixture
def executor_config():
    return ExecutorConfig(
        wiki_namespace="Module",
        api_map={
            "badges": "https://badges.roblox.com/v1/badges/%s",
            "users": "https://apis.roblox.com/cloud/v2/users/%s",
            "places": "https://apis.roblox.com/cloud/v2/%s",
        },
        authenticated_endpoints=["users", "places"],
        composite_endpoints={"places": "universes/{0}/places/{1}"},
        api_key="test-key"
    )


@pytest.fixture
def job_executor(executor_config, mock_fetcher, artifact_store, change_detector, mock_wiki_client):
    return JobExecutor(executor_config, mock_fetcher, artifact_store, change_detector, mock_wiki_client)
