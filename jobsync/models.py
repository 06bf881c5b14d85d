"""
Models for job scheduling and synchronization.

This module defines Pydantic models for:
- Job identities
- Schedule entries
- Execution and sweep results
- Scheduler configuration
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from jobsync.errors import ErrorKind


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class JobState(str, Enum):
    """Scheduling state of a job as seen by a sweep."""
    UNKNOWN = "unknown"
    DUE = "due"
    NOT_YET_DUE = "not_yet_due"


class SweepType(str, Enum):
    """Kinds of periodic sweeps."""
    DISCOVERY = "discovery"
    REFRESH = "refresh"
    DISPATCH = "dispatch"


class JobIdentity(BaseModel):
    """Typed identity of one fetch-and-publish job."""
    endpoint_type: str = Field(..., min_length=1, description="Endpoint type, e.g. badges")
    instance_id: str = Field(..., min_length=1, description="Instance identifier, may be composite")

    model_config = {"frozen": True}

    def artifact_filename(self) -> str:
        """Name of the persisted artifact for this job."""
        return f"{self.endpoint_type}-{self.instance_id}.json"


class ScheduleEntry(BaseModel):
    """Schedule state of a known job."""
    endpoint_type: str = Field(..., min_length=1)
    interval: timedelta = Field(..., description="Refresh cadence, always positive")
    next_run: datetime = Field(..., description="Earliest time the job may run again")

    def is_due(self, now: datetime) -> bool:
        return now >= self.next_run


def job_state(entry: Optional[ScheduleEntry], now: datetime) -> JobState:
    """Classify a (possibly missing) schedule entry at the given time."""
    if entry is None:
        return JobState.UNKNOWN
    if entry.is_due(now):
        return JobState.DUE
    return JobState.NOT_YET_DUE


class ExecutionResult(BaseModel):
    """Outcome of executing one job."""
    category: str
    endpoint_type: str
    instance_id: str
    success: bool = Field(default=False)
    changed: bool = Field(default=False)
    published: bool = Field(default=False)
    purged: bool = Field(default=False)
    error: Optional[str] = Field(default=None)
    error_kind: Optional[ErrorKind] = Field(default=None)
    started_at: datetime = Field(default_factory=utc_now)
    finished_at: Optional[datetime] = Field(default=None)

    @property
    def duration_seconds(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()


class SweepResult(BaseModel):
    """Summary of one sweep."""
    sweep_id: str = Field(..., description="Unique sweep identifier")
    sweep_type: SweepType
    started_at: datetime = Field(default_factory=utc_now)
    finished_at: Optional[datetime] = Field(default=None)
    jobs_checked: int = Field(default=0)
    jobs_executed: int = Field(default=0)
    jobs_succeeded: int = Field(default=0)
    jobs_failed: int = Field(default=0)
    jobs_skipped: int = Field(default=0)
    errors: List[str] = Field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.jobs_failed == 0 and not self.errors


class ExecutorConfig(BaseModel):
    """Endpoint configuration consumed by the job executor."""
    wiki_namespace: str = Field(default="Module")
    api_map: Dict[str, str] = Field(default_factory=dict, description="Endpoint type to URL template with one %s")
    authenticated_endpoints: List[str] = Field(default_factory=list)
    composite_endpoints: Dict[str, str] = Field(
        default_factory=dict,
        description="Endpoint type to format string taking the two id parts"
    )
    api_key: str = Field(default="")


class SchedulerConfig(BaseModel):
    """Configuration for the scheduler service."""
    category_prefix: str = Field(default="roapid", min_length=1)
    timezone: str = Field(default="UTC", description="Timezone for scheduling")

    # Timers
    category_check_interval: timedelta = Field(default=timedelta(minutes=1))
    data_refresh_interval: timedelta = Field(default=timedelta(minutes=5))
    about_interval: Optional[timedelta] = Field(default=None)
    documentation_interval: Optional[timedelta] = Field(default=None)

    # Startup
    run_initial_discovery: bool = Field(default=True)
    sync_static_docs: bool = Field(default=True)
