"""
Sweeps over the schedule: discovery, refresh and startup dispatch.

Each sweep owns references to the schedule store and the job executor and
talks to the rest of the system only through them. Store access is copied
out under the lock, I/O happens without it, results are written back
through upsert().
"""

import asyncio
import uuid
from typing import List, Optional, Tuple

import structlog

from jobsync.errors import InvalidFormat, SyncError, log_sync_error
from jobsync.job_executor import JobExecutor
from jobsync.job_identity import parse_category
from jobsync.models import JobIdentity, JobState, SweepResult, SweepType, job_state, utc_now
from jobsync.schedule_store import IntervalResolver, ScheduleStore
from wiki.client import WikiClient

logger = structlog.get_logger(__name__)


class Sweep:
    """Shared execute-and-reschedule logic for sweeps."""

    sweep_type = SweepType.REFRESH

    def __init__(
        self,
        store: ScheduleStore,
        executor: JobExecutor,
        category_prefix: str,
        interval_resolver: Optional[IntervalResolver] = None,
        stop_event: Optional[asyncio.Event] = None
    ):
        """
        Initialize a sweep.

        Args:
            store: Shared schedule store
            executor: Job executor
            category_prefix: Configured category prefix
            interval_resolver: Resolver for intervals of new entries
            stop_event: Set when shutdown was requested
        """
        self.store = store
        self.executor = executor
        self.category_prefix = category_prefix
        self.interval_resolver = interval_resolver
        self.stop_event = stop_event
        self.logger = logger.bind(component=f"{self.sweep_type.value}_sweep")

    def _new_result(self) -> SweepResult:
        return SweepResult(sweep_id=str(uuid.uuid4()), sweep_type=self.sweep_type)

    def stopping(self) -> bool:
        return self.stop_event is not None and self.stop_event.is_set()

    async def run_job(self, category: str, identity: JobIdentity, result: SweepResult) -> bool:
        """
        Execute a job and push its schedule forward on success.

        A failed execution leaves the schedule untouched so the next sweep
        retries it. Jobs already executing elsewhere are skipped.

        Returns:
            True if the job ran successfully
        """
        with self.store.claimed(category) as acquired:
            if not acquired:
                self.logger.debug("Job already running, skipping", category=category)
                result.jobs_skipped += 1
                return False

            result.jobs_executed += 1
            try:
                execution = await self.executor.execute(identity, category)
            except Exception as e:
                self.logger.error("Unexpected error executing job", category=category, error=str(e))
                result.jobs_failed += 1
                result.errors.append(f"{category}: {e}")
                return False

            if not execution.success:
                result.jobs_failed += 1
                result.errors.append(f"{category}: {execution.error}")
                return False

            self.store.upsert(
                category,
                identity.endpoint_type,
                interval_resolver=self.interval_resolver
            )
            result.jobs_succeeded += 1
            return True

    def _finish(self, result: SweepResult) -> SweepResult:
        result.finished_at = utc_now()
        self.logger.info(
            "Sweep completed",
            sweep_id=result.sweep_id,
            jobs_checked=result.jobs_checked,
            jobs_executed=result.jobs_executed,
            jobs_succeeded=result.jobs_succeeded,
            jobs_failed=result.jobs_failed,
            jobs_skipped=result.jobs_skipped,
            duration_seconds=(result.finished_at - result.started_at).total_seconds()
        )
        return result


class DiscoverySweep(Sweep):
    """Reconciles the wiki's category listing against the schedule store."""

    sweep_type = SweepType.DISCOVERY

    def __init__(self, wiki_client: WikiClient, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.wiki_client = wiki_client

    async def run(self) -> SweepResult:
        """
        List categories and run unknown or due jobs.

        Returns:
            SweepResult for this pass
        """
        result = self._new_result()
        self.logger.info("Checking for new wanted categories", sweep_id=result.sweep_id)

        try:
            categories = await self.wiki_client.list_categories(self.category_prefix)
        except SyncError as e:
            log_sync_error(self.logger, e, "Error fetching queue categories")
            result.errors.append(str(e))
            return self._finish(result)

        for category in categories:
            if self.stopping():
                self.logger.info("Shutdown requested, ending discovery sweep early")
                break

            result.jobs_checked += 1
            try:
                identity = parse_category(category, self.category_prefix)
            except InvalidFormat as e:
                log_sync_error(self.logger, e, "Error parsing category", category=category)
                result.jobs_skipped += 1
                continue

            entry = self.store.get(category)
            state = job_state(entry, self.store.clock())
            if state == JobState.NOT_YET_DUE:
                continue

            if state == JobState.DUE:
                self.logger.info("Refreshing endpoint", category=category)
                identity = JobIdentity(endpoint_type=entry.endpoint_type, instance_id=identity.instance_id)
            else:
                self.logger.info("Processing new endpoint", category=category)

            await self.run_job(category, identity, result)

        return self._finish(result)


class RefreshSweep(Sweep):
    """Re-runs every known job whose next run has passed."""

    sweep_type = SweepType.REFRESH

    async def run(self) -> SweepResult:
        """
        Refresh due entries from a snapshot of the store.

        Does not consult the category listing, so jobs that dropped out of
        it keep being refreshed.

        Returns:
            SweepResult for this pass
        """
        result = self._new_result()
        self.logger.info("Refreshing existing data", sweep_id=result.sweep_id)

        for category in self.store.snapshot_all():
            if self.stopping():
                self.logger.info("Shutdown requested, ending refresh sweep early")
                break

            result.jobs_checked += 1
            # Earlier jobs in this pass may have let another sweep reschedule this one
            entry = self.store.get(category)
            if entry is None:
                continue
            if not entry.is_due(self.store.clock()):
                self.logger.debug("Skipping, not due", category=category, next_run=entry.next_run.isoformat())
                continue

            try:
                identity = parse_category(category, self.category_prefix)
            except InvalidFormat as e:
                log_sync_error(self.logger, e, "Error parsing category", category=category)
                result.jobs_skipped += 1
                continue

            self.logger.info("Refreshing endpoint", category=category)
            await self.run_job(category, identity, result)

        return self._finish(result)


class ImmediateDispatch(Sweep):
    """Runs every due entry concurrently, one task per job."""

    sweep_type = SweepType.DISPATCH

    def due_jobs(self) -> List[Tuple[str, JobIdentity]]:
        """Due entries of the store, parsed into identities."""
        now = self.store.clock()
        jobs = []
        for category, entry in self.store.snapshot_all().items():
            if not entry.is_due(now):
                continue
            try:
                identity = parse_category(category, self.category_prefix)
            except InvalidFormat as e:
                log_sync_error(self.logger, e, "Error parsing category", category=category)
                continue
            jobs.append((category, identity))
        return jobs

    async def _run_one(self, category: str, identity: JobIdentity, result: SweepResult) -> None:
        if self.stopping():
            self.logger.debug("Shutdown requested, not starting job", category=category)
            result.jobs_skipped += 1
            return
        await self.run_job(category, identity, result)

    async def run(self) -> SweepResult:
        """
        Start one task per due job and wait for all of them.

        Returns:
            SweepResult for the dispatch
        """
        result = self._new_result()
        jobs = self.due_jobs()
        result.jobs_checked = len(jobs)
        self.logger.info("Dispatching due jobs", sweep_id=result.sweep_id, count=len(jobs))

        tasks = [
            asyncio.create_task(self._run_one(category, identity, result))
            for category, identity in jobs
        ]
        if tasks:
            await asyncio.gather(*tasks)
        return self._finish(result)
