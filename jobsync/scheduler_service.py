"""
Main scheduler service for the synchronization daemon.

This module provides:
- Startup sequencing (module setup, static docs, bootstrap, dispatch)
- Interval timers with APScheduler
- Graceful shutdown that waits for running jobs
"""

import asyncio
import signal
from contextlib import contextmanager
from datetime import timedelta
from typing import Any, Dict, Iterator, NamedTuple, Optional, Set

import structlog
from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from jobsync.bootstrap import BootstrapRecoverer
from jobsync.errors import SyncError, log_sync_error
from jobsync.job_executor import JobExecutor
from jobsync.models import SchedulerConfig, SweepResult
from jobsync.schedule_store import IntervalResolver, ScheduleStore
from jobsync.static_sync import StaticDocSyncer
from jobsync.sweeps import DiscoverySweep, ImmediateDispatch, RefreshSweep
from wiki.client import WikiClient

logger = structlog.get_logger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM, signal.SIGHUP)


class ModulePage(NamedTuple):
    """Lua module page installed on the wiki at startup."""
    title: str
    version: str
    content: str


class SchedulerService:
    """Owns the timers and every execution unit of the daemon."""

    def __init__(
        self,
        config: SchedulerConfig,
        store: ScheduleStore,
        executor: JobExecutor,
        wiki_client: WikiClient,
        bootstrap: BootstrapRecoverer,
        static_syncer: Optional[StaticDocSyncer] = None,
        interval_resolver: Optional[IntervalResolver] = None,
        module_page: Optional[ModulePage] = None
    ):
        """
        Initialize scheduler service.

        Args:
            config: Scheduler configuration
            store: Shared schedule store
            executor: Job executor shared by all sweeps
            wiki_client: Logged-in wiki client
            bootstrap: Recoverer seeding the store from persisted artifacts
            static_syncer: Optional mirror for about.json and usage guides
            interval_resolver: Per-endpoint-type refresh interval lookup
            module_page: Optional Lua module to install before starting
        """
        self.config = config
        self.store = store
        self.wiki_client = wiki_client
        self.bootstrap = bootstrap
        self.static_syncer = static_syncer
        self.module_page = module_page
        self.scheduler = AsyncIOScheduler(timezone=config.timezone)
        self.stop_event = asyncio.Event()
        self.running = False
        self.logger = logger.bind(component="scheduler_service")

        self._tasks: Set[asyncio.Task] = set()
        self._installed_signals = []

        sweep_args = (store, executor, config.category_prefix, interval_resolver, self.stop_event)
        self.discovery = DiscoverySweep(wiki_client, *sweep_args)
        self.refresh = RefreshSweep(*sweep_args)
        self.dispatcher = ImmediateDispatch(*sweep_args)

        self._setup_scheduler_listeners()

    def _setup_signal_handlers(self) -> None:
        """Request a graceful stop on SIGINT, SIGTERM and SIGHUP."""
        loop = asyncio.get_running_loop()
        for sig in SHUTDOWN_SIGNALS:
            try:
                loop.add_signal_handler(sig, self._handle_signal, sig)
            except (NotImplementedError, RuntimeError):
                self.logger.warning("Cannot install signal handler", signal=sig.name)
                continue
            self._installed_signals.append(sig)

    def _remove_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in self._installed_signals:
            loop.remove_signal_handler(sig)
        self._installed_signals = []

    def _handle_signal(self, sig: signal.Signals) -> None:
        self.logger.info("Received signal, shutting down gracefully", signal=sig.name)
        self.stop()

    def _setup_scheduler_listeners(self) -> None:
        """Setup scheduler event listeners."""
        def job_executed_listener(event):
            retval = event.retval
            if isinstance(retval, SweepResult):
                self.logger.debug(
                    "Timer job executed",
                    job_id=event.job_id,
                    sweep_id=retval.sweep_id,
                    success=retval.success
                )
            else:
                self.logger.debug("Timer job executed", job_id=event.job_id)

        def job_error_listener(event):
            self.logger.error(
                "Timer job failed",
                job_id=event.job_id,
                error=str(event.exception)
            )

        self.scheduler.add_listener(job_executed_listener, EVENT_JOB_EXECUTED)
        self.scheduler.add_listener(job_error_listener, EVENT_JOB_ERROR)

    @contextmanager
    def _tracking(self) -> Iterator[None]:
        """Register the current task so shutdown waits for it."""
        task = asyncio.current_task()
        if task is not None:
            self._tasks.add(task)
        try:
            yield
        finally:
            if task is not None:
                self._tasks.discard(task)

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _discovery_job(self) -> SweepResult:
        with self._tracking():
            return await self.discovery.run()

    async def _refresh_job(self) -> SweepResult:
        with self._tracking():
            return await self.refresh.run()

    async def _about_job(self) -> bool:
        with self._tracking():
            try:
                return await self.static_syncer.sync_about()
            except SyncError as e:
                log_sync_error(self.logger, e, "About sync failed")
                return False

    async def _documentation_job(self) -> bool:
        with self._tracking():
            return await self.static_syncer.sync_all() is None

    def _add_interval_job(self, func, job_id: str, name: str, interval: timedelta) -> None:
        self.scheduler.add_job(
            func,
            trigger=IntervalTrigger(seconds=interval.total_seconds()),
            id=job_id,
            name=name,
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )

    def _add_scheduled_jobs(self) -> None:
        """Register the periodic timers."""
        self._add_interval_job(
            self._discovery_job,
            "category_discovery",
            "Category Discovery",
            self.config.category_check_interval
        )
        self._add_interval_job(
            self._refresh_job,
            "data_refresh",
            "Data Refresh",
            self.config.data_refresh_interval
        )

        if self.static_syncer is not None:
            self._add_interval_job(
                self._about_job,
                "about_sync",
                "About Sync",
                self.config.about_interval or self.config.data_refresh_interval
            )
            if self.config.sync_static_docs:
                self._add_interval_job(
                    self._documentation_job,
                    "documentation_sync",
                    "Documentation Sync",
                    self.config.documentation_interval or self.config.data_refresh_interval
                )

    async def _startup(self) -> asyncio.Task:
        """
        Run the startup sequence.

        Returns:
            Task running the immediate dispatch of recovered jobs

        Raises:
            SyncError: If the module page cannot be installed
        """
        if self.module_page is not None:
            await self.wiki_client.setup_module(
                self.module_page.title,
                self.module_page.version,
                self.module_page.content
            )

        if self.static_syncer is not None:
            await self._about_job()
            if self.config.sync_static_docs:
                await self._documentation_job()

        self.bootstrap.recover()
        dispatch = self._spawn(self.dispatcher.run())

        if self.config.run_initial_discovery:
            await self._discovery_job()
        return dispatch

    async def start(self, run_once: bool = False) -> None:
        """
        Start the scheduler service and block until it stops.

        Args:
            run_once: Run every sweep a single time and return
        """
        self.logger.info(
            "Starting scheduler service",
            run_once=run_once,
            category_prefix=self.config.category_prefix
        )
        self.running = True
        self._setup_signal_handlers()

        try:
            dispatch = await self._startup()

            if run_once:
                await dispatch
                await self._refresh_job()
                self.logger.info("Run once mode completed")
                return

            if self.stop_event.is_set():
                self.logger.info("Stop requested during startup, timers not started")
                return

            self._add_scheduled_jobs()
            self.scheduler.start()
            self.logger.info(
                "Scheduler service started",
                timezone=self.config.timezone,
                category_check_interval=str(self.config.category_check_interval),
                data_refresh_interval=str(self.config.data_refresh_interval)
            )

            await self.stop_event.wait()
        finally:
            await self.shutdown()

    async def run_once(self) -> None:
        await self.start(run_once=True)

    def stop(self) -> None:
        """Request a graceful stop; running jobs are allowed to finish."""
        self.stop_event.set()

    async def shutdown(self) -> None:
        """Stop the timers and wait for every execution unit to finish."""
        self.stop_event.set()
        if self.scheduler.running:
            self.scheduler.pause()
            # Runs submitted just before the pause register themselves on first step
            await asyncio.sleep(0)

        current = asyncio.current_task()
        pending = [task for task in self._tasks if task is not current and not task.done()]
        if pending:
            self.logger.info("Waiting for running jobs to finish", count=len(pending))
            results = await asyncio.gather(*pending, return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    self.logger.error("Job ended with error during shutdown", error=str(result))

        # The executor cancels whatever it still holds, so this comes after the gather
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)

        self._remove_signal_handlers()
        self.running = False
        self.logger.info("Scheduler service stopped")

    async def get_status(self) -> Dict[str, Any]:
        """Get current scheduler status."""
        jobs = []
        for job in self.scheduler.get_jobs():
            jobs.append({
                'id': job.id,
                'name': job.name,
                'next_run_time': job.next_run_time.isoformat() if job.next_run_time else None,
                'trigger': str(job.trigger)
            })

        schedule = []
        for category, entry in sorted(self.store.snapshot_all().items()):
            schedule.append({
                'category': category,
                'endpoint_type': entry.endpoint_type,
                'interval_seconds': entry.interval.total_seconds(),
                'next_run': entry.next_run.isoformat()
            })

        return {
            'running': self.running,
            'timezone': self.config.timezone,
            'jobs': jobs,
            'job_count': len(jobs),
            'schedule': schedule,
            'schedule_entries': len(self.store),
            'in_flight_tasks': len(self._tasks)
        }
