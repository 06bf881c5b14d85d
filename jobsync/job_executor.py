"""
Job execution: fetch, change-detect, persist, publish and purge one job.
"""

from typing import Dict, Optional

import structlog

from datasource.api_fetcher import ApiFetcher
from datasource.storage import ArtifactStore
from jobsync.change_detector import ChangeDetector
from jobsync.errors import ConfigError, SyncError, log_sync_error
from jobsync.models import ExecutionResult, ExecutorConfig, JobIdentity, utc_now
from utilities.logger import JobLogger
from wiki.client import WikiClient

logger = structlog.get_logger(__name__)

URL_PLACEHOLDER = "%s"


class JobExecutor:
    """Runs one job end to end behind a single call."""

    def __init__(
        self,
        config: ExecutorConfig,
        fetcher: ApiFetcher,
        artifact_store: ArtifactStore,
        change_detector: ChangeDetector,
        wiki_client: WikiClient
    ):
        """
        Initialize job executor.

        Args:
            config: Endpoint configuration
            fetcher: Remote API transport
            artifact_store: Persistence for fetched payloads
            change_detector: Detector comparing payloads with artifacts
            wiki_client: Wiki client used to publish and purge
        """
        self.config = config
        self.fetcher = fetcher
        self.artifact_store = artifact_store
        self.change_detector = change_detector
        self.wiki_client = wiki_client
        self.logger = logger.bind(component="job_executor")

    def build_url(self, identity: JobIdentity) -> str:
        """
        Render the fetch URL for a job.

        Raises:
            ConfigError: For unknown endpoint types, templates without a
                placeholder or malformed composite identifiers
        """
        template = self.config.api_map.get(identity.endpoint_type)
        if not template:
            raise ConfigError(f"unknown endpoint type: {identity.endpoint_type}")
        if URL_PLACEHOLDER not in template:
            raise ConfigError(f"URL template for {identity.endpoint_type} has no {URL_PLACEHOLDER} placeholder")

        argument = identity.instance_id
        composite = self.config.composite_endpoints.get(identity.endpoint_type)
        if composite:
            first, sep, second = identity.instance_id.partition("-")
            if not sep or not first or not second:
                raise ConfigError(
                    f"invalid {identity.endpoint_type} identifier {identity.instance_id!r}, "
                    f"expected two parts separated by '-'"
                )
            argument = composite.format(first, second)

        return template.replace(URL_PLACEHOLDER, argument, 1)

    def build_headers(self, endpoint_type: str) -> Optional[Dict[str, str]]:
        """Request headers for authenticated endpoint types, else None."""
        if endpoint_type not in self.config.authenticated_endpoints:
            return None
        if not self.config.api_key:
            raise ConfigError(f"open cloud api key required for {endpoint_type}")
        return {
            "x-api-key": self.config.api_key,
            "Accept": "application/json",
        }

    def page_title(self, identity: JobIdentity) -> str:
        return f"{self.config.wiki_namespace}:roapid/{identity.artifact_filename()}"

    async def execute(self, identity: JobIdentity, category: str) -> ExecutionResult:
        """
        Execute one job.

        Failures never propagate; they are logged according to the error
        policy and reported through the returned result.

        Args:
            identity: Job identity
            category: Original category label of the job

        Returns:
            ExecutionResult describing what happened
        """
        result = ExecutionResult(
            category=category,
            endpoint_type=identity.endpoint_type,
            instance_id=identity.instance_id
        )
        job_logger = JobLogger("job_executor").bind_context(
            category=category,
            endpoint_type=identity.endpoint_type,
            instance_id=identity.instance_id
        )

        try:
            await self._run(identity, category, result, job_logger)
            result.success = True
        except SyncError as e:
            result.error = str(e)
            result.error_kind = e.kind
            log_sync_error(self.logger, e, "Job execution failed", category=category)
        finally:
            result.finished_at = utc_now()

        if result.success:
            job_logger.log_job_complete(result.changed, result.published, result.duration_seconds)
        return result

    async def _run(
        self,
        identity: JobIdentity,
        category: str,
        result: ExecutionResult,
        job_logger: JobLogger
    ) -> None:
        url = self.build_url(identity)
        headers = self.build_headers(identity.endpoint_type)
        job_logger.log_job_start(url)

        new_data = await self.fetcher.fetch(url, headers=headers)

        path = identity.artifact_filename()
        result.changed = self.change_detector.has_changed(path, new_data)
        data_to_push = self.artifact_store.save(path, new_data)

        title = self.page_title(identity)
        should_push = result.changed
        if not result.changed:
            try:
                exists = await self.wiki_client.page_exists(title)
            except SyncError as e:
                log_sync_error(self.logger, e, "Cannot check published page", title=title)
                exists = True
            if not exists:
                job_logger.log_publish_forced(title)
                should_push = True

        if should_push:
            await self.wiki_client.push(
                title,
                data_to_push.decode("utf-8"),
                f"Automated update from {url}"
            )
            result.published = True
        else:
            job_logger.log_job_skipped("no meaningful changes")

        result.purged = await self._purge(category)

    async def _purge(self, category: str) -> bool:
        """Purge pages in the job's category; failures are logged only."""
        try:
            await self.wiki_client.purge_category_members(category)
        except SyncError as e:
            log_sync_error(self.logger, e, "Error purging category members", category=category)
            return False
        return True
