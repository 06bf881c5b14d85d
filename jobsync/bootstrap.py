"""
Bootstrap recovery of schedule state from persisted artifacts.
"""

from typing import Optional

import structlog

from datasource.storage import ArtifactStore
from jobsync.job_identity import identity_from_filename, render_category
from jobsync.schedule_store import IntervalResolver, ScheduleStore

logger = structlog.get_logger(__name__)


class BootstrapRecoverer:
    """Seeds the schedule store with jobs known from earlier runs."""

    def __init__(
        self,
        artifact_store: ArtifactStore,
        schedule_store: ScheduleStore,
        category_prefix: str,
        interval_resolver: Optional[IntervalResolver] = None
    ):
        self.artifact_store = artifact_store
        self.schedule_store = schedule_store
        self.category_prefix = category_prefix
        self.interval_resolver = interval_resolver
        self.logger = logger.bind(component="bootstrap")

    def recover(self) -> int:
        """
        Schedule every artifact-backed job as immediately due.

        Returns:
            Number of entries created
        """
        try:
            filenames = self.artifact_store.list_artifacts()
        except FileNotFoundError:
            self.logger.debug(
                "Data directory not found; nothing to schedule yet",
                data_dir=str(self.artifact_store.data_dir)
            )
            return 0
        except OSError as e:
            self.logger.error(
                "Cannot read data directory",
                data_dir=str(self.artifact_store.data_dir),
                error=str(e)
            )
            return 0

        now = self.schedule_store.clock()
        count = 0
        for filename in filenames:
            identity = identity_from_filename(filename)
            if identity is None:
                continue

            category = render_category(identity.endpoint_type, identity.instance_id, self.category_prefix)
            if self.schedule_store.contains(category):
                continue

            self.logger.debug("Scheduling from artifact", category=category, filename=filename)
            self.schedule_store.upsert(
                category,
                identity.endpoint_type,
                next_run=now,
                interval_resolver=self.interval_resolver
            )
            count += 1

        self.logger.info("Bootstrap recovery completed", scheduled=count)
        return count
