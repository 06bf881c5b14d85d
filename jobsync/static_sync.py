"""
Mirrors the static about page and usage guides from the config directory
onto the wiki.
"""

from pathlib import Path
from typing import List, NamedTuple, Optional

import structlog

from datasource.storage import ArtifactStore
from jobsync.change_detector import ChangeDetector
from jobsync.errors import StorageError, SyncError, log_sync_error
from wiki.client import WikiClient

logger = structlog.get_logger(__name__)


class StaticDoc(NamedTuple):
    filename: str
    wiki_slug: str
    summary: str


ABOUT_DOC = StaticDoc("about.json", "about.json", "Automated sync of about information")

STATIC_DOCS: List[StaticDoc] = [
    StaticDoc("badges.json", "badges.json", "Automated sync of legacy badges usage guide"),
    StaticDoc("users.json", "users.json", "Automated sync of users usage guide"),
    StaticDoc("groups.json", "groups.json", "Automated sync of groups usage guide"),
    StaticDoc("universes.json", "universes.json", "Automated sync of universes usage guide"),
    StaticDoc("places.json", "places.json", "Automated sync of places usage guide"),
    StaticDoc("games.json", "games.json", "Automated sync of legacy games API guide"),
]


class StaticDocSyncer:
    """Publishes static JSON documents when their content changes."""

    def __init__(
        self,
        config_dir: Path,
        artifact_store: ArtifactStore,
        change_detector: ChangeDetector,
        wiki_client: WikiClient,
        wiki_namespace: str,
        docs: Optional[List[StaticDoc]] = None
    ):
        self.config_dir = Path(config_dir)
        self.artifact_store = artifact_store
        self.change_detector = change_detector
        self.wiki_client = wiki_client
        self.wiki_namespace = wiki_namespace
        self.docs = STATIC_DOCS if docs is None else docs
        self.logger = logger.bind(component="static_sync")

    def page_title(self, doc: StaticDoc) -> str:
        return f"{self.wiki_namespace}:roapid/{doc.wiki_slug}"

    async def sync_doc(self, doc: StaticDoc) -> bool:
        """
        Sync one document.

        Returns:
            True if the page was published

        Raises:
            StorageError: If the source file cannot be read or saved
            PublishError: If the wiki rejects the edit
        """
        local_path = self.config_dir / doc.filename
        try:
            content = local_path.read_bytes()
        except OSError as e:
            raise StorageError(f"failed to read {local_path}: {e}") from e

        if not self.change_detector.has_changed(doc.filename, content):
            self.logger.debug("Document unchanged, skipping wiki update", filename=doc.filename)
            return False

        data_to_push = self.artifact_store.save(doc.filename, content)
        title = self.page_title(doc)
        await self.wiki_client.push(title, data_to_push.decode("utf-8"), doc.summary)

        try:
            await self.wiki_client.purge_pages([title])
        except SyncError as e:
            log_sync_error(self.logger, e, "Error purging page", title=title)

        self.logger.info("Synced static document", title=title)
        return True

    async def sync_about(self) -> bool:
        return await self.sync_doc(ABOUT_DOC)

    async def sync_all(self) -> Optional[SyncError]:
        """
        Sync every usage guide, continuing past failures.

        Returns:
            The first error encountered, or None
        """
        first_error = None
        for doc in self.docs:
            try:
                await self.sync_doc(doc)
            except SyncError as e:
                log_sync_error(self.logger, e, "Error syncing static document", filename=doc.filename)
                if first_error is None:
                    first_error = e
        return first_error
