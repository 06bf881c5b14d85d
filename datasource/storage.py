"""
On-disk persistence of fetched payloads.
Every saved artifact carries an injected lastUpdated timestamp.
"""

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

import structlog

from jobsync.errors import StorageError

logger = structlog.get_logger(__name__)

LAST_UPDATED_FIELD = "lastUpdated"


def format_timestamp(moment: Optional[datetime] = None) -> str:
    """RFC 3339 UTC timestamp with second precision."""
    moment = moment or datetime.now(timezone.utc)
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class ArtifactStore:
    """
    Artifact storage rooted at a data directory.
    Paths passed to its methods are relative to that directory.
    """

    def __init__(self, data_dir: Path):
        """
        Initialize the artifact store.

        Args:
            data_dir: Directory holding persisted artifacts
        """
        self.data_dir = Path(data_dir)
        self.logger = logger.bind(component="artifact_store")

    def full_path(self, relative_path: str) -> Path:
        return self.data_dir / relative_path

    def save(self, relative_path: str, raw: bytes) -> bytes:
        """
        Inject the lastUpdated timestamp into a JSON object and write it.

        Args:
            relative_path: Artifact path relative to the data directory
            raw: Raw JSON object bytes

        Returns:
            The bytes written to disk

        Raises:
            StorageError: If the payload is not a JSON object or the write fails
        """
        try:
            payload = json.loads(raw)
        except (ValueError, UnicodeDecodeError) as e:
            raise StorageError(f"cannot parse payload for {relative_path}: {e}") from e
        if not isinstance(payload, dict):
            raise StorageError(f"payload for {relative_path} is not a JSON object")

        payload[LAST_UPDATED_FIELD] = format_timestamp()
        data = json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=False).encode("utf-8")

        path = self.full_path(relative_path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_name(path.name + ".tmp")
            tmp_path.write_bytes(data)
            os.replace(tmp_path, path)
        except OSError as e:
            raise StorageError(f"cannot write {path}: {e}") from e

        self.logger.debug("Saved artifact", path=str(path), size=len(data))
        return data

    def read_existing(self, relative_path: str) -> Optional[bytes]:
        """
        Read a previously saved artifact.

        Returns:
            Artifact bytes, or None if it does not exist

        Raises:
            StorageError: On any read failure other than not-found
        """
        path = self.full_path(relative_path)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"cannot read {path}: {e}") from e

    def list_artifacts(self) -> List[str]:
        """
        List file names in the data directory.

        Raises:
            FileNotFoundError: If the data directory does not exist
            OSError: On other read failures
        """
        return sorted(entry.name for entry in self.data_dir.iterdir() if entry.is_file())
